"""
Billing Schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from dues_backend.app.models.billing_enums import AllocationOutcome, PaymentStatus, PaymentUptoMode
from dues_backend.app.models.enums import MemberCategory, MeetingStatus


# --- Clients ---

class ClientCreate(BaseModel):
    """Schema for registering a client with its rates."""
    email: str = Field(..., min_length=3, max_length=255)
    username: str = Field(..., min_length=1, max_length=100)
    price_per_member: Optional[Decimal] = Field(None, ge=0)
    foreign_member_rate: Optional[Decimal] = Field(None, ge=0)
    premium_member_rate: Optional[Decimal] = Field(None, ge=0)


class ClientRatesUpdate(BaseModel):
    """Only the rates present in the request are changed."""
    price_per_member: Optional[Decimal] = Field(None, ge=0)
    foreign_member_rate: Optional[Decimal] = Field(None, ge=0)
    premium_member_rate: Optional[Decimal] = Field(None, ge=0)


class ClientResponse(BaseModel):
    id: int
    email: str
    username: str
    is_active: bool
    price_per_member: Optional[Decimal]
    foreign_member_rate: Optional[Decimal]
    premium_member_rate: Optional[Decimal]

    class Config:
        from_attributes = True


# --- Meetings ---

class MeetingCreate(BaseModel):
    scheduled_date: date
    member_count: int = Field(..., ge=0)
    member_category: MemberCategory = MemberCategory.DOMESTIC
    title: Optional[str] = Field(None, max_length=255)
    proof_url: Optional[str] = None


class ProofAttach(BaseModel):
    proof_url: str = Field(..., min_length=1)


class MeetingStatusUpdate(BaseModel):
    status: MeetingStatus


class MeetingResponse(BaseModel):
    id: int
    client_id: int
    title: Optional[str]
    scheduled_date: date
    member_count: int
    member_category: MemberCategory
    proof_url: Optional[str]
    status: MeetingStatus

    class Config:
        from_attributes = True


# --- Dues ---

class DailyDueResponse(BaseModel):
    """A day's due with its breakdown."""
    id: int
    client_id: int
    date: date
    gross_amount: Decimal
    meeting_count: int
    advance_adjustment: Decimal
    manual_adjustment: Decimal
    amount: Decimal

    class Config:
        from_attributes = True


class DueItemResponse(BaseModel):
    date: date
    amount: Decimal


class DuesSummaryResponse(BaseModel):
    client_id: int
    paid_through: Optional[date]
    total_dues: Decimal
    settled_amount: Decimal
    outstanding_dues: Decimal
    approved_total: Decimal
    unapplied_credit: Decimal
    rejected_outstanding: Decimal
    total_outstanding: Decimal
    advance_remaining: Decimal
    advance_members: int
    unsettled: List[DueItemResponse]


class SettleAllQuoteResponse(BaseModel):
    upto_date: date
    amount: Decimal


class DueAdjustmentCreate(BaseModel):
    """Positive amounts are surcharges, negative amounts credits."""
    client_id: int
    date: date
    amount: Decimal
    reason: Optional[str] = Field(None, max_length=255)


class DueAdjustmentResponse(BaseModel):
    id: int
    client_id: int
    date: date
    amount: Decimal
    reason: Optional[str]
    created_by_admin_id: Optional[int]

    class Config:
        from_attributes = True


# --- Advances ---

class AdvanceCreate(BaseModel):
    client_id: int
    amount: Decimal = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=255)
    proof_url: Optional[str] = None


class AdvanceResponse(BaseModel):
    id: int
    client_id: int
    advance_amount: Decimal
    advance_members: int
    remaining_amount: Decimal
    remaining_members: int
    is_active: bool
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


# --- Payments ---

class PaymentSubmit(BaseModel):
    """
    DATE needs upto_date, CUSTOM_AMOUNT needs amount. For DATE and
    SETTLE_ALL the amount is quoted by the server; if sent, it must match.
    """
    upto_mode: PaymentUptoMode
    proof_url: str
    amount: Optional[Decimal] = None
    upto_date: Optional[date] = None
    payment_method: Optional[str] = Field(None, max_length=50)


class PaymentResponse(BaseModel):
    id: int
    client_id: int
    amount: Decimal
    upto_mode: PaymentUptoMode
    declared_upto_date: Optional[date]
    proof_url: str
    payment_method: Optional[str]
    status: PaymentStatus
    paid_through_date: Optional[date]
    unapplied_amount: Optional[Decimal]
    approved_at: Optional[datetime]
    rejection_reason: Optional[str]
    rejected_amount: Optional[Decimal]
    rejection_resolved_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class ApproveResponse(BaseModel):
    payment: PaymentResponse
    outcome: AllocationOutcome
    settled_dates: List[date]
    over_payment: Decimal
    previous_paid_through: Optional[date]


class RejectRequest(BaseModel):
    """`rejected_amount` is the part that was not received; defaults to the full payment."""
    reason: Optional[str] = None
    rejected_amount: Optional[Decimal] = Field(None, gt=0)


class PaymentDeleteResponse(BaseModel):
    payment_id: int
    status: PaymentStatus
    paid_through: Optional[date]
