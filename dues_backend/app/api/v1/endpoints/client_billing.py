"""
Client Billing API Endpoints.

Self-service views and actions for clients: dues, meetings and payments.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from dues_backend.app.db.session import get_db
from dues_backend.app.models.enums import UserRole
from dues_backend.app.schemas.billing import (
    DuesSummaryResponse, SettleAllQuoteResponse, MeetingCreate, MeetingResponse, ProofAttach,
    PaymentSubmit, PaymentResponse, PaymentDeleteResponse
)
from dues_backend.app.core.guards import require_role
from dues_backend.app.domain.billing.dues_service import DuesService
from dues_backend.app.domain.billing.payment_service import PaymentService
from dues_backend.app.domain.meetings.meeting_service import MeetingService
from dues_backend.app.services.dues_cache import DuesCache

router = APIRouter(prefix="/client", tags=["Client - Billing"])

client_only = require_role([UserRole.CLIENT])


@router.get("/dues", response_model=DuesSummaryResponse)
async def get_my_dues(
    current_user: dict = Depends(client_only),
    db: AsyncSession = Depends(get_db)
):
    """Balance statement with the list of unsettled days, oldest first."""
    return await DuesCache.get_or_compute(db, current_user["user_id"])


@router.get("/dues/settle-all-quote", response_model=SettleAllQuoteResponse)
async def get_settle_all_quote(
    current_user: dict = Depends(client_only),
    db: AsyncSession = Depends(get_db)
):
    """Exact amount a settle-everything payment would have to be right now."""
    upto_date, amount = await DuesService.settle_all_quote(db, current_user["user_id"])
    return SettleAllQuoteResponse(upto_date=upto_date, amount=amount)


@router.post("/meetings", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
async def log_meeting(
    meeting: MeetingCreate,
    current_user: dict = Depends(client_only),
    db: AsyncSession = Depends(get_db)
):
    return await MeetingService.log_meeting(
        db,
        current_user["user_id"],
        meeting.scheduled_date,
        meeting.member_count,
        member_category=meeting.member_category,
        title=meeting.title,
        proof_url=meeting.proof_url,
        actor_username=current_user.get("sub")
    )


@router.patch("/meetings/{meeting_id}/proof", response_model=MeetingResponse)
async def attach_meeting_proof(
    body: ProofAttach,
    meeting_id: int = Path(...),
    current_user: dict = Depends(client_only),
    db: AsyncSession = Depends(get_db)
):
    """Attach attendance proof. The meeting's day is re-billed."""
    return await MeetingService.attach_proof(
        db, meeting_id, current_user["user_id"], body.proof_url, actor_username=current_user.get("sub")
    )


@router.get("/payments", response_model=List[PaymentResponse])
async def list_my_payments(
    current_user: dict = Depends(client_only),
    db: AsyncSession = Depends(get_db)
):
    return await PaymentService.list_payments(db, client_id=current_user["user_id"])


@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def submit_payment(
    body: PaymentSubmit,
    current_user: dict = Depends(client_only),
    db: AsyncSession = Depends(get_db)
):
    """Submit a payment with proof for admin review."""
    return await PaymentService.submit(
        db,
        current_user["user_id"],
        body.upto_mode,
        body.proof_url,
        amount=body.amount,
        upto_date=body.upto_date,
        payment_method=body.payment_method,
        actor_username=current_user.get("sub")
    )


@router.delete("/payments/{payment_id}", response_model=PaymentDeleteResponse)
async def withdraw_payment(
    payment_id: int = Path(...),
    current_user: dict = Depends(client_only),
    db: AsyncSession = Depends(get_db)
):
    """Withdraw a payment that is still pending review."""
    result = await PaymentService.delete_pending(
        db, payment_id, current_user["user_id"], actor_username=current_user.get("sub")
    )
    return PaymentDeleteResponse(payment_id=result.payment_id, status=result.status, paid_through=result.paid_through)
