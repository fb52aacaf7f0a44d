"""
Admin API Endpoints.

Client accounts, meetings, manual adjustments and advances. Every write is
audited and recomputes the dues it affects.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from dues_backend.app.db.session import get_db
from dues_backend.app.models.enums import UserRole
from dues_backend.app.schemas.admin import AuditLogResponse, AuditTrailResponse
from dues_backend.app.schemas.billing import (
    ClientCreate, ClientRatesUpdate, ClientResponse, DailyDueResponse, DuesSummaryResponse,
    MeetingStatusUpdate, MeetingResponse, DueAdjustmentCreate, DueAdjustmentResponse,
    AdvanceCreate, AdvanceResponse
)
from dues_backend.app.core.guards import require_role
from dues_backend.app.domain.billing.account_service import AccountService
from dues_backend.app.domain.meetings.meeting_service import MeetingService
from dues_backend.app.services.audit import get_audit_trail
from dues_backend.app.services.dues_cache import DuesCache

router = APIRouter(prefix="/admin", tags=["Admin"])

admin_only = require_role([UserRole.ADMIN])


# --- Clients ---

@router.post("/clients", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    body: ClientCreate,
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Register a client together with its per-member rates."""
    return await AccountService.create_client(
        db,
        body.email,
        body.username,
        admin["user_id"],
        admin_username=admin.get("sub"),
        price_per_member=body.price_per_member,
        foreign_member_rate=body.foreign_member_rate,
        premium_member_rate=body.premium_member_rate
    )


@router.patch("/clients/{client_id}/rates", response_model=ClientResponse)
async def update_client_rates(
    body: ClientRatesUpdate,
    client_id: int = Path(...),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Change rates. Unsettled days are re-billed at the new rates."""
    return await AccountService.update_rates(
        db, client_id, admin["user_id"], admin_username=admin.get("sub"), **body.model_dump(exclude_unset=True)
    )


@router.get("/clients/{client_id}/dues", response_model=DuesSummaryResponse)
async def get_client_dues(
    client_id: int = Path(...),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    await AccountService.get_client(db, client_id)
    return await DuesCache.get_or_compute(db, client_id)


@router.post("/clients/{client_id}/dues/recompute", response_model=List[DailyDueResponse])
async def recompute_client_dues(
    client_id: int = Path(...),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Rebuild every unsettled day from meetings, rates, adjustments and advances."""
    return await AccountService.recompute(db, client_id, admin["user_id"], admin_username=admin.get("sub"))


# --- Meetings ---

@router.patch("/meetings/{meeting_id}/status", response_model=MeetingResponse)
async def update_meeting_status(
    body: MeetingStatusUpdate,
    meeting_id: int = Path(...),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Mark a meeting NOT_LIVE (drops it from billing) or restore it."""
    return await MeetingService.set_status(
        db, meeting_id, body.status, admin["user_id"], admin_username=admin.get("sub")
    )


# --- Manual adjustments ---

@router.post("/due-adjustments", response_model=DueAdjustmentResponse, status_code=status.HTTP_201_CREATED)
async def create_due_adjustment(
    body: DueAdjustmentCreate,
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    return await AccountService.create_adjustment(
        db, body.client_id, body.date, body.amount, admin["user_id"],
        reason=body.reason, admin_username=admin.get("sub")
    )


@router.delete("/due-adjustments/{adjustment_id}", response_model=DueAdjustmentResponse)
async def delete_due_adjustment(
    adjustment_id: int = Path(...),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    return await AccountService.delete_adjustment(
        db, adjustment_id, admin["user_id"], admin_username=admin.get("sub")
    )


# --- Advances ---

@router.post("/advances", response_model=AdvanceResponse, status_code=status.HTTP_201_CREATED)
async def create_advance(
    body: AdvanceCreate,
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Record prepaid credit. Outstanding days draw on it oldest first."""
    return await AccountService.create_advance(
        db, body.client_id, body.amount, admin["user_id"],
        notes=body.notes, proof_url=body.proof_url, admin_username=admin.get("sub")
    )


@router.get("/clients/{client_id}/advances", response_model=List[AdvanceResponse])
async def list_client_advances(
    client_id: int = Path(...),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    return await AccountService.list_advances(db, client_id)


@router.patch("/advances/{advance_id}/deactivate", response_model=AdvanceResponse)
async def deactivate_advance(
    advance_id: int = Path(...),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    return await AccountService.deactivate_advance(
        db, advance_id, admin["user_id"], admin_username=admin.get("sub")
    )


# --- Audit ---

@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    client_id: Optional[int] = Query(None, description="Filter by client"),
    action: Optional[str] = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Billing audit trail, most recent first."""
    logs = await get_audit_trail(db=db, client_id=client_id, action=action, limit=limit)
    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
