"""
Admin Billing API Endpoints.

Payment review workflow: approve, reject, resolve rejections, delete.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from dues_backend.app.db.session import get_db
from dues_backend.app.models.billing_enums import PaymentStatus
from dues_backend.app.models.enums import UserRole
from dues_backend.app.schemas.billing import (
    PaymentResponse, ApproveResponse, RejectRequest, PaymentDeleteResponse
)
from dues_backend.app.core.guards import require_role
from dues_backend.app.domain.billing.payment_service import PaymentService

router = APIRouter(prefix="/admin", tags=["Admin - Billing"])

admin_only = require_role([UserRole.ADMIN])


@router.get("/payments", response_model=List[PaymentResponse])
async def list_payments(
    status: Optional[PaymentStatus] = Query(None),
    client_id: Optional[int] = Query(None),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """List payments, newest first, optionally filtered (e.g. the PENDING review queue)."""
    return await PaymentService.list_payments(db, client_id=client_id, status=status)


@router.post("/payments/{payment_id}/approve", response_model=ApproveResponse)
async def approve_payment(
    payment_id: int = Path(...),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """
    Approve a pending payment.

    Settles unsettled dues oldest first and moves the client's paid-through
    date. Leftover money is reported, never turned into credit.
    """
    result = await PaymentService.approve(db, payment_id, admin["user_id"], admin_username=admin.get("sub"))
    return ApproveResponse(
        payment=PaymentResponse.model_validate(result.payment),
        outcome=result.allocation.outcome,
        settled_dates=result.allocation.settled_dates,
        over_payment=result.allocation.over_payment,
        previous_paid_through=result.previous_paid_through
    )


@router.post("/payments/{payment_id}/reject", response_model=PaymentResponse)
async def reject_payment(
    payment_id: int = Path(...),
    body: Optional[RejectRequest] = None,
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    return await PaymentService.reject(
        db,
        payment_id,
        admin["user_id"],
        reason=body.reason if body else None,
        rejected_amount=body.rejected_amount if body else None,
        admin_username=admin.get("sub")
    )


@router.post("/payments/{payment_id}/resolve", response_model=PaymentResponse)
async def resolve_rejected_payment(
    payment_id: int = Path(...),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """Clear a rejected amount from the client's outstanding total."""
    return await PaymentService.resolve_rejection(db, payment_id, admin["user_id"], admin_username=admin.get("sub"))


@router.delete("/payments/{payment_id}", response_model=PaymentDeleteResponse)
async def delete_payment(
    payment_id: int = Path(...),
    admin: dict = Depends(admin_only),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a pending payment, or the latest approved one. Deleting an
    approved payment reverts the watermark to the previous approval.
    """
    result = await PaymentService.delete_payment(db, payment_id, admin["user_id"], admin_username=admin.get("sub"))
    return PaymentDeleteResponse(payment_id=result.payment_id, status=result.status, paid_through=result.paid_through)
