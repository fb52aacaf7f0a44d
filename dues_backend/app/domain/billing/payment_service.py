"""
Payment Service (Domain Logic).

Drives a payment through PENDING -> APPROVED | REJECTED. Every transition
and the watermark it implies are written in one transaction; notifications
go out only after that transaction has committed.
"""

import logging
import random
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, desc, inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession

from dues_backend.app.core.exceptions import (
    InsufficientPermissionsError, InvalidTransitionError, ResourceNotFoundError, ValidationError
)
from dues_backend.app.core.reliability import run_in_transaction
from dues_backend.app.domain.billing.dues_service import (
    DuesService, latest_approved_payment, last_approved_paid_through
)
from dues_backend.app.domain.billing.settlement_allocator import AllocationResult, allocate
from dues_backend.app.models.billing_enums import AllocationOutcome, PaymentStatus, PaymentUptoMode
from dues_backend.app.models.notification import NotificationType
from dues_backend.app.models.payment import Payment
from dues_backend.app.services.audit import log_event, AuditAction
from dues_backend.app.services.dues_cache import DuesCache
from dues_backend.app.services.notification_service import NotificationService

logger = logging.getLogger("dues.payments")

COMPLIMENTS = [
    "Thank you for your prompt payment!",
    "We appreciate your continued trust.",
    "Thanks for keeping your account in great shape!",
    "Your timely payments make our work easier. Thank you!",
    "Great to have you with us. Thanks for paying on time!",
]


@dataclass
class ApprovalResult:
    payment: Payment
    allocation: AllocationResult
    previous_paid_through: Optional[date]


@dataclass
class DeletionResult:
    payment_id: int
    client_id: int
    status: PaymentStatus
    paid_through: Optional[date]


def _rupees(amount: Decimal) -> str:
    return f"₹{amount}"


async def _reloaded(db: AsyncSession, payment: Payment) -> Payment:
    # A failed notification rolls the session back, which expires loaded rows
    if sa_inspect(payment).expired:
        await db.refresh(payment)
    return payment


class PaymentService:

    @staticmethod
    async def get_payment(db: AsyncSession, payment_id: int) -> Payment:
        payment = await db.get(Payment, payment_id)
        if not payment:
            raise ResourceNotFoundError("Payment", payment_id)
        return payment

    @staticmethod
    async def list_payments(
        db: AsyncSession,
        client_id: Optional[int] = None,
        status: Optional[PaymentStatus] = None
    ) -> List[Payment]:
        query = select(Payment).order_by(desc(Payment.created_at), desc(Payment.id))
        if client_id:
            query = query.where(Payment.client_id == client_id)
        if status:
            query = query.where(Payment.status == status)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def last_approved_paid_through(db: AsyncSession, client_id: int) -> Optional[date]:
        return await last_approved_paid_through(db, client_id)

    # Submission

    @staticmethod
    async def _submit(
        db: AsyncSession,
        client_id: int,
        mode: PaymentUptoMode,
        proof_url: str,
        amount: Optional[Decimal] = None,
        upto_date: Optional[date] = None,
        payment_method: Optional[str] = None,
        actor_username: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Payment:
        if not proof_url or not proof_url.strip():
            raise ValidationError("Payment proof is required")

        if mode == PaymentUptoMode.CUSTOM_AMOUNT:
            if amount is None or amount <= 0:
                raise ValidationError("Custom amount must be positive", details={"amount": str(amount)})
            declared = None
        else:
            if mode == PaymentUptoMode.DATE:
                if upto_date is None:
                    raise ValidationError("A settle-through date is required")
                declared = upto_date
                quote = await DuesService.quote_through(db, client_id, upto_date)
            else:
                declared, quote = await DuesService.settle_all_quote(db, client_id, now=now)

            if quote <= 0:
                raise ValidationError(
                    f"Nothing outstanding through {declared.isoformat()}",
                    details={"upto_date": declared.isoformat()}
                )
            if amount is not None and amount != quote:
                raise ValidationError(
                    f"Amount does not match the outstanding total {_rupees(quote)}",
                    details={"amount": str(amount), "expected": str(quote), "upto_date": declared.isoformat()}
                )
            amount = quote

        payment = Payment(
            client_id=client_id,
            amount=amount,
            upto_mode=mode,
            declared_upto_date=declared,
            proof_url=proof_url.strip(),
            payment_method=payment_method,
            status=PaymentStatus.PENDING
        )
        db.add(payment)
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.PAYMENT_SUBMITTED,
            actor_id=client_id,
            actor_username=actor_username,
            client_id=client_id,
            metadata={
                "payment_id": payment.id,
                "amount": str(amount),
                "mode": mode.value,
                "upto_date": declared.isoformat() if declared else None
            }
        )
        return payment

    @staticmethod
    async def submit(db: AsyncSession, client_id: int, mode: PaymentUptoMode, proof_url: str, **kwargs) -> Payment:
        """
        Submit a payment for review.

        DATE and SETTLE_ALL amounts are quoted here from the unsettled dues;
        a client-supplied amount must match the quote.
        """
        payment = await run_in_transaction(db, PaymentService._submit, client_id, mode, proof_url, **kwargs)
        payment_id, amount = payment.id, payment.amount
        logger.info("Payment %s submitted by client %s for %s", payment_id, client_id, amount)

        await NotificationService.notify_admins(
            db,
            title="New payment submitted",
            message=f"Client {client_id} submitted a payment of {_rupees(amount)} for review.",
            type=NotificationType.BILLING_UPDATE,
            metadata={"payment_id": payment_id, "client_id": client_id}
        )
        return await _reloaded(db, payment)

    # Review

    @staticmethod
    async def _approve(
        db: AsyncSession,
        payment_id: int,
        admin_id: int,
        admin_username: Optional[str] = None
    ) -> ApprovalResult:
        payment = await PaymentService.get_payment(db, payment_id)
        if payment.status != PaymentStatus.PENDING:
            raise InvalidTransitionError(
                f"Payment {payment_id} is {payment.status.value}, only PENDING payments can be approved",
                details={"payment_id": payment_id, "status": payment.status.value}
            )

        previous = await last_approved_paid_through(db, payment.client_id)
        through = None if payment.upto_mode == PaymentUptoMode.CUSTOM_AMOUNT else payment.declared_upto_date
        dues = await DuesService.unsettled_dues(db, payment.client_id, paid_through=previous, through=through)

        allocation = allocate(payment.amount, dues)

        payment.status = PaymentStatus.APPROVED
        payment.paid_through_date = allocation.paid_through or previous
        payment.unapplied_amount = allocation.remaining
        payment.approved_by_admin_id = admin_id
        payment.approved_at = datetime.utcnow()
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.PAYMENT_APPROVED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=payment.client_id,
            metadata={
                "payment_id": payment.id,
                "amount": str(payment.amount),
                "outcome": allocation.outcome.value,
                "settled_dates": [d.isoformat() for d in allocation.settled_dates],
                "previous_paid_through": previous.isoformat() if previous else None,
                "paid_through": payment.paid_through_date.isoformat() if payment.paid_through_date else None,
                "unapplied": str(allocation.remaining)
            }
        )
        return ApprovalResult(payment=payment, allocation=allocation, previous_paid_through=previous)

    @staticmethod
    async def approve(db: AsyncSession, payment_id: int, admin_id: int, **kwargs) -> ApprovalResult:
        result = await run_in_transaction(db, PaymentService._approve, payment_id, admin_id, **kwargs)
        payment, allocation = result.payment, result.allocation
        client_id, amount, paid_through = payment.client_id, payment.amount, payment.paid_through_date
        logger.info("Payment %s approved: %s, paid through %s", payment_id, allocation.outcome.value, paid_through)
        await DuesCache.invalidate(client_id)

        if allocation.settled_dates:
            message = (
                f"{random.choice(COMPLIMENTS)} Your payment of {_rupees(amount)} has been approved. "
                f"Dues are settled through {paid_through.isoformat()}."
            )
        else:
            message = (
                f"{random.choice(COMPLIMENTS)} Your payment of {_rupees(amount)} has been approved, "
                f"but it did not cover the earliest outstanding due."
            )
        await NotificationService.emit(
            db,
            client_id,
            title="Payment approved",
            message=message,
            type=NotificationType.SUCCESS,
            metadata={
                "payment_id": payment_id,
                "paid_through": paid_through.isoformat() if paid_through else None
            }
        )

        if allocation.outcome == AllocationOutcome.OVER_PAYMENT:
            await NotificationService.notify_admins(
                db,
                title="Over-payment needs review",
                message=(
                    f"Payment {payment_id} from client {client_id} left "
                    f"{_rupees(allocation.over_payment)} unapplied."
                ),
                type=NotificationType.WARNING,
                metadata={"payment_id": payment_id, "unapplied": str(allocation.over_payment)}
            )
        await _reloaded(db, payment)
        return result

    @staticmethod
    async def _reject(
        db: AsyncSession,
        payment_id: int,
        admin_id: int,
        reason: Optional[str] = None,
        rejected_amount: Optional[Decimal] = None,
        admin_username: Optional[str] = None
    ) -> Payment:
        payment = await PaymentService.get_payment(db, payment_id)
        if payment.status != PaymentStatus.PENDING:
            raise InvalidTransitionError(
                f"Payment {payment_id} is {payment.status.value}, only PENDING payments can be rejected",
                details={"payment_id": payment_id, "status": payment.status.value}
            )

        # The part of the payment that never arrived; defaults to all of it
        if rejected_amount is None:
            rejected_amount = payment.amount
        elif rejected_amount <= 0 or rejected_amount > payment.amount:
            raise ValidationError(
                f"Rejected amount must be more than 0 and at most {_rupees(payment.amount)}",
                details={"payment_id": payment_id, "rejected_amount": str(rejected_amount)}
            )

        payment.status = PaymentStatus.REJECTED
        payment.rejection_reason = reason
        payment.rejected_amount = rejected_amount
        payment.rejected_at = datetime.utcnow()
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.PAYMENT_REJECTED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=payment.client_id,
            metadata={
                "payment_id": payment.id,
                "amount": str(payment.amount),
                "rejected_amount": str(rejected_amount),
                "reason": reason
            }
        )
        return payment

    @staticmethod
    async def reject(db: AsyncSession, payment_id: int, admin_id: int, **kwargs) -> Payment:
        """The rejected amount stays outstanding until an admin resolves it."""
        payment = await run_in_transaction(db, PaymentService._reject, payment_id, admin_id, **kwargs)
        client_id = payment.client_id
        logger.info("Payment %s rejected by admin %s", payment_id, admin_id)
        await DuesCache.invalidate(client_id)

        message = (
            f"Your payment of {_rupees(payment.amount)} was rejected. "
            f"{_rupees(payment.rejected_amount)} has been added back to your dues."
        )
        if payment.rejection_reason:
            message += f" Reason: {payment.rejection_reason}"
        await NotificationService.emit(
            db,
            client_id,
            title="Payment rejected",
            message=message,
            type=NotificationType.ERROR,
            metadata={"payment_id": payment_id, "rejected_amount": str(payment.rejected_amount)}
        )
        return await _reloaded(db, payment)

    @staticmethod
    async def _resolve_rejection(
        db: AsyncSession,
        payment_id: int,
        admin_id: int,
        admin_username: Optional[str] = None
    ) -> Payment:
        payment = await PaymentService.get_payment(db, payment_id)
        if payment.status != PaymentStatus.REJECTED or payment.rejection_resolved_at is not None:
            raise InvalidTransitionError(
                f"Payment {payment_id} has no open rejection",
                details={"payment_id": payment_id, "status": payment.status.value}
            )

        payment.rejection_resolved_at = datetime.utcnow()
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.PAYMENT_REJECTION_RESOLVED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=payment.client_id,
            metadata={"payment_id": payment.id, "rejected_amount": str(payment.rejected_amount)}
        )
        return payment

    @staticmethod
    async def resolve_rejection(db: AsyncSession, payment_id: int, admin_id: int, **kwargs) -> Payment:
        payment = await run_in_transaction(db, PaymentService._resolve_rejection, payment_id, admin_id, **kwargs)
        await DuesCache.invalidate(payment.client_id)
        await NotificationService.emit(
            db,
            payment.client_id,
            title="Rejected payment resolved",
            message=f"The rejected amount of {_rupees(payment.rejected_amount)} has been cleared from your balance.",
            type=NotificationType.INFO,
            metadata={"payment_id": payment_id}
        )
        return await _reloaded(db, payment)

    # Deletion

    @staticmethod
    async def _delete_pending(
        db: AsyncSession,
        payment_id: int,
        client_id: int,
        actor_username: Optional[str] = None
    ) -> DeletionResult:
        payment = await PaymentService.get_payment(db, payment_id)
        if payment.client_id != client_id:
            raise InsufficientPermissionsError("You can only delete your own payments")
        if payment.status != PaymentStatus.PENDING:
            raise InvalidTransitionError(
                "Only pending payments can be withdrawn",
                details={"payment_id": payment_id, "status": payment.status.value}
            )

        await db.delete(payment)
        await log_event(
            db=db,
            action=AuditAction.PAYMENT_DELETED,
            actor_id=client_id,
            actor_username=actor_username,
            client_id=client_id,
            metadata={"payment_id": payment_id, "status": PaymentStatus.PENDING.value, "amount": str(payment.amount)}
        )
        return DeletionResult(
            payment_id=payment_id,
            client_id=client_id,
            status=PaymentStatus.PENDING,
            paid_through=await last_approved_paid_through(db, client_id)
        )

    @staticmethod
    async def delete_pending(db: AsyncSession, payment_id: int, client_id: int, **kwargs) -> DeletionResult:
        return await run_in_transaction(db, PaymentService._delete_pending, payment_id, client_id, **kwargs)

    @staticmethod
    async def _delete_payment(
        db: AsyncSession,
        payment_id: int,
        admin_id: int,
        admin_username: Optional[str] = None
    ) -> DeletionResult:
        payment = await PaymentService.get_payment(db, payment_id)
        status = payment.status
        client_id = payment.client_id

        if status == PaymentStatus.REJECTED:
            raise InvalidTransitionError(
                "Rejected payments are resolved, not deleted",
                details={"payment_id": payment_id}
            )
        if status == PaymentStatus.APPROVED:
            latest = await latest_approved_payment(db, client_id)
            if latest is None or latest.id != payment.id:
                raise InvalidTransitionError(
                    "Only the most recently approved payment can be deleted",
                    details={"payment_id": payment_id, "latest_payment_id": latest.id if latest else None}
                )

        await db.delete(payment)
        await db.flush()

        restored = await last_approved_paid_through(db, client_id)
        await log_event(
            db=db,
            action=AuditAction.PAYMENT_DELETED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=client_id,
            metadata={
                "payment_id": payment_id,
                "status": status.value,
                "amount": str(payment.amount),
                "paid_through": restored.isoformat() if restored else None
            }
        )
        return DeletionResult(payment_id=payment_id, client_id=client_id, status=status, paid_through=restored)

    @staticmethod
    async def delete_payment(db: AsyncSession, payment_id: int, admin_id: int, **kwargs) -> DeletionResult:
        """
        Admin delete. Pending payments are simply removed; deleting the latest
        approved payment reverts the watermark to the previous approval.
        """
        result = await run_in_transaction(db, PaymentService._delete_payment, payment_id, admin_id, **kwargs)
        if result.status == PaymentStatus.APPROVED:
            logger.info(
                "Approved payment %s deleted; client %s watermark back to %s",
                payment_id, result.client_id, result.paid_through
            )
            await DuesCache.invalidate(result.client_id)
        return result
