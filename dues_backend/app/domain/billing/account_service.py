"""
Client Account Service (Domain Logic).

Admin-side inputs to a client's ledger: rate configuration, manual due
adjustments and prepaid advances. Each change recomputes the dues it can
affect in the same transaction; settled days are never touched.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from dues_backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from dues_backend.app.core.reliability import run_in_transaction
from dues_backend.app.domain.billing.advance_tracker import AdvanceTracker
from dues_backend.app.domain.billing.dues_service import DuesService
from dues_backend.app.domain.billing.rate_resolver import RateResolver
from dues_backend.app.models.advance import AdvanceBalance
from dues_backend.app.models.daily_due import DailyDue
from dues_backend.app.models.due_adjustment import DueAdjustment
from dues_backend.app.models.enums import UserRole
from dues_backend.app.models.user import User
from dues_backend.app.services.audit import log_event, AuditAction
from dues_backend.app.services.dues_cache import DuesCache

logger = logging.getLogger("dues.accounts")

RATE_FIELDS = ("price_per_member", "foreign_member_rate", "premium_member_rate")


def _check_rates(rates: dict) -> None:
    for name, value in rates.items():
        if value is not None and value < 0:
            raise ValidationError(f"{name} cannot be negative", details={name: str(value)})


class AccountService:

    @staticmethod
    async def get_client(db: AsyncSession, client_id: int) -> User:
        result = await db.execute(
            select(User).where(User.id == client_id, User.role == UserRole.CLIENT)
        )
        client = result.scalar_one_or_none()
        if not client:
            raise ResourceNotFoundError("Client", client_id)
        return client

    # Clients & rates

    @staticmethod
    async def _create_client(
        db: AsyncSession,
        email: str,
        username: str,
        admin_id: int,
        admin_username: Optional[str] = None,
        **rates
    ) -> User:
        rates = {k: v for k, v in rates.items() if k in RATE_FIELDS}
        _check_rates(rates)
        existing = await db.execute(
            select(User.id).where(or_(User.email == email, User.username == username))
        )
        if existing.first():
            raise ValidationError("Email or username already registered", details={"username": username})

        client = User(email=email, username=username, role=UserRole.CLIENT, is_active=True, **rates)
        db.add(client)
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.CLIENT_CREATED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=client.id,
            metadata={"username": username, **{k: str(v) for k, v in rates.items() if v is not None}}
        )
        return client

    @staticmethod
    async def create_client(db: AsyncSession, email: str, username: str, admin_id: int, **kwargs) -> User:
        return await run_in_transaction(db, AccountService._create_client, email, username, admin_id, **kwargs)

    @staticmethod
    async def _update_rates(
        db: AsyncSession,
        client_id: int,
        admin_id: int,
        admin_username: Optional[str] = None,
        **rates
    ) -> User:
        rates = {k: v for k, v in rates.items() if k in RATE_FIELDS}
        _check_rates(rates)
        client = await AccountService.get_client(db, client_id)

        old = {name: str(getattr(client, name)) for name in rates}
        for name, value in rates.items():
            setattr(client, name, value)
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.CLIENT_RATES_CHANGED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=client_id,
            metadata={"old": old, "new": {k: str(v) for k, v in rates.items()}}
        )
        await DuesService.recompute_client(db, client_id)
        return client

    @staticmethod
    async def update_rates(db: AsyncSession, client_id: int, admin_id: int, **kwargs) -> User:
        """Change rates and re-bill every unsettled day at the new rates."""
        client = await run_in_transaction(db, AccountService._update_rates, client_id, admin_id, **kwargs)
        await DuesCache.invalidate(client_id)
        return client

    @staticmethod
    async def _recompute(
        db: AsyncSession,
        client_id: int,
        admin_id: int,
        admin_username: Optional[str] = None
    ) -> List[DailyDue]:
        await AccountService.get_client(db, client_id)
        dues = await DuesService.recompute_client(db, client_id)
        await log_event(
            db=db,
            action=AuditAction.DUES_RECOMPUTED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=client_id,
            metadata={"days": len(dues)}
        )
        return dues

    @staticmethod
    async def recompute(db: AsyncSession, client_id: int, admin_id: int, **kwargs) -> List[DailyDue]:
        dues = await run_in_transaction(db, AccountService._recompute, client_id, admin_id, **kwargs)
        await DuesCache.invalidate(client_id)
        return dues

    # Manual adjustments

    @staticmethod
    async def _create_adjustment(
        db: AsyncSession,
        client_id: int,
        day: date,
        amount: Decimal,
        admin_id: int,
        reason: Optional[str] = None,
        admin_username: Optional[str] = None
    ) -> DueAdjustment:
        if amount == 0:
            raise ValidationError("Adjustment amount cannot be zero")
        await AccountService.get_client(db, client_id)
        await DuesService.ensure_unsettled(db, client_id, day)

        due = await DuesService.get_due(db, client_id, day)
        current = DuesService.billable_amount(due)
        if current + amount < 0:
            raise ValidationError(
                f"Credit exceeds the due for {day.isoformat()}",
                details={"date": day.isoformat(), "due": str(current), "amount": str(amount)}
            )

        adjustment = DueAdjustment(
            client_id=client_id,
            date=day,
            amount=amount,
            reason=reason,
            created_by_admin_id=admin_id
        )
        db.add(adjustment)
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.DUE_ADJUSTMENT_CREATED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=client_id,
            metadata={"adjustment_id": adjustment.id, "date": day.isoformat(), "amount": str(amount), "reason": reason}
        )
        await DuesService.refresh_day(db, client_id, day)
        return adjustment

    @staticmethod
    async def create_adjustment(
        db: AsyncSession, client_id: int, day: date, amount: Decimal, admin_id: int, **kwargs
    ) -> DueAdjustment:
        """Add a surcharge (positive) or credit (negative) to an unsettled day."""
        adjustment = await run_in_transaction(
            db, AccountService._create_adjustment, client_id, day, amount, admin_id, **kwargs
        )
        await DuesCache.invalidate(client_id)
        return adjustment

    @staticmethod
    async def _delete_adjustment(
        db: AsyncSession,
        adjustment_id: int,
        admin_id: int,
        admin_username: Optional[str] = None
    ) -> DueAdjustment:
        adjustment = await db.get(DueAdjustment, adjustment_id)
        if not adjustment:
            raise ResourceNotFoundError("Due adjustment", adjustment_id)
        await DuesService.ensure_unsettled(db, adjustment.client_id, adjustment.date)

        due = await DuesService.get_due(db, adjustment.client_id, adjustment.date)
        current = DuesService.billable_amount(due)
        if current - adjustment.amount < 0:
            raise ValidationError(
                "Removing this surcharge would leave the day negative; remove the credits first",
                details={"adjustment_id": adjustment_id, "date": adjustment.date.isoformat()}
            )

        await db.delete(adjustment)
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.DUE_ADJUSTMENT_DELETED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=adjustment.client_id,
            metadata={"adjustment_id": adjustment_id, "date": adjustment.date.isoformat(), "amount": str(adjustment.amount)}
        )
        await DuesService.refresh_day(db, adjustment.client_id, adjustment.date)
        return adjustment

    @staticmethod
    async def delete_adjustment(db: AsyncSession, adjustment_id: int, admin_id: int, **kwargs) -> DueAdjustment:
        adjustment = await run_in_transaction(
            db, AccountService._delete_adjustment, adjustment_id, admin_id, **kwargs
        )
        await DuesCache.invalidate(adjustment.client_id)
        return adjustment

    # Advances

    @staticmethod
    async def list_advances(db: AsyncSession, client_id: int) -> List[AdvanceBalance]:
        result = await db.execute(
            select(AdvanceBalance).where(AdvanceBalance.client_id == client_id)
            .order_by(AdvanceBalance.created_at, AdvanceBalance.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _create_advance(
        db: AsyncSession,
        client_id: int,
        amount: Decimal,
        admin_id: int,
        notes: Optional[str] = None,
        proof_url: Optional[str] = None,
        admin_username: Optional[str] = None
    ) -> AdvanceBalance:
        rates = await RateResolver.get_client_rates(db, client_id)
        advance = await AdvanceTracker.create_advance(
            db, client_id, amount, rates.domestic, notes=notes, proof_url=proof_url
        )

        await log_event(
            db=db,
            action=AuditAction.ADVANCE_CREATED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=client_id,
            metadata={"advance_id": advance.id, "amount": str(amount), "members": advance.advance_members}
        )
        # Outstanding days draw on the new credit oldest first
        await DuesService.recompute_client(db, client_id)
        return advance

    @staticmethod
    async def create_advance(db: AsyncSession, client_id: int, amount: Decimal, admin_id: int, **kwargs) -> AdvanceBalance:
        advance = await run_in_transaction(
            db, AccountService._create_advance, client_id, amount, admin_id, **kwargs
        )
        logger.info("Advance %s of %s recorded for client %s", advance.id, amount, client_id)
        await DuesCache.invalidate(client_id)
        return advance

    @staticmethod
    async def _deactivate_advance(
        db: AsyncSession,
        advance_id: int,
        admin_id: int,
        admin_username: Optional[str] = None
    ) -> AdvanceBalance:
        advance = await db.get(AdvanceBalance, advance_id)
        if not advance:
            raise ResourceNotFoundError("Advance", advance_id)
        if not advance.is_active:
            raise ValidationError("Advance is already inactive", details={"advance_id": advance_id})

        advance.is_active = False
        advance.version = advance.version + 1
        advance.updated_at = datetime.utcnow()
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.ADVANCE_DEACTIVATED,
            actor_id=admin_id,
            actor_username=admin_username,
            client_id=advance.client_id,
            metadata={"advance_id": advance_id, "remaining": str(advance.remaining_amount)}
        )
        return advance

    @staticmethod
    async def deactivate_advance(db: AsyncSession, advance_id: int, admin_id: int, **kwargs) -> AdvanceBalance:
        """Stop future draws. Credit already applied to dues stays applied."""
        advance = await run_in_transaction(
            db, AccountService._deactivate_advance, advance_id, admin_id, **kwargs
        )
        await DuesCache.invalidate(advance.client_id)
        return advance
