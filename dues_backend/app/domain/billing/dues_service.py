"""
Dues Service (Domain Logic).

Materialises DailyDue rows and answers "what is owed" questions.
A day's row is always rebuilt from its inputs (meetings, rates, manual
adjustments, advance ledger) rather than patched, so recomputing is safe
to repeat and the last writer always stores the same value.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from dues_backend.app.core.exceptions import InvariantViolation, ValidationError
from dues_backend.app.domain.billing.advance_tracker import AdvanceTracker
from dues_backend.app.domain.billing.due_aggregator import aggregate_day
from dues_backend.app.domain.billing.rate_resolver import RateResolver
from dues_backend.app.domain.billing.settlement_allocator import DueItem, cumulative_through
from dues_backend.app.domain.billing.settlement_policy import SettlementPolicy
from dues_backend.app.models.billing_enums import PaymentStatus
from dues_backend.app.models.daily_due import DailyDue
from dues_backend.app.models.due_adjustment import DueAdjustment
from dues_backend.app.models.meeting import Meeting
from dues_backend.app.models.payment import Payment

logger = logging.getLogger("dues.service")

ZERO = Decimal("0")


@dataclass
class DuesSummary:
    """
    Balance statement for one client.

    total_dues = settled_amount + outstanding_dues
    approved_total = settled_amount + unapplied_credit
    total_outstanding = outstanding_dues + rejected_outstanding
    """
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
    unsettled: List[DueItem] = field(default_factory=list)


async def latest_approved_payment(db: AsyncSession, client_id: int) -> Optional[Payment]:
    """Most recently approved payment; its paid-through date is the watermark."""
    result = await db.execute(
        select(Payment).where(
            Payment.client_id == client_id,
            Payment.status == PaymentStatus.APPROVED
        ).order_by(desc(Payment.approved_at), desc(Payment.id)).limit(1)
    )
    return result.scalar_one_or_none()


async def last_approved_paid_through(db: AsyncSession, client_id: int) -> Optional[date]:
    payment = await latest_approved_payment(db, client_id)
    return payment.paid_through_date if payment else None


class DuesService:

    @staticmethod
    async def list_meetings(
        db: AsyncSession,
        client_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> List[Meeting]:
        query = select(Meeting).where(Meeting.client_id == client_id)
        if start:
            query = query.where(Meeting.scheduled_date >= start)
        if end:
            query = query.where(Meeting.scheduled_date <= end)
        result = await db.execute(query.order_by(Meeting.scheduled_date, Meeting.id))
        return list(result.scalars().all())

    @staticmethod
    async def manual_adjustment_for_day(db: AsyncSession, client_id: int, day: date) -> Decimal:
        result = await db.execute(
            select(DueAdjustment.amount).where(
                DueAdjustment.client_id == client_id,
                DueAdjustment.date == day
            )
        )
        return sum(result.scalars().all(), ZERO)

    @staticmethod
    async def get_due(db: AsyncSession, client_id: int, day: date) -> Optional[DailyDue]:
        result = await db.execute(
            select(DailyDue).where(DailyDue.client_id == client_id, DailyDue.date == day)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def refresh_day(db: AsyncSession, client_id: int, day: date) -> Optional[DailyDue]:
        """
        Rebuild the client's due for `day`.

        Returns the stored DailyDue, or None when the day has no billable
        activity (any stale row is removed and its advance credit released).

        Raises:
            ConfigurationError: client has no rate configuration.
            ConcurrencyConflict: advance balance changed underneath.
            InvariantViolation: the day would end up negative.
        """
        rates = await RateResolver.get_client_rates(db, client_id)
        meetings = await DuesService.list_meetings(db, client_id, day, day)
        aggregate = aggregate_day(meetings, rates, day)
        manual = await DuesService.manual_adjustment_for_day(db, client_id, day)
        existing = await DuesService.get_due(db, client_id, day)

        if aggregate.meeting_count == 0 and manual == 0:
            await AdvanceTracker.apply_advance(db, client_id, day, ZERO, rates.domestic)
            if existing:
                await db.delete(existing)
                await db.flush()
            return None

        # Credits are checked before they are stored, so this never goes below zero
        net = aggregate.gross_amount + manual
        if net < 0:
            raise InvariantViolation(
                f"Due for client {client_id} on {day.isoformat()} would be negative",
                details={
                    "client_id": client_id,
                    "date": day.isoformat(),
                    "gross": str(aggregate.gross_amount),
                    "manual": str(manual),
                }
            )

        # Advance credit only covers what the day actually owes after adjustments
        amount, consumed = await AdvanceTracker.apply_advance(db, client_id, day, net, rates.domestic)

        due = existing or DailyDue(client_id=client_id, date=day)
        due.gross_amount = aggregate.gross_amount
        due.meeting_count = aggregate.meeting_count
        due.advance_adjustment = consumed
        due.manual_adjustment = manual
        due.amount = amount
        due.updated_at = datetime.utcnow()
        if existing is None:
            db.add(due)
        await db.flush()

        logger.debug("Refreshed due client=%s date=%s amount=%s", client_id, day, amount)
        return due

    @staticmethod
    def billable_amount(due: Optional[DailyDue]) -> Decimal:
        """What a stored day owes before advance credit: gross plus manual adjustments."""
        if due is None:
            return ZERO
        return due.gross_amount + due.manual_adjustment

    @staticmethod
    async def ensure_credit_covered(
        db: AsyncSession,
        client_id: int,
        day: date,
        dropping_meeting_id: Optional[int] = None
    ) -> None:
        """
        Credits on a day may never exceed what its meetings bill.

        Checked before a meeting stops billing; `dropping_meeting_id` is left
        out of the day's gross.
        """
        rates = await RateResolver.get_client_rates(db, client_id)
        meetings = [
            m for m in await DuesService.list_meetings(db, client_id, day, day)
            if m.id != dropping_meeting_id
        ]
        gross = aggregate_day(meetings, rates, day).gross_amount
        manual = await DuesService.manual_adjustment_for_day(db, client_id, day)
        if gross + manual < 0:
            raise ValidationError(
                f"Credits on {day.isoformat()} exceed what the day would bill; remove the credit first",
                details={"date": day.isoformat(), "gross": str(gross), "manual": str(manual)}
            )

    @staticmethod
    async def ensure_unsettled(db: AsyncSession, client_id: int, day: date) -> None:
        """Settled days are frozen: their inputs may no longer change."""
        paid_through = await last_approved_paid_through(db, client_id)
        if paid_through and day <= paid_through:
            raise ValidationError(
                f"{day.isoformat()} is already settled (paid through {paid_through.isoformat()})",
                details={"date": day.isoformat(), "paid_through": paid_through.isoformat()}
            )

    @staticmethod
    async def recompute_client(db: AsyncSession, client_id: int) -> List[DailyDue]:
        """
        Rebuild every unsettled day that has meetings, adjustments or a
        stored due, oldest first. Days on or before the watermark are left alone.
        """
        paid_through = await last_approved_paid_through(db, client_id)
        days = set()
        for model, column in (
            (Meeting, Meeting.scheduled_date),
            (DueAdjustment, DueAdjustment.date),
            (DailyDue, DailyDue.date),
        ):
            query = select(column).where(model.client_id == client_id)
            if paid_through:
                query = query.where(column > paid_through)
            result = await db.execute(query.distinct())
            days.update(result.scalars().all())

        dues = []
        for day in sorted(days):
            due = await DuesService.refresh_day(db, client_id, day)
            if due is not None:
                dues.append(due)
        return dues

    @staticmethod
    async def list_dues(db: AsyncSession, client_id: int) -> List[DailyDue]:
        result = await db.execute(
            select(DailyDue).where(DailyDue.client_id == client_id).order_by(DailyDue.date)
        )
        return list(result.scalars().all())

    @staticmethod
    async def unsettled_dues(
        db: AsyncSession,
        client_id: int,
        paid_through: Optional[date] = None,
        through: Optional[date] = None
    ) -> List[DailyDue]:
        """Dues after the watermark (optionally capped at `through`), oldest first."""
        if paid_through is None:
            paid_through = await last_approved_paid_through(db, client_id)

        query = select(DailyDue).where(DailyDue.client_id == client_id)
        if paid_through:
            query = query.where(DailyDue.date > paid_through)
        if through:
            query = query.where(DailyDue.date <= through)

        result = await db.execute(query.order_by(DailyDue.date))
        return list(result.scalars().all())

    @staticmethod
    async def quote_through(db: AsyncSession, client_id: int, through: date) -> Decimal:
        """Amount that settles every unsettled due on or before `through`."""
        dues = await DuesService.unsettled_dues(db, client_id)
        return cumulative_through(dues, through)

    @staticmethod
    async def settle_all_quote(
        db: AsyncSession,
        client_id: int,
        now: Optional[datetime] = None,
        policy: Optional[SettlementPolicy] = None
    ) -> Tuple[date, Decimal]:
        """(cutoff date, exact amount) for a settle-everything payment at `now`."""
        policy = policy or SettlementPolicy.from_settings()
        cutoff = policy.cutoff_date(now)
        return cutoff, await DuesService.quote_through(db, client_id, cutoff)

    @staticmethod
    async def summary(db: AsyncSession, client_id: int) -> DuesSummary:
        paid_through = await last_approved_paid_through(db, client_id)
        dues = await DuesService.list_dues(db, client_id)

        total = sum((d.amount for d in dues), ZERO)
        settled = sum((d.amount for d in dues if paid_through and d.date <= paid_through), ZERO)
        unsettled = [
            DueItem(date=d.date, amount=d.amount)
            for d in dues if not paid_through or d.date > paid_through
        ]
        outstanding = total - settled

        # Summed in Python: Numeric aggregates come back as floats on some backends
        approved = await db.execute(
            select(Payment.amount).where(
                Payment.client_id == client_id,
                Payment.status == PaymentStatus.APPROVED
            )
        )
        approved_total = sum(approved.scalars().all(), ZERO)

        rejected = await db.execute(
            select(Payment.rejected_amount).where(
                Payment.client_id == client_id,
                Payment.status == PaymentStatus.REJECTED,
                Payment.rejection_resolved_at.is_(None)
            )
        )
        rejected_outstanding = sum((a or ZERO for a in rejected.scalars().all()), ZERO)

        advance_amount, advance_members = await AdvanceTracker.total_remaining(db, client_id)

        return DuesSummary(
            client_id=client_id,
            paid_through=paid_through,
            total_dues=total,
            settled_amount=settled,
            outstanding_dues=outstanding,
            approved_total=approved_total,
            unapplied_credit=approved_total - settled,
            rejected_outstanding=rejected_outstanding,
            total_outstanding=outstanding + rejected_outstanding,
            advance_remaining=advance_amount,
            advance_members=advance_members,
            unsettled=unsettled,
        )
