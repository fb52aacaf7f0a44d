"""
Advance Balance Tracker.

Owns every movement of a client's prepaid credit. Draws are recorded in the
AdvanceConsumption ledger per (advance, day); applying a day again only
moves the difference between what the day needs now and what it already
holds, so the same due can never be charged to the advance twice.
"""

import logging
from decimal import Decimal, ROUND_FLOOR
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dues_backend.app.core.exceptions import ConcurrencyConflict, ValidationError
from dues_backend.app.models.advance import AdvanceBalance, AdvanceConsumption

logger = logging.getLogger("dues.advance")

ZERO = Decimal("0")


def member_equivalents(amount: Decimal, domestic_rate: Optional[Decimal]) -> int:
    """Whole members an amount pays for at the client's domestic rate."""
    if not domestic_rate or domestic_rate <= 0:
        return 0
    return int((amount / domestic_rate).to_integral_value(rounding=ROUND_FLOOR))


class AdvanceTracker:

    @staticmethod
    async def get_active_advances(db: AsyncSession, client_id: int) -> List[AdvanceBalance]:
        """Active advances, oldest first (the order draws are taken in)."""
        result = await db.execute(
            select(AdvanceBalance).where(
                AdvanceBalance.client_id == client_id,
                AdvanceBalance.is_active == True
            ).order_by(AdvanceBalance.created_at, AdvanceBalance.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def total_remaining(db: AsyncSession, client_id: int) -> Tuple[Decimal, int]:
        """Summed (amount, member-equivalents) across active advances."""
        advances = await AdvanceTracker.get_active_advances(db, client_id)
        amount = sum((a.remaining_amount for a in advances), ZERO)
        members = sum(a.remaining_members for a in advances)
        return amount, members

    @staticmethod
    async def consumptions_for_day(db: AsyncSession, client_id: int, day: date) -> List[AdvanceConsumption]:
        result = await db.execute(
            select(AdvanceConsumption).where(
                AdvanceConsumption.client_id == client_id,
                AdvanceConsumption.due_date == day
            ).order_by(AdvanceConsumption.created_at, AdvanceConsumption.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def write_balance(
        db: AsyncSession,
        advance: AdvanceBalance,
        new_remaining: Decimal,
        domestic_rate: Optional[Decimal]
    ) -> None:
        """
        Compare-and-swap the advance's remaining balance.

        Raises:
            ConcurrencyConflict: another writer changed the row since it was read.
        """
        if new_remaining < 0:
            raise ValidationError(
                "Advance balance cannot go negative",
                details={"advance_id": advance.id, "remaining": str(new_remaining)}
            )

        expected_version = advance.version
        result = await db.execute(
            update(AdvanceBalance)
            .where(
                AdvanceBalance.id == advance.id,
                AdvanceBalance.version == expected_version
            )
            .values(
                remaining_amount=new_remaining,
                remaining_members=member_equivalents(new_remaining, domestic_rate),
                version=expected_version + 1
            )
            .execution_options(synchronize_session="evaluate")
        )

        if result.rowcount != 1:
            logger.warning(
                "Advance %s changed concurrently (expected version %s)", advance.id, expected_version
            )
            raise ConcurrencyConflict(details={"advance_id": advance.id})

    @staticmethod
    async def apply_advance(
        db: AsyncSession,
        client_id: int,
        due_date: date,
        gross_amount: Decimal,
        domestic_rate: Optional[Decimal] = None
    ) -> Tuple[Decimal, Decimal]:
        """
        Cover a day's billable amount (gross plus manual adjustments) from the
        client's advances.

        The day ends up holding min(gross, already held + available) of advance
        credit. A shortfall is drawn oldest advance first; a surplus (the day's
        gross shrank) is handed back to the advances it came from, newest draw first.

        Returns:
            (adjusted_amount, advance_consumed) where adjusted = gross - consumed.
        """
        if gross_amount < 0:
            raise ValidationError("Gross amount cannot be negative", details={"gross": str(gross_amount)})

        rows = await AdvanceTracker.consumptions_for_day(db, client_id, due_date)
        held = sum((row.amount for row in rows), ZERO)

        advances = await AdvanceTracker.get_active_advances(db, client_id)
        available = sum((a.remaining_amount for a in advances), ZERO)

        target = min(gross_amount, held + available)
        delta = target - held

        if delta > 0:
            by_advance = {row.advance_id: row for row in rows}
            need = delta
            for advance in advances:
                if need == 0:
                    break
                take = min(advance.remaining_amount, need)
                if take <= 0:
                    continue

                await AdvanceTracker.write_balance(db, advance, advance.remaining_amount - take, domestic_rate)

                row = by_advance.get(advance.id)
                if row:
                    row.amount = row.amount + take
                else:
                    db.add(AdvanceConsumption(
                        advance_id=advance.id,
                        client_id=client_id,
                        due_date=due_date,
                        amount=take
                    ))
                need -= take

        elif delta < 0:
            release = -delta
            for row in reversed(rows):
                if release == 0:
                    break
                give = min(row.amount, release)
                advance = await db.get(AdvanceBalance, row.advance_id)

                await AdvanceTracker.write_balance(db, advance, advance.remaining_amount + give, domestic_rate)

                row.amount = row.amount - give
                if row.amount == 0:
                    await db.delete(row)
                release -= give

        if delta != 0:
            logger.info(
                "Advance moved for client %s on %s: %s (day now holds %s)",
                client_id, due_date.isoformat(), delta, target
            )

        await db.flush()
        return gross_amount - target, target

    @staticmethod
    async def create_advance(
        db: AsyncSession,
        client_id: int,
        amount: Decimal,
        domestic_rate: Optional[Decimal],
        notes: Optional[str] = None,
        proof_url: Optional[str] = None
    ) -> AdvanceBalance:
        """Record a new prepaid credit. The caller decides which dues draw on it."""
        if amount <= 0:
            raise ValidationError("Advance amount must be positive", details={"amount": str(amount)})

        members = member_equivalents(amount, domestic_rate)
        advance = AdvanceBalance(
            client_id=client_id,
            advance_amount=amount,
            advance_members=members,
            remaining_amount=amount,
            remaining_members=members,
            is_active=True,
            version=1,
            notes=notes,
            proof_url=proof_url
        )
        db.add(advance)
        await db.flush()
        return advance
