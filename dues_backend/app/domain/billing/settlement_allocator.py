"""
Settlement Allocator.

Deterministic oldest-first settlement of a payment amount over a client's
unsettled daily dues. A day is settled only in full, so the outcome is a
single paid-through date: everything after it is still owed.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Union

from dues_backend.app.core.exceptions import ValidationError
from dues_backend.app.models.billing_enums import AllocationOutcome

Number = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class DueItem:
    """A day's net amount as seen by the allocator."""
    date: date
    amount: Decimal


@dataclass(frozen=True)
class AllocationResult:
    paid_through: Optional[date]
    settled_dates: List[date] = field(default_factory=list)
    applied_amount: Decimal = Decimal("0")
    remaining: Decimal = Decimal("0")
    outcome: AllocationOutcome = AllocationOutcome.EXACT

    @property
    def over_payment(self) -> Decimal:
        return self.remaining if self.outcome == AllocationOutcome.OVER_PAYMENT else Decimal("0")


def _to_decimal(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def as_due_items(dues: Iterable) -> List[DueItem]:
    """Accept DailyDue rows, DueItems or (date, amount) pairs."""
    items = []
    for due in dues:
        if isinstance(due, tuple):
            day, amount = due
        else:
            day, amount = due.date, due.amount
        items.append(DueItem(date=day, amount=_to_decimal(amount)))
    return items


def allocate(amount: Number, dues: Iterable) -> AllocationResult:
    """
    Settle `amount` against `dues` oldest first.

    Dues are re-sorted ascending by date on every call. Zero-amount dues
    (fully covered by advance) are passed over without consuming anything.
    Iteration stops at the first due the remaining amount cannot cover in full.

    Raises:
        ValidationError: non-positive amount, negative due, or duplicate dates.
    """
    amount = _to_decimal(amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be positive", details={"amount": str(amount)})

    items = sorted(as_due_items(dues), key=lambda d: d.date)

    seen = set()
    for item in items:
        if item.amount < 0:
            raise ValidationError(
                f"Due for {item.date.isoformat()} is negative",
                details={"date": item.date.isoformat(), "amount": str(item.amount)}
            )
        if item.date in seen:
            raise ValidationError(
                f"Duplicate due for {item.date.isoformat()}",
                details={"date": item.date.isoformat()}
            )
        seen.add(item.date)

    remaining = amount
    settled_through: Optional[date] = None
    settled_dates: List[date] = []

    for item in items:
        if item.amount == 0:
            settled_through = item.date
            settled_dates.append(item.date)
            continue
        if remaining >= item.amount:
            remaining -= item.amount
            settled_through = item.date
            settled_dates.append(item.date)
            continue
        break

    # Leftover after settling something (or with nothing owed) is excess;
    # leftover that settled nothing did not reach the earliest due.
    if remaining == 0:
        outcome = AllocationOutcome.EXACT
    elif remaining < amount or not any(item.amount > 0 for item in items):
        outcome = AllocationOutcome.OVER_PAYMENT
    else:
        outcome = AllocationOutcome.INSUFFICIENT

    return AllocationResult(
        paid_through=settled_through,
        settled_dates=settled_dates,
        applied_amount=amount - remaining,
        remaining=remaining,
        outcome=outcome,
    )


def cumulative_through(dues: Iterable, through: date) -> Decimal:
    """Exact sum of dues dated on or before `through`; the settle-all amount."""
    return sum(
        (item.amount for item in as_due_items(dues) if item.date <= through),
        Decimal("0")
    )
