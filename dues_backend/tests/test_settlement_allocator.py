"""
Settlement Allocator Tests.

Oldest-first settlement of a payment over daily dues.
"""

import pytest
from datetime import date
from decimal import Decimal

from dues_backend.app.core.exceptions import ValidationError
from dues_backend.app.domain.billing.settlement_allocator import (
    DueItem, allocate, cumulative_through
)
from dues_backend.app.models.billing_enums import AllocationOutcome

JAN_1 = date(2024, 1, 1)
JAN_2 = date(2024, 1, 2)
JAN_3 = date(2024, 1, 3)

THREE_DAYS = [(JAN_1, Decimal("100")), (JAN_2, Decimal("150")), (JAN_3, Decimal("200"))]


def test_partial_cover_reports_over_payment():
    """260 against 100/150/200 settles the first two days and leaves 10 over."""
    result = allocate(Decimal("260"), THREE_DAYS)

    assert result.paid_through == JAN_2
    assert result.settled_dates == [JAN_1, JAN_2]
    assert result.applied_amount == Decimal("250")
    assert result.remaining == Decimal("10")
    assert result.outcome == AllocationOutcome.OVER_PAYMENT
    assert result.over_payment == Decimal("10")


def test_amount_below_earliest_due_settles_nothing():
    result = allocate(Decimal("90"), THREE_DAYS)

    assert result.paid_through is None
    assert result.settled_dates == []
    assert result.remaining == Decimal("90")
    assert result.outcome == AllocationOutcome.INSUFFICIENT
    assert result.over_payment == Decimal("0")


def test_custom_amount_stops_at_first_uncovered_day():
    dues = [(JAN_1, Decimal("50")), (JAN_2, Decimal("40"))]
    result = allocate(Decimal("75"), dues)

    assert result.paid_through == JAN_1
    assert result.remaining == Decimal("25")
    assert result.outcome == AllocationOutcome.OVER_PAYMENT


def test_exact_amount():
    result = allocate(Decimal("450"), THREE_DAYS)

    assert result.paid_through == JAN_3
    assert result.remaining == Decimal("0")
    assert result.outcome == AllocationOutcome.EXACT


def test_input_order_does_not_matter():
    shuffled = [THREE_DAYS[2], THREE_DAYS[0], THREE_DAYS[1]]
    assert allocate(Decimal("260"), shuffled) == allocate(Decimal("260"), THREE_DAYS)


def test_zero_dues_advance_the_watermark_for_free():
    dues = [(JAN_1, Decimal("0")), (JAN_2, Decimal("100")), (JAN_3, Decimal("0"))]
    result = allocate(Decimal("100"), dues)

    assert result.paid_through == JAN_3
    assert result.settled_dates == [JAN_1, JAN_2, JAN_3]
    assert result.outcome == AllocationOutcome.EXACT


def test_zero_due_before_uncovered_day():
    dues = [(JAN_1, Decimal("0")), (JAN_2, Decimal("100"))]
    result = allocate(Decimal("40"), dues)

    assert result.paid_through == JAN_1
    assert result.remaining == Decimal("40")


def test_no_dues_at_all_is_over_payment():
    result = allocate(Decimal("50"), [])

    assert result.paid_through is None
    assert result.outcome == AllocationOutcome.OVER_PAYMENT
    assert result.over_payment == Decimal("50")


def test_larger_payment_never_settles_less():
    previous = None
    for amount in range(10, 500, 10):
        paid_through = allocate(Decimal(amount), THREE_DAYS).paid_through
        if previous is not None:
            assert paid_through is not None and paid_through >= previous
        previous = paid_through or previous


def test_accepts_due_items_and_plain_numbers():
    dues = [DueItem(date=JAN_1, amount=Decimal("10.50"))]
    result = allocate("10.50", dues)
    assert result.outcome == AllocationOutcome.EXACT


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
def test_non_positive_amount_rejected(amount):
    with pytest.raises(ValidationError):
        allocate(amount, THREE_DAYS)


def test_negative_due_rejected():
    with pytest.raises(ValidationError):
        allocate(Decimal("100"), [(JAN_1, Decimal("-1"))])


def test_duplicate_dates_rejected():
    with pytest.raises(ValidationError):
        allocate(Decimal("100"), [(JAN_1, Decimal("10")), (JAN_1, Decimal("20"))])


def test_cumulative_through_is_the_settle_all_amount():
    assert cumulative_through(THREE_DAYS, JAN_2) == Decimal("250")
    assert cumulative_through(THREE_DAYS, date(2023, 12, 31)) == Decimal("0")
    assert allocate(cumulative_through(THREE_DAYS, JAN_2), THREE_DAYS).outcome == AllocationOutcome.EXACT
