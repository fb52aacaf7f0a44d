"""
Rate Resolver and Daily Due Aggregator Tests.
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from dues_backend.app.core.exceptions import ConfigurationError
from dues_backend.app.domain.billing.due_aggregator import aggregate_day, is_billable
from dues_backend.app.domain.billing.rate_resolver import ClientRates, RateResolver, resolve_rate
from dues_backend.app.models.enums import MemberCategory, MeetingStatus, UserRole
from dues_backend.app.models.user import User

DAY = date(2024, 3, 5)


def meeting(members, category=MemberCategory.DOMESTIC, proof="https://proofs/1.png",
            status=MeetingStatus.ACTIVE, client_id=1, day=DAY):
    return SimpleNamespace(
        client_id=client_id,
        scheduled_date=day,
        member_count=members,
        member_category=category,
        proof_url=proof,
        status=status
    )


RATES = ClientRates(client_id=1, domestic=Decimal("10"), foreign=Decimal("15"))


def test_category_rates_and_fallbacks():
    assert resolve_rate(RATES, MemberCategory.DOMESTIC) == Decimal("10")
    assert resolve_rate(RATES, MemberCategory.FOREIGN) == Decimal("15")

    domestic_only = ClientRates(client_id=1, domestic=Decimal("10"))
    assert resolve_rate(domestic_only, MemberCategory.FOREIGN) == Decimal("10")
    assert resolve_rate(domestic_only, MemberCategory.PREMIUM) == Decimal("240")
    assert resolve_rate(domestic_only, MemberCategory.PREMIUM, Decimal("99")) == Decimal("99")

    with_premium = ClientRates(client_id=1, domestic=Decimal("10"), premium=Decimal("300"))
    assert resolve_rate(with_premium, MemberCategory.PREMIUM) == Decimal("300")


def test_aggregate_sums_members_times_rate():
    meetings = [
        meeting(5),
        meeting(2, MemberCategory.FOREIGN),
        meeting(1, MemberCategory.PREMIUM),
    ]
    result = aggregate_day(meetings, RATES, DAY)

    assert result.gross_amount == Decimal("320.00")
    assert result.meeting_count == 3


def test_aggregate_skips_unbillable_and_foreign_rows():
    meetings = [
        meeting(5),
        meeting(5, proof=None),
        meeting(5, proof="   "),
        meeting(5, status=MeetingStatus.NOT_LIVE),
        meeting(5, client_id=2),
        meeting(5, day=date(2024, 3, 6)),
    ]
    result = aggregate_day(meetings, RATES, DAY)

    assert result.gross_amount == Decimal("50.00")
    assert result.meeting_count == 1


def test_cancelled_meeting_with_proof_still_bills():
    assert is_billable(meeting(3, status=MeetingStatus.CANCELLED))


def test_aggregate_is_deterministic():
    meetings = [meeting(3), meeting(4, MemberCategory.FOREIGN)]
    assert aggregate_day(meetings, RATES, DAY) == aggregate_day(list(reversed(meetings)), RATES, DAY)


def test_no_meetings_is_zero():
    result = aggregate_day([], RATES, DAY)
    assert result.gross_amount == Decimal("0.00")
    assert result.meeting_count == 0


@pytest.mark.asyncio
async def test_get_client_rates(db_session, client_user):
    rates = await RateResolver.get_client_rates(db_session, client_user.id)

    assert rates.domestic == Decimal("10")
    assert rates.foreign == Decimal("15")
    assert rates.premium is None


@pytest.mark.asyncio
async def test_missing_client_is_configuration_error(db_session, admin_user):
    with pytest.raises(ConfigurationError):
        await RateResolver.get_client_rates(db_session, 9999)

    # Admins carry no rate configuration
    with pytest.raises(ConfigurationError):
        await RateResolver.get_client_rates(db_session, admin_user.id)


@pytest.mark.asyncio
async def test_negative_rate_is_configuration_error(db_session):
    user = User(
        email="neg@test.com", username="neg", role=UserRole.CLIENT,
        price_per_member=Decimal("10"), foreign_member_rate=Decimal("-1")
    )
    db_session.add(user)
    await db_session.commit()

    with pytest.raises(ConfigurationError):
        await RateResolver.get_client_rates(db_session, user.id)
