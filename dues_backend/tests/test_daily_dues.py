"""
Daily Due Tests.

Meeting changes, manual adjustments and rate changes re-bill the affected
days; settled days stay frozen.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import select

from dues_backend.app.core.exceptions import InvariantViolation, ValidationError
from dues_backend.app.domain.billing.account_service import AccountService
from dues_backend.app.domain.billing.dues_service import DuesService
from dues_backend.app.domain.meetings.meeting_service import MeetingService
from dues_backend.app.models.billing_enums import PaymentStatus, PaymentUptoMode
from dues_backend.app.models.due_adjustment import DueAdjustment
from dues_backend.app.models.enums import MemberCategory, MeetingStatus
from dues_backend.app.models.meeting import Meeting
from dues_backend.app.models.payment import Payment

DAY = date(2024, 1, 10)
PROOF = "https://proofs/meeting.png"


@pytest.mark.asyncio
async def test_meeting_with_proof_creates_due(db_session, client_user):
    await MeetingService.log_meeting(db_session, client_user.id, DAY, 5, proof_url=PROOF)

    due = await DuesService.get_due(db_session, client_user.id, DAY)
    assert due.gross_amount == Decimal("50")
    assert due.amount == Decimal("50")
    assert due.meeting_count == 1


@pytest.mark.asyncio
async def test_meeting_bills_only_once_proof_is_attached(db_session, client_user):
    meeting = await MeetingService.log_meeting(db_session, client_user.id, DAY, 4)
    assert await DuesService.get_due(db_session, client_user.id, DAY) is None

    await MeetingService.attach_proof(db_session, meeting.id, client_user.id, PROOF)

    due = await DuesService.get_due(db_session, client_user.id, DAY)
    assert due.amount == Decimal("40")


@pytest.mark.asyncio
async def test_not_live_meeting_drops_out_of_billing(db_session, client_user, admin_user):
    keep = await MeetingService.log_meeting(db_session, client_user.id, DAY, 2, proof_url=PROOF)
    drop = await MeetingService.log_meeting(
        db_session, client_user.id, DAY, 3, member_category=MemberCategory.FOREIGN, proof_url=PROOF
    )
    due = await DuesService.get_due(db_session, client_user.id, DAY)
    assert due.amount == Decimal("65")

    await MeetingService.set_status(db_session, drop.id, MeetingStatus.NOT_LIVE, admin_user.id)
    due = await DuesService.get_due(db_session, client_user.id, DAY)
    assert due.amount == Decimal("20")

    await MeetingService.set_status(db_session, keep.id, MeetingStatus.NOT_LIVE, admin_user.id)
    assert await DuesService.get_due(db_session, client_user.id, DAY) is None


@pytest.mark.asyncio
async def test_recompute_is_repeatable(db_session, client_user, admin_user):
    await MeetingService.log_meeting(db_session, client_user.id, DAY, 5, proof_url=PROOF)
    await MeetingService.log_meeting(db_session, client_user.id, date(2024, 1, 11), 1, proof_url=PROOF)

    first = [(d.date, d.amount) for d in await AccountService.recompute(db_session, client_user.id, admin_user.id)]
    second = [(d.date, d.amount) for d in await AccountService.recompute(db_session, client_user.id, admin_user.id)]

    assert first == second == [(DAY, Decimal("50")), (date(2024, 1, 11), Decimal("10"))]


@pytest.mark.asyncio
async def test_surcharge_and_credit_adjustments(db_session, client_user, admin_user):
    client_id, admin_id = client_user.id, admin_user.id
    await MeetingService.log_meeting(db_session, client_id, DAY, 5, proof_url=PROOF)

    surcharge = await AccountService.create_adjustment(
        db_session, client_id, DAY, Decimal("25"), admin_id, reason="premium member"
    )
    surcharge_id = surcharge.id
    due = await DuesService.get_due(db_session, client_id, DAY)
    assert due.manual_adjustment == Decimal("25")
    assert due.amount == Decimal("75")

    await AccountService.create_adjustment(db_session, client_id, DAY, Decimal("-75"), admin_id)
    due = await DuesService.get_due(db_session, client_id, DAY)
    assert due.amount == Decimal("0")

    # A credit may never push a day below zero
    with pytest.raises(ValidationError):
        await AccountService.create_adjustment(db_session, client_id, DAY, Decimal("-1"), admin_id)

    # Nor may removing the surcharge that the credit leans on
    with pytest.raises(ValidationError):
        await AccountService.delete_adjustment(db_session, surcharge_id, admin_id)


@pytest.mark.asyncio
async def test_adjustment_only_day(db_session, client_user, admin_user):
    adjustment = await AccountService.create_adjustment(
        db_session, client_user.id, DAY, Decimal("30"), admin_user.id
    )
    due = await DuesService.get_due(db_session, client_user.id, DAY)
    assert due.amount == Decimal("30")
    assert due.meeting_count == 0

    await AccountService.delete_adjustment(db_session, adjustment.id, admin_user.id)
    assert await DuesService.get_due(db_session, client_user.id, DAY) is None


@pytest.mark.asyncio
async def test_negative_day_on_refresh_is_invariant_violation(db_session, client_user, admin_user):
    await MeetingService.log_meeting(db_session, client_user.id, DAY, 1, proof_url=PROOF)
    # Bypass the service checks to plant an impossible credit
    db_session.add(DueAdjustment(client_id=client_user.id, date=DAY, amount=Decimal("-50"), created_by_admin_id=admin_user.id))
    await db_session.commit()

    with pytest.raises(InvariantViolation):
        await DuesService.refresh_day(db_session, client_user.id, DAY)
    await db_session.rollback()


@pytest.mark.asyncio
async def test_rate_change_rebills_unsettled_days(db_session, client_user, admin_user):
    await MeetingService.log_meeting(db_session, client_user.id, DAY, 5, proof_url=PROOF)

    await AccountService.update_rates(db_session, client_user.id, admin_user.id, price_per_member=Decimal("12"))

    due = await DuesService.get_due(db_session, client_user.id, DAY)
    assert due.amount == Decimal("60")


@pytest.mark.asyncio
async def test_settled_days_are_frozen(db_session, client_user, admin_user):
    client_id, admin_id = client_user.id, admin_user.id
    await MeetingService.log_meeting(db_session, client_id, DAY, 5, proof_url=PROOF)
    db_session.add(Payment(
        client_id=client_id,
        amount=Decimal("50"),
        upto_mode=PaymentUptoMode.DATE,
        declared_upto_date=DAY,
        proof_url=PROOF,
        status=PaymentStatus.APPROVED,
        paid_through_date=DAY,
        unapplied_amount=Decimal("0"),
        approved_by_admin_id=admin_id,
        approved_at=datetime.utcnow()
    ))
    await db_session.commit()

    with pytest.raises(ValidationError):
        await MeetingService.log_meeting(db_session, client_id, DAY, 1, proof_url=PROOF)
    with pytest.raises(ValidationError):
        await AccountService.create_adjustment(db_session, client_id, DAY, Decimal("10"), admin_id)

    # Rate changes leave the settled day alone
    await AccountService.update_rates(db_session, client_id, admin_id, price_per_member=Decimal("20"))
    due = await DuesService.get_due(db_session, client_id, DAY)
    assert due.amount == Decimal("50")


@pytest.mark.asyncio
async def test_advance_covers_only_the_day_net_of_credits(db_session, client_user, admin_user):
    client_id, admin_id = client_user.id, admin_user.id
    await MeetingService.log_meeting(db_session, client_id, DAY, 5, proof_url=PROOF)
    credit = await AccountService.create_adjustment(db_session, client_id, DAY, Decimal("-10"), admin_id)
    credit_id = credit.id
    assert (await DuesService.get_due(db_session, client_id, DAY)).amount == Decimal("40")

    advance = await AccountService.create_advance(db_session, client_id, Decimal("500"), admin_id)

    due = await DuesService.get_due(db_session, client_id, DAY)
    assert due.gross_amount == Decimal("50")
    assert due.manual_adjustment == Decimal("-10")
    assert due.advance_adjustment == Decimal("40")
    assert due.amount == Decimal("0")
    assert advance.remaining_amount == Decimal("460")

    # Dropping the credit lets the advance take up the difference
    await AccountService.delete_adjustment(db_session, credit_id, admin_id)
    due = await DuesService.get_due(db_session, client_id, DAY)
    assert due.advance_adjustment == Decimal("50")
    assert due.amount == Decimal("0")
    assert advance.remaining_amount == Decimal("450")


@pytest.mark.asyncio
async def test_credit_allowed_on_day_covered_by_advance(db_session, client_user, admin_user):
    client_id, admin_id = client_user.id, admin_user.id
    advance = await AccountService.create_advance(db_session, client_id, Decimal("500"), admin_id)
    await MeetingService.log_meeting(db_session, client_id, DAY, 5, proof_url=PROOF)
    assert (await DuesService.get_due(db_session, client_id, DAY)).amount == Decimal("0")

    await AccountService.create_adjustment(db_session, client_id, DAY, Decimal("-10"), admin_id)

    due = await DuesService.get_due(db_session, client_id, DAY)
    assert due.advance_adjustment == Decimal("40")
    assert due.amount == Decimal("0")
    assert advance.remaining_amount == Decimal("460")


@pytest.mark.asyncio
async def test_not_live_blocked_while_a_credit_leans_on_the_meeting(db_session, client_user, admin_user):
    client_id, admin_id = client_user.id, admin_user.id
    meeting = await MeetingService.log_meeting(db_session, client_id, DAY, 5, proof_url=PROOF)
    meeting_id = meeting.id
    credit = await AccountService.create_adjustment(db_session, client_id, DAY, Decimal("-10"), admin_id)
    credit_id = credit.id

    with pytest.raises(ValidationError):
        await MeetingService.set_status(db_session, meeting_id, MeetingStatus.NOT_LIVE, admin_id)

    status = (await db_session.execute(select(Meeting.status).where(Meeting.id == meeting_id))).scalar_one()
    assert status == MeetingStatus.ACTIVE
    assert (await DuesService.get_due(db_session, client_id, DAY)).amount == Decimal("40")

    # Removing the credit first makes the change possible
    await AccountService.delete_adjustment(db_session, credit_id, admin_id)
    await MeetingService.set_status(db_session, meeting_id, MeetingStatus.NOT_LIVE, admin_id)
    assert await DuesService.get_due(db_session, client_id, DAY) is None


@pytest.mark.asyncio
async def test_not_live_allowed_when_other_meetings_cover_the_credit(db_session, client_user, admin_user):
    client_id, admin_id = client_user.id, admin_user.id
    await MeetingService.log_meeting(db_session, client_id, DAY, 5, proof_url=PROOF)
    drop = await MeetingService.log_meeting(db_session, client_id, DAY, 1, proof_url=PROOF)
    await AccountService.create_adjustment(db_session, client_id, DAY, Decimal("-10"), admin_id)

    await MeetingService.set_status(db_session, drop.id, MeetingStatus.NOT_LIVE, admin_id)

    assert (await DuesService.get_due(db_session, client_id, DAY)).amount == Decimal("40")
