"""
Daily Due Aggregator.

Pure conversion of a client's meetings for one calendar day into a gross
amount and meeting count. Persistence is the caller's job.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from dues_backend.app.domain.billing.rate_resolver import ClientRates, resolve_rate
from dues_backend.app.models.enums import MeetingStatus


@dataclass(frozen=True)
class DayAggregate:
    date: date
    gross_amount: Decimal
    meeting_count: int


def is_billable(meeting) -> bool:
    """A meeting bills only with attendance proof attached and a status other than NOT_LIVE."""
    proof = meeting.proof_url
    return bool(proof and proof.strip()) and meeting.status != MeetingStatus.NOT_LIVE


def aggregate_day(
    meetings: Iterable,
    rates: ClientRates,
    day: date,
    default_premium_rate: Optional[Decimal] = None
) -> DayAggregate:
    """
    Sum member_count x rate over the client's billable meetings on `day`.

    Meetings for other clients or other days are ignored, so callers may pass
    a wider selection.
    """
    gross = Decimal("0")
    count = 0

    for meeting in meetings:
        if meeting.client_id != rates.client_id or meeting.scheduled_date != day:
            continue
        if not is_billable(meeting):
            continue

        rate = resolve_rate(rates, meeting.member_category, default_premium_rate)
        gross += Decimal(max(meeting.member_count or 0, 0)) * rate
        count += 1

    return DayAggregate(date=day, gross_amount=gross.quantize(Decimal("0.01")), meeting_count=count)
