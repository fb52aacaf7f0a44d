"""
Settle-all cutoff policy.

"Settle everything" covers dues through today once the local clock has
passed the configured time of day, otherwise through yesterday.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from dues_backend.app.core.config import settings
from dues_backend.app.core.exceptions import ConfigurationError


@dataclass(frozen=True)
class SettlementPolicy:
    cutoff: time
    tz: ZoneInfo

    @classmethod
    def from_settings(cls) -> "SettlementPolicy":
        return cls.parse(settings.settle_all_cutoff, settings.settlement_timezone)

    @classmethod
    def parse(cls, cutoff: str, tz_name: str) -> "SettlementPolicy":
        try:
            hour, minute = (int(part) for part in cutoff.split(":"))
            return cls(cutoff=time(hour, minute), tz=ZoneInfo(tz_name))
        except (ValueError, KeyError) as e:
            raise ConfigurationError(
                f"Invalid settle-all policy {cutoff!r} / {tz_name!r}",
                details={"cutoff": cutoff, "timezone": tz_name}
            ) from e

    def cutoff_date(self, now: Optional[datetime] = None) -> date:
        """Last date a settle-all payment covers at instant `now` (UTC if naive)."""
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local = now.astimezone(self.tz)
        if local.time() >= self.cutoff:
            return local.date()
        return local.date() - timedelta(days=1)
