"""
Rate Resolver.

Responsible for determining the per-member rate for a meeting.
Follows priority:
1. Client specific rate for the member category
2. Category fallback (foreign -> domestic, premium -> system default)
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from dues_backend.app.core.config import settings
from dues_backend.app.core.exceptions import ConfigurationError
from dues_backend.app.models.enums import MemberCategory, UserRole
from dues_backend.app.models.user import User


@dataclass(frozen=True)
class ClientRates:
    """Snapshot of a client's configured rates."""
    client_id: int
    domestic: Decimal
    foreign: Optional[Decimal] = None
    premium: Optional[Decimal] = None


def _money(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def resolve_rate(
    rates: ClientRates,
    category: MemberCategory,
    default_premium_rate: Optional[Decimal] = None
) -> Decimal:
    """
    Resolve the per-member rate for a category. Never fails on a missing
    category rate.
    """
    if category == MemberCategory.FOREIGN:
        return rates.foreign if rates.foreign is not None else rates.domestic

    if category == MemberCategory.PREMIUM:
        if rates.premium is not None:
            return rates.premium
        if default_premium_rate is None:
            default_premium_rate = settings.default_premium_rate
        return Decimal(str(default_premium_rate))

    return rates.domestic


class RateResolver:

    @staticmethod
    async def get_client_rates(db: AsyncSession, client_id: int) -> ClientRates:
        """
        Load a client's rate configuration.

        Raises:
            ConfigurationError: If no client record exists.
        """
        result = await db.execute(
            select(User).where(User.id == client_id, User.role == UserRole.CLIENT)
        )
        client = result.scalar_one_or_none()

        if not client:
            raise ConfigurationError(
                f"No client record for id {client_id}. Cannot resolve rates.",
                details={"client_id": client_id}
            )

        rates = ClientRates(
            client_id=client.id,
            domestic=_money(client.price_per_member) or Decimal("0"),
            foreign=_money(client.foreign_member_rate),
            premium=_money(client.premium_member_rate),
        )

        for name in ("domestic", "foreign", "premium"):
            value = getattr(rates, name)
            if value is not None and value < 0:
                raise ConfigurationError(
                    f"Negative {name} rate configured for client {client_id}",
                    details={"client_id": client_id, "category": name}
                )

        return rates
