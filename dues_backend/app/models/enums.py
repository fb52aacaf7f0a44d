"""
Core enumerations.

Defines user roles and meeting classifications.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Approves payments, manages rates, advances and adjustments
        CLIENT: Hosts meetings and submits payment proofs (default role)
    """
    ADMIN = "ADMIN"
    CLIENT = "CLIENT"


class MemberCategory(str, enum.Enum):
    """Billing category of the members attending a meeting."""
    DOMESTIC = "DOMESTIC"
    FOREIGN = "FOREIGN"
    PREMIUM = "PREMIUM"


class MeetingStatus(str, enum.Enum):
    """Meeting status enumeration."""
    ACTIVE = "ACTIVE"
    NOT_LIVE = "NOT_LIVE"  # Meeting never went live; never billed
    CANCELLED = "CANCELLED"
