"""
Billing enumerations.
"""

import enum


class PaymentStatus(str, enum.Enum):
    """Payment status enumeration."""
    PENDING = "PENDING"  # Submitted by client, waiting for admin review
    APPROVED = "APPROVED"  # Terminal, settles dues
    REJECTED = "REJECTED"  # Terminal, amount stays outstanding until resolved


class PaymentUptoMode(str, enum.Enum):
    """How the client declared what a payment should cover."""
    DATE = "DATE"  # Settle through a chosen date
    SETTLE_ALL = "SETTLE_ALL"  # Settle everything through the policy cutoff
    CUSTOM_AMOUNT = "CUSTOM_AMOUNT"  # Free-form amount, system works out the date


class AllocationOutcome(str, enum.Enum):
    """Result classification reported by the settlement allocator."""
    EXACT = "EXACT"
    OVER_PAYMENT = "OVER_PAYMENT"
    INSUFFICIENT = "INSUFFICIENT"  # Does not cover even the earliest unsettled due
