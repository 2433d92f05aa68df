"""Subscription and payment enums."""

from enum import Enum


class SubscriptionStatus(str, Enum):
    """Per-organization subscription state."""

    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"
    INCOMPLETE = "INCOMPLETE"


class PaymentStatus(str, Enum):
    """Payment record state. PAID, CANCELED and FAILED are terminal."""

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


# Subscription states in which members may be added
SUBSCRIPTION_USABLE_STATUSES = frozenset({SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE})

TERMINAL_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELED}
)
