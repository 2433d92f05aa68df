"""Enum definitions for application constants."""

from quickdesk.db.enums.auth import MemberStatus, Role
from quickdesk.db.enums.billing import (
    PaymentStatus,
    SUBSCRIPTION_USABLE_STATUSES,
    SubscriptionStatus,
    TERMINAL_PAYMENT_STATUSES,
)
from quickdesk.db.enums.defaults import (
    DEFAULT_DEADLINE_SETTINGS,
    DEFAULT_MEMBER_STATUS,
    DEFAULT_PAYMENT_STATUS,
    DEFAULT_SUBSCRIPTION_STATUS,
    DEFAULT_TICKET_PRIORITY,
    DEFAULT_TICKET_STATUS,
    DEFAULT_TICKET_TYPE,
)
from quickdesk.db.enums.ticketing import (
    ActivityType,
    RANKED_PRIORITIES,
    RESOLVED_STATUSES,
    Replier,
    TicketPriority,
    TicketStatus,
    TicketType,
)

__all__ = [
    "ActivityType",
    "DEFAULT_DEADLINE_SETTINGS",
    "DEFAULT_MEMBER_STATUS",
    "DEFAULT_PAYMENT_STATUS",
    "DEFAULT_SUBSCRIPTION_STATUS",
    "DEFAULT_TICKET_PRIORITY",
    "DEFAULT_TICKET_STATUS",
    "DEFAULT_TICKET_TYPE",
    "MemberStatus",
    "PaymentStatus",
    "RANKED_PRIORITIES",
    "RESOLVED_STATUSES",
    "Replier",
    "Role",
    "SUBSCRIPTION_USABLE_STATUSES",
    "SubscriptionStatus",
    "TERMINAL_PAYMENT_STATUSES",
    "TicketPriority",
    "TicketStatus",
    "TicketType",
]
