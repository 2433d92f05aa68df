"""Centralized defaults for enums."""

from quickdesk.db.enums.auth import MemberStatus
from quickdesk.db.enums.billing import PaymentStatus, SubscriptionStatus
from quickdesk.db.enums.ticketing import TicketPriority, TicketStatus, TicketType


DEFAULT_TICKET_STATUS: TicketStatus = TicketStatus.OPEN
DEFAULT_TICKET_PRIORITY: TicketPriority = TicketPriority.NONE
DEFAULT_TICKET_TYPE: TicketType = TicketType.INCIDENT
DEFAULT_MEMBER_STATUS: MemberStatus = MemberStatus.UNINVITED
DEFAULT_SUBSCRIPTION_STATUS: SubscriptionStatus = SubscriptionStatus.TRIAL
DEFAULT_PAYMENT_STATUS: PaymentStatus = PaymentStatus.PENDING

# Lead time in days per priority for new organizations
DEFAULT_DEADLINE_SETTINGS: dict[str, int] = {
    "Urgent": 1,
    "High": 2,
    "Medium": 3,
    "Low": 4,
}
