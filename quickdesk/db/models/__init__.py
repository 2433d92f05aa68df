"""SQLAlchemy ORM models."""

from quickdesk.db.models.auth import LoginAttempt, Organization, OrganizationMember, User
from quickdesk.db.models.billing import Payment, Subscription
from quickdesk.db.models.companies import Company, Employee
from quickdesk.db.models.ticketing import (
    ActivityLog,
    OrgCounter,
    Ticket,
    TicketMessage,
    TicketNote,
    TicketTag,
)

__all__ = [
    # Auth
    "LoginAttempt",
    "Organization",
    "OrganizationMember",
    "User",
    # Billing
    "Payment",
    "Subscription",
    # Companies
    "Company",
    "Employee",
    # Ticketing
    "ActivityLog",
    "OrgCounter",
    "Ticket",
    "TicketMessage",
    "TicketNote",
    "TicketTag",
]
