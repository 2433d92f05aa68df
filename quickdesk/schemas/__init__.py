"""Pydantic schemas for API request/response models."""

from quickdesk.schemas.auth import MeResponse, TokenPayload, UserSession
from quickdesk.schemas.billing import PaymentRead, SubscriptionRead, SubscriptionSummary
from quickdesk.schemas.company import CompanyListItem, CompanyRead, EmployeeRead
from quickdesk.schemas.member import LicenseSummary, MemberGateRead, MemberRead
from quickdesk.schemas.org import DeadlineSettings, OrgRead
from quickdesk.schemas.ticketing import (
    ActionResponse,
    ActivityRead,
    BatchResponse,
    TicketDetail,
    TicketListResponse,
    TicketRead,
)

__all__ = [
    # Auth
    "TokenPayload",
    "UserSession",
    "MeResponse",
    # Billing
    "PaymentRead",
    "SubscriptionRead",
    "SubscriptionSummary",
    # Companies
    "CompanyListItem",
    "CompanyRead",
    "EmployeeRead",
    # Members
    "LicenseSummary",
    "MemberGateRead",
    "MemberRead",
    # Org
    "DeadlineSettings",
    "OrgRead",
    # Tickets
    "ActionResponse",
    "ActivityRead",
    "BatchResponse",
    "TicketDetail",
    "TicketListResponse",
    "TicketRead",
]
