"""Organization settings schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class DeadlineSettings(BaseModel):
    """Days of lead time per ranked priority."""
    Urgent: int = Field(0, ge=0, le=365)
    High: int = Field(0, ge=0, le=365)
    Medium: int = Field(0, ge=0, le=365)
    Low: int = Field(0, ge=0, le=365)

    model_config = {"extra": "forbid"}


class OrgUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    address: str | None = Field(None, max_length=500)
    mobile: str | None = Field(None, max_length=50)
    landline: str | None = Field(None, max_length=50)
    website: str | None = Field(None, max_length=255)
    graph_tenant_id: str | None = Field(None, max_length=255)
    graph_client_id: str | None = Field(None, max_length=255)
    graph_client_secret: str | None = Field(None, max_length=255)
    graph_mailbox: str | None = Field(None, max_length=255)


class OrgRead(BaseModel):
    """Organization profile. The Graph client secret is never returned."""
    id: UUID
    name: str
    domain: str | None = None
    address: str | None = None
    mobile: str | None = None
    landline: str | None = None
    website: str | None = None
    graph_tenant_id: str | None = None
    graph_client_id: str | None = None
    graph_mailbox: str | None = None
    mail_configured: bool = False
    deadline_settings: dict[str, int] = Field(default_factory=dict)
    created_at: datetime

    model_config = {"from_attributes": True}
