"""Ticket request/response schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class TicketCreateRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=500)
    sender_email: EmailStr
    sender_name: str | None = Field(None, max_length=255)
    body: str | None = None
    priority: str | None = None
    type: str | None = None


class TicketPatchRequest(BaseModel):
    """
    Partial update. Only fields present in the body are applied, so an
    explicit null clears the deadline, assignee or company.
    Enum values are checked by the service to return a coded error.
    """
    priority: str | None = None
    status: str | None = None
    type: str | None = None
    assignee_id: UUID | None = None
    deadline: datetime | None = None
    tags: list[str] | None = None
    company_id: UUID | None = None


class TicketBatchRequest(BaseModel):
    ticket_ids: list[UUID] = Field(default_factory=list, max_length=500)


class TicketRead(BaseModel):
    id: UUID
    organization_id: UUID
    ticket_number: int
    subject: str
    sender_email: str
    sender_name: str | None = None
    body_preview: str | None = None
    status: str
    priority: str
    type: str
    assignee_id: UUID | None = None
    deadline: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    closed_at: datetime | None = None
    archived_at: datetime | None = None
    company_id: UUID | None = None
    conversation_id: str | None = None
    last_replier: str | None = None
    received_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TicketDetail(TicketRead):
    body: str | None = None


class TicketListResponse(BaseModel):
    items: list[TicketRead]


class TicketChangesResponse(BaseModel):
    """Incremental refresh: tickets changed after ``cursor``."""
    items: list[TicketRead]
    next_cursor: datetime | None = None


class FieldChangeRead(BaseModel):
    field: str
    details: str


class ActionResponse(BaseModel):
    """Result envelope for mutating ticket actions."""
    success: bool
    error: str | None = None
    code: str | None = None
    missing: list[str] = Field(default_factory=list)
    ticket: TicketRead | None = None
    changes: list[FieldChangeRead] = Field(default_factory=list)


class BatchResponse(BaseModel):
    success: bool
    error: str | None = None
    code: str | None = None
    missing: list[str] = Field(default_factory=list)
    count: int = 0


class TicketNoteCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class TicketNoteRead(BaseModel):
    id: UUID
    ticket_id: UUID
    content: str
    author_name: str | None = None
    author_email: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ActivityRead(BaseModel):
    id: UUID
    ticket_id: UUID
    sequence: int
    type: str
    details: str
    ticket_subject: str | None = None
    date: datetime
    user_id: UUID | None = None
    user_name: str | None = None
    user_email: str | None = None

    model_config = {"from_attributes": True}


class PollingPolicyRead(BaseModel):
    active_seconds: float
    idle_seconds: float
    idle_threshold_seconds: float
    next_interval_seconds: float | None = None


class TicketReplyRequest(BaseModel):
    """Recipient fields accept a comma-separated string or a list."""
    body: str = Field(..., min_length=1)
    message_id: str | None = None
    to: str | list[str] | None = None
    cc: str | list[str] | None = None
    bcc: str | list[str] | None = None


class TicketForwardRequest(BaseModel):
    to: str | list[str]
    comment: str = ""
    message_id: str | None = None
    cc: str | list[str] | None = None
    bcc: str | list[str] | None = None


class AttachmentRead(BaseModel):
    id: str | None = None
    name: str | None = None
    content_type: str | None = None
    size: int = 0
    is_inline: bool = False


class TicketMessageRead(BaseModel):
    id: UUID
    ticket_id: UUID
    graph_message_id: str | None = None
    sender_email: str | None = None
    sender_name: str | None = None
    to_recipients: list[str] = Field(default_factory=list)
    cc_recipients: list[str] = Field(default_factory=list)
    subject: str | None = None
    body: str | None = None
    is_reply: bool
    from_agent: bool
    attachments: list[AttachmentRead] = Field(default_factory=list)
    received_at: datetime

    model_config = {"from_attributes": True}
