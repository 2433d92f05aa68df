"""Tickets, tags, notes, activity log and the per-org number counter."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickdesk.db.base import Base
from quickdesk.db.enums import (
    DEFAULT_TICKET_PRIORITY,
    DEFAULT_TICKET_STATUS,
    DEFAULT_TICKET_TYPE,
)
from quickdesk.utils.datetimes import now_utc


class OrgCounter(Base):
    """
    Per-organization counters (ticket numbers).

    Values only ever increase; deleted or archived numbers are never reused.
    """

    __tablename__ = "org_counters"

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True
    )
    counter_type: Mapped[str] = mapped_column(String(50), primary_key=True)
    current_value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Ticket(Base):
    """Support ticket created from an inbound conversation or by hand."""

    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("organization_id", "ticket_number", name="uq_ticket_org_number"),
        Index("idx_tickets_org_status", "organization_id", "status"),
        Index("idx_tickets_org_updated", "organization_id", "updated_at"),
        Index("idx_tickets_conversation", "organization_id", "conversation_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    ticket_number: Mapped[int] = mapped_column(Integer, nullable=False)

    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    sender_email: Mapped[str] = mapped_column(String(255), nullable=False)
    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    body_preview: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_TICKET_STATUS.value, nullable=False
    )
    priority: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_TICKET_PRIORITY.value, nullable=False
    )
    type: Mapped[str] = mapped_column(
        String(30), default=DEFAULT_TICKET_TYPE.value, nullable=False
    )
    assignee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("organization_members.id", ondelete="SET NULL"), nullable=True
    )
    deadline: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)
    company_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True
    )
    conversation_id: Mapped[str | None] = mapped_column(String(500), nullable=True)

    creator_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    last_replier: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)

    tag_rows: Mapped[list["TicketTag"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="TicketTag.position",
    )

    @property
    def tags(self) -> list[str]:
        """Tag values in insertion order."""
        return [row.tag for row in self.tag_rows]

    def set_tags(self, tags: list[str]) -> None:
        """Replace the tag set, keeping rows for tags that survive."""
        existing = {row.tag: row for row in self.tag_rows}
        rows = []
        for position, tag in enumerate(tags):
            row = existing.get(tag) or TicketTag(tag=tag)
            row.position = position
            rows.append(row)
        self.tag_rows = rows


class TicketTag(Base):
    __tablename__ = "ticket_tags"
    __table_args__ = (UniqueConstraint("ticket_id", "tag", name="uq_ticket_tag"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    tag: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    ticket: Mapped["Ticket"] = relationship(back_populates="tag_rows")


class TicketNote(Base):
    """Internal note on a ticket."""

    __tablename__ = "ticket_notes"
    __table_args__ = (Index("idx_ticket_notes_ticket", "ticket_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    author_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)


class TicketMessage(Base):
    """
    One e-mail of a ticket's conversation, inbound or sent by an agent.

    ``graph_message_id`` is null for agent messages sent before Graph
    assigned an id; attachments hold metadata only, never content.
    """

    __tablename__ = "ticket_messages"
    __table_args__ = (
        UniqueConstraint("ticket_id", "graph_message_id", name="uq_ticket_message_graph_id"),
        Index("idx_ticket_messages_ticket", "ticket_id", "received_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    graph_message_id: Mapped[str | None] = mapped_column(String(500), nullable=True)
    sender_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sender_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    to_recipients: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    cc_recipients: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_reply: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    from_agent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attachments: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    received_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)


class ActivityLog(Base):
    """
    Append-only ticket timeline entry.

    ``sequence`` is assigned server-side per ticket and defines the
    retrieval order. Rows are never updated or deleted by the service.
    The ticket id is kept without a foreign key so the timeline survives
    ticket deletion.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        UniqueConstraint("ticket_id", "sequence", name="uq_activity_ticket_sequence"),
        Index("idx_activity_org_date", "organization_id", "date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    details: Mapped[str] = mapped_column(Text, nullable=False)
    ticket_subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    date: Mapped[datetime] = mapped_column(nullable=False)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    user_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
