"""Create tickets from new inbox messages (Microsoft Graph)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quickdesk.core.errors import NotFoundError
from quickdesk.core.structured_logging import mask_email
from quickdesk.db.enums import DEFAULT_TICKET_PRIORITY, MemberStatus
from quickdesk.db.models import Organization, Ticket
from quickdesk.services import (
    contact_service,
    conversation_service,
    graph_client,
    notification_service,
    ticket_service,
)
from quickdesk.services.activity_service import SYSTEM_ACTOR
from quickdesk.services.contact_service import EmployeeContact
from quickdesk.services.notification_service import Notification
from quickdesk.utils.datetimes import parse_iso
from quickdesk.utils.normalization import normalize_email

logger = logging.getLogger(__name__)

AUTO_REPLY_KEYWORDS = (
    "auto:",
    "automatic reply",
    "out of office",
    "undeliverable",
    "delivery status notification",
)
SYSTEM_NOTIFICATION_KEYWORDS = (
    "notification:",
    "update on ticket",
    "you've been assigned",
    "ticket created:",
)
EMAIL_SYNC_DETAILS = "Ticket created from email"


@dataclass
class SyncResult:
    tickets_created: int = 0
    messages_recorded: int = 0
    skipped: dict[str, int] = field(default_factory=dict)
    ticket_ids: list[UUID] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)

    def skip(self, reason: str) -> None:
        self.skipped[reason] = self.skipped.get(reason, 0) + 1


def _sender(message: dict[str, Any]) -> tuple[str | None, str | None]:
    address = (message.get("from") or {}).get("emailAddress") or {}
    return normalize_email(address.get("address")), address.get("name")


def skip_reason(
    db: Session, org_id: UUID, message: dict[str, Any], mailbox: str | None
) -> str | None:
    """Why a message must not become a ticket, or None when it should."""
    if not message.get("conversationId"):
        return "no_conversation"

    sender_email, _ = _sender(message)
    if not sender_email:
        return "no_sender"
    if mailbox and sender_email == normalize_email(mailbox):
        return "own_mailbox"

    subject = (message.get("subject") or "").lower()
    if any(keyword in subject for keyword in AUTO_REPLY_KEYWORDS):
        return "auto_reply"
    if any(keyword in subject for keyword in SYSTEM_NOTIFICATION_KEYWORDS):
        return "system_notification"

    if ticket_service.find_by_conversation(db, org_id, message["conversationId"]):
        return "existing_conversation"

    contact = contact_service.resolve_contact(db, org_id, sender_email)
    if not isinstance(contact, EmployeeContact) or contact.status != MemberStatus.VERIFIED:
        return "unverified_sender"
    return None


def ingest_messages(
    db: Session,
    org_id: UUID,
    messages: list[dict[str, Any]],
    *,
    mailbox: str | None = None,
) -> SyncResult:
    """
    Turn qualifying messages into Open tickets with the default priority.
    Oldest message first so ticket numbers follow arrival order. Messages
    in a conversation that already has a ticket join its stored thread.
    """
    result = SyncResult()
    ordered = sorted(messages, key=lambda m: m.get("receivedDateTime") or "")
    for message in ordered:
        reason = skip_reason(db, org_id, message, mailbox)
        if reason == "existing_conversation":
            ticket = ticket_service.find_by_conversation(db, org_id, message["conversationId"])
            conversation_service.store_conversation(db, ticket, [message], mailbox)
            result.messages_recorded += 1
            continue
        if reason:
            result.skip(reason)
            continue

        sender_email, sender_name = _sender(message)
        body = (message.get("body") or {}).get("content")
        ticket = ticket_service.create_ticket(
            db,
            org_id,
            subject=message.get("subject") or "(no subject)",
            sender_email=sender_email,
            sender_name=sender_name,
            body=body,
            priority=DEFAULT_TICKET_PRIORITY,
            conversation_id=message["conversationId"],
            received_at=parse_iso(message.get("receivedDateTime")),
            actor=SYSTEM_ACTOR,
            activity_details=EMAIL_SYNC_DETAILS,
        )
        if message.get("bodyPreview"):
            ticket.body_preview = message["bodyPreview"]
        conversation_service.store_conversation(db, ticket, [message], mailbox)
        result.tickets_created += 1
        result.ticket_ids.append(ticket.id)
        result.notifications.append(notification_service.ticket_created(ticket))
        logger.info("Ticket #%s created from email by %s", ticket.ticket_number, mask_email(sender_email))
    db.flush()
    return result


def latest_received_at(db: Session, org_id: UUID) -> datetime | None:
    return db.execute(
        select(func.max(Ticket.received_at)).where(
            Ticket.organization_id == org_id, Ticket.conversation_id.is_not(None)
        )
    ).scalar_one_or_none()


async def sync_emails_to_tickets(
    db: Session, org_id: UUID, since: datetime | None = None
) -> SyncResult:
    """Fetch new inbox messages for one organization and ingest them."""
    org = db.get(Organization, org_id)
    if not org:
        raise NotFoundError(f"Organization {org_id} not found")
    config = graph_client.config_for_org(org)
    if config is None:
        logger.info("Mail not configured for org %s; email sync skipped", org_id)
        return SyncResult()

    since = since or latest_received_at(db, org_id)
    messages = await graph_client.list_inbox_messages(config, since)
    return ingest_messages(db, org_id, messages, mailbox=config.mailbox)


async def process_email_sync(db: Session) -> dict:
    """
    Sync every organization's inbox. Organizations without mail settings
    are skipped; one failing mailbox does not stop the others.
    """
    orgs = db.execute(select(Organization.id, Organization.name)).all()

    total_created = 0
    total_sent = 0
    errors = []

    for org_id, org_name in orgs:
        try:
            result = await sync_emails_to_tickets(db, org_id)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.exception("Email sync failed for org %s", org_id)
            errors.append({"org_id": str(org_id), "org_name": org_name, "error": str(e)})
            continue
        total_created += result.tickets_created
        if result.notifications:
            total_sent += await notification_service.deliver_all(
                db.get(Organization, org_id), result.notifications
            )

    return {
        "orgs_processed": len(orgs),
        "tickets_created": total_created,
        "notifications_sent": total_sent,
        "errors": errors,
    }
