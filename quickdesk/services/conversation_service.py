"""Ticket conversations: the stored e-mail thread, agent replies and forwards.

The send happens before the outgoing message is recorded; under the
workflow boundary a failed send rolls back everything, including a
thread read on the way. Inbound messages and replies set ``last_replier``;
forwards go to third parties and leave it alone.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from quickdesk.core.errors import ExternalServiceError, ValidationError
from quickdesk.core.structured_logging import mask_email
from quickdesk.db.enums import ActivityType, Replier
from quickdesk.db.models import Ticket, TicketMessage
from quickdesk.services import activity_service, graph_client, ticket_service
from quickdesk.services.activity_service import Actor
from quickdesk.services.graph_client import GraphConfig
from quickdesk.services.ticket_cache import ticket_cache
from quickdesk.utils.datetimes import now_utc, parse_iso
from quickdesk.utils.normalization import normalize_email

logger = logging.getLogger(__name__)


def _address(entry: dict[str, Any] | None) -> tuple[str | None, str | None]:
    address = (entry or {}).get("emailAddress") or {}
    return normalize_email(address.get("address")), address.get("name")


def _addresses(entries: list[dict[str, Any]] | None) -> list[str]:
    return [email for email, _ in map(_address, entries or []) if email]


def _attachment(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": raw.get("id"),
        "name": raw.get("name"),
        "content_type": raw.get("contentType"),
        "size": raw.get("size") or 0,
        "is_inline": bool(raw.get("isInline")),
    }


def parse_recipients(raw: str | list[str] | None, mailbox: str | None = None) -> list[str]:
    """
    Comma-separated string or list -> normalized addresses, in order.
    Blanks, duplicates and the support mailbox itself are dropped.
    """
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else raw
    own = normalize_email(mailbox)
    recipients: list[str] = []
    for part in parts:
        email = normalize_email(part)
        if email and email != own and email not in recipients:
            recipients.append(email)
    return recipients


def list_messages(db: Session, org_id: UUID, ticket_id: UUID) -> list[TicketMessage]:
    ticket_service.get_ticket(db, org_id, ticket_id)
    return list(
        db.execute(
            select(TicketMessage)
            .where(TicketMessage.organization_id == org_id, TicketMessage.ticket_id == ticket_id)
            .order_by(TicketMessage.received_at, TicketMessage.id)
        ).scalars().all()
    )


def record_message(
    db: Session, ticket: Ticket, message: dict[str, Any], mailbox: str | None
) -> TicketMessage:
    """Store one Graph message on the ticket's thread. Known ids are updated in place."""
    graph_id = message.get("id")
    row = None
    if graph_id:
        row = db.execute(
            select(TicketMessage).where(
                TicketMessage.ticket_id == ticket.id,
                TicketMessage.graph_message_id == graph_id,
            )
        ).scalar_one_or_none()
    if row is None:
        row = TicketMessage(
            organization_id=ticket.organization_id,
            ticket_id=ticket.id,
            graph_message_id=graph_id,
        )
        db.add(row)

    sender_email, sender_name = _address(message.get("from"))
    row.sender_email = sender_email
    row.sender_name = sender_name
    row.to_recipients = _addresses(message.get("toRecipients"))
    row.cc_recipients = _addresses(message.get("ccRecipients"))
    row.subject = message.get("subject")
    row.body = (message.get("body") or {}).get("content")
    row.from_agent = bool(mailbox) and sender_email == normalize_email(mailbox)
    row.is_reply = row.from_agent
    row.attachments = [_attachment(a) for a in message.get("attachments") or []]
    row.received_at = parse_iso(message.get("receivedDateTime")) or now_utc()
    return row


def store_conversation(
    db: Session, ticket: Ticket, messages: list[dict[str, Any]], mailbox: str | None
) -> list[TicketMessage]:
    """Upsert a thread (oldest first); the newest message sets ``last_replier``."""
    ordered = sorted(messages, key=lambda m: m.get("receivedDateTime") or "")
    rows = [record_message(db, ticket, message, mailbox) for message in ordered]
    if rows:
        ticket.last_replier = (Replier.AGENT if rows[-1].from_agent else Replier.CLIENT).value
    db.flush()
    ticket_cache.invalidate_on_commit(db, ticket.organization_id, [ticket.id])
    return rows


def mail_config(db: Session, org_id: UUID) -> GraphConfig:
    config = graph_client.config_for_org(ticket_service.get_organization(db, org_id))
    if config is None:
        raise ExternalServiceError(graph_client.SERVICE, "Mail settings are not configured")
    return config


async def sync_conversation(db: Session, org_id: UUID, ticket_id: UUID) -> list[TicketMessage]:
    """Re-read the ticket's whole conversation from Graph and store it."""
    ticket = ticket_service.get_ticket(db, org_id, ticket_id)
    if not ticket.conversation_id:
        return list_messages(db, org_id, ticket_id)
    config = mail_config(db, org_id)
    messages = await graph_client.list_conversation_messages(config, ticket.conversation_id)
    store_conversation(db, ticket, messages, config.mailbox)
    logger.info("Stored %d messages for ticket #%s", len(messages), ticket.ticket_number)
    return list_messages(db, org_id, ticket_id)


async def _thread_message_id(db: Session, ticket: Ticket) -> str | None:
    """Graph id of the newest inbound message, reading the thread once if none is stored."""
    if not ticket.conversation_id:
        return None

    def latest() -> str | None:
        return db.execute(
            select(TicketMessage.graph_message_id)
            .where(
                TicketMessage.ticket_id == ticket.id,
                TicketMessage.graph_message_id.is_not(None),
                TicketMessage.from_agent.is_(False),
            )
            .order_by(TicketMessage.received_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    message_id = latest()
    if message_id is None:
        await sync_conversation(db, ticket.organization_id, ticket.id)
        message_id = latest()
    return message_id


def _record_outbound(
    db: Session,
    ticket: Ticket,
    *,
    config: GraphConfig,
    actor: Actor,
    subject: str,
    body_html: str,
    to: list[str],
    cc: list[str],
    now: datetime,
    is_reply: bool,
) -> TicketMessage:
    row = TicketMessage(
        organization_id=ticket.organization_id,
        ticket_id=ticket.id,
        sender_email=normalize_email(config.mailbox),
        sender_name=actor.name,
        to_recipients=to,
        cc_recipients=cc,
        subject=subject,
        body=body_html,
        is_reply=is_reply,
        from_agent=True,
        attachments=[],
        received_at=now,
    )
    db.add(row)
    if is_reply:
        ticket.last_replier = Replier.AGENT.value
    ticket.updated_at = now
    db.flush()
    ticket_cache.invalidate_on_commit(db, ticket.organization_id, [ticket.id])
    return row


async def reply_to_ticket(
    db: Session,
    org_id: UUID,
    ticket_id: UUID,
    body_html: str,
    actor: Actor,
    *,
    message_id: str | None = None,
    to: str | list[str] | None = None,
    cc: str | list[str] | None = None,
    bcc: str | list[str] | None = None,
    now: datetime | None = None,
) -> TicketMessage:
    """
    Reply to the ticket's sender from the support mailbox.

    E-mail tickets are answered in-thread (``message_id`` or the newest
    inbound message). Hand-made tickets have no thread, so the reply goes
    out as a new message with a ``Re:`` subject.
    """
    now = now or now_utc()
    ticket = ticket_service.get_ticket(db, org_id, ticket_id)
    if not (body_html or "").strip():
        raise ValidationError("Reply body is required")
    config = mail_config(db, org_id)
    to_list = parse_recipients(to, config.mailbox)
    cc_list = parse_recipients(cc, config.mailbox)
    bcc_list = parse_recipients(bcc, config.mailbox)
    subject = f"Re: {ticket.subject}"

    message_id = message_id or await _thread_message_id(db, ticket)
    if message_id:
        await graph_client.reply(
            config, message_id, body_html=body_html, to=to_list, cc=cc_list, bcc=bcc_list
        )
    else:
        recipients = to_list or [ticket.sender_email]
        await graph_client.send_mail(
            config,
            recipient=recipients[0],
            subject=subject,
            body_html=body_html,
            cc=recipients[1:] + cc_list,
            bcc=bcc_list,
        )

    shown_to = to_list or [ticket.sender_email]
    row = _record_outbound(
        db, ticket, config=config, actor=actor, subject=subject,
        body_html=body_html, to=shown_to, cc=cc_list, now=now, is_reply=True,
    )
    activity_service.append(
        db,
        org_id=org_id,
        ticket_id=ticket.id,
        activity_type=ActivityType.UPDATE,
        details=f"Replied to {', '.join(shown_to)}",
        actor=actor,
        ticket_subject=ticket.subject,
        at=now,
    )
    logger.info("Reply sent on ticket #%s to %s", ticket.ticket_number, mask_email(shown_to[0]))
    return row


async def forward_ticket(
    db: Session,
    org_id: UUID,
    ticket_id: UUID,
    to: str | list[str],
    actor: Actor,
    *,
    comment_html: str = "",
    message_id: str | None = None,
    cc: str | list[str] | None = None,
    bcc: str | list[str] | None = None,
    now: datetime | None = None,
) -> TicketMessage:
    """Forward the ticket's newest message (or its body, for hand-made tickets)."""
    now = now or now_utc()
    ticket = ticket_service.get_ticket(db, org_id, ticket_id)
    config = mail_config(db, org_id)
    to_list = parse_recipients(to, config.mailbox)
    if not to_list:
        raise ValidationError("At least one forward recipient is required", code="NoRecipients")
    cc_list = parse_recipients(cc, config.mailbox)
    bcc_list = parse_recipients(bcc, config.mailbox)
    subject = f"Fwd: #{ticket.ticket_number} {ticket.subject}"

    message_id = message_id or await _thread_message_id(db, ticket)
    if message_id:
        await graph_client.forward(
            config, message_id, to=to_list, comment_html=comment_html, cc=cc_list, bcc=bcc_list
        )
        body_html = comment_html
    else:
        body_html = f"{comment_html}<hr>{ticket.body or ''}" if comment_html else ticket.body or ""
        await graph_client.send_mail(
            config,
            recipient=to_list[0],
            subject=subject,
            body_html=body_html,
            cc=to_list[1:] + cc_list,
            bcc=bcc_list,
        )

    row = _record_outbound(
        db, ticket, config=config, actor=actor, subject=subject,
        body_html=body_html, to=to_list, cc=cc_list, now=now, is_reply=False,
    )
    activity_service.append(
        db,
        org_id=org_id,
        ticket_id=ticket.id,
        activity_type=ActivityType.FORWARD,
        details=f"Forwarded to {', '.join(to_list)}",
        actor=actor,
        ticket_subject=ticket.subject,
        at=now,
    )
    logger.info("Ticket #%s forwarded to %d recipients", ticket.ticket_number, len(to_list))
    return row
