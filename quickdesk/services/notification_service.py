"""E-mail notifications for ticket events and member invitations.

Builders are pure and run inside the ticket transaction; ``deliver`` sends
through Microsoft Graph after the commit. A failed delivery is logged and
reported back, it never undoes the ticket change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from html import escape

from quickdesk.core.config import settings
from quickdesk.core.errors import ExternalServiceError
from quickdesk.core.structured_logging import mask_email
from quickdesk.utils.datetimes import as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    kind: str
    recipient: str
    subject: str
    body_html: str


def format_long_date(value: datetime | None) -> str:
    """``Monday, January 1, 2024`` (no locale dependency)."""
    if value is None:
        return "Not set"
    value = as_utc(value)
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def _ticket_url(ticket) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/tickets/{ticket.id}"


def _wrap(heading: str, greeting: str, lines: list[str], link: str | None = None) -> str:
    rows = "".join(f"<p>{line}</p>" for line in lines)
    button = f'<p><a href="{escape(link)}">View Ticket</a></p>' if link else ""
    return (
        "<html><body>"
        f"<h2>{escape(heading)}</h2>"
        f"<p>{escape(greeting)}</p>"
        f"{rows}{button}"
        "<p>This is an automated notification from your ticketing system.</p>"
        "</body></html>"
    )


def ticket_assigned(ticket, assignee_email: str, assignee_name: str | None) -> Notification:
    name = assignee_name or assignee_email
    return Notification(
        kind="ticket_assigned",
        recipient=assignee_email,
        subject=f"New Ticket Assigned: #{ticket.ticket_number} - {ticket.subject}",
        body_html=_wrap(
            "New Ticket Assigned",
            f"Hello {name},",
            [
                f"<strong>Ticket #:</strong> {ticket.ticket_number}",
                f"<strong>Subject:</strong> {escape(ticket.subject)}",
                f"<strong>Priority:</strong> {escape(ticket.priority)}",
                f"<strong>Deadline:</strong> {format_long_date(ticket.deadline)}",
            ],
            _ticket_url(ticket),
        ),
    )


def priority_changed(ticket, assignee_email: str, assignee_name: str | None) -> Notification:
    name = assignee_name or assignee_email
    return Notification(
        kind="priority_changed",
        recipient=assignee_email,
        subject=f"Deadline Updated: Ticket #{ticket.ticket_number} - {ticket.subject}",
        body_html=_wrap(
            "Ticket Deadline Changed",
            f"Hello {name},",
            [
                "The priority of a ticket assigned to you has been updated:",
                f"<strong>Ticket #:</strong> {ticket.ticket_number}",
                f"<strong>Subject:</strong> {escape(ticket.subject)}",
                f"<strong>New Priority:</strong> {escape(ticket.priority)}",
                f"<strong>New Deadline:</strong> {format_long_date(ticket.deadline)}",
                f"<strong>Status:</strong> {escape(ticket.status)}",
            ],
            _ticket_url(ticket),
        ),
    )


def ticket_created(ticket) -> Notification:
    return Notification(
        kind="ticket_created",
        recipient=ticket.sender_email,
        subject=f"Ticket Created: #{ticket.ticket_number} - {ticket.subject}",
        body_html=_wrap(
            "We received your request",
            f"Hello {ticket.sender_name or ticket.sender_email},",
            [
                f"Your ticket #{ticket.ticket_number} has been created.",
                f"<strong>Subject:</strong> {escape(ticket.subject)}",
            ],
        ),
    )


def deadline_reminder(ticket, assignee_email: str, assignee_name: str | None, overdue: bool) -> Notification:
    name = assignee_name or assignee_email
    state = "is overdue" if overdue else "is due soon"
    return Notification(
        kind="deadline_reminder",
        recipient=assignee_email,
        subject=f"Deadline Reminder: Ticket #{ticket.ticket_number} - {ticket.subject}",
        body_html=_wrap(
            "Ticket Deadline Reminder",
            f"Hello {name},",
            [
                f"Ticket #{ticket.ticket_number} {state}.",
                f"<strong>Subject:</strong> {escape(ticket.subject)}",
                f"<strong>Deadline:</strong> {format_long_date(ticket.deadline)}",
            ],
            _ticket_url(ticket),
        ),
    )


def member_invitation(org_name: str, member_name: str, member_email: str) -> Notification:
    signup_url = f"{settings.FRONTEND_URL.rstrip('/')}/member-signup?email={member_email}"
    return Notification(
        kind="member_invitation",
        recipient=member_email,
        subject=f"You're invited to join {org_name} on Quickdesk",
        body_html=(
            "<html><body>"
            f"<p>Hello {escape(member_name)},</p>"
            f"<p>You have been invited to join <strong>{escape(org_name)}</strong>.</p>"
            f'<p><a href="{escape(signup_url)}">Create your account</a></p>'
            "</body></html>"
        ),
    )


async def deliver(org, notification: Notification) -> bool:
    """
    Send one notification through the organization's mailbox.

    Returns False (and logs) when mail is not configured or the provider
    rejects the message.
    """
    from quickdesk.services import graph_client

    config = graph_client.config_for_org(org)
    if config is None:
        logger.info("Mail not configured for org %s; skipped %s", org.id, notification.kind)
        return False
    try:
        await graph_client.send_mail(
            config,
            recipient=notification.recipient,
            subject=notification.subject,
            body_html=notification.body_html,
        )
    except ExternalServiceError as exc:
        logger.warning(
            "Notification %s to %s failed: %s",
            notification.kind, mask_email(notification.recipient), exc.message,
        )
        return False
    logger.info("Notification %s sent to %s", notification.kind, mask_email(notification.recipient))
    return True


async def deliver_all(org, notifications: list[Notification]) -> int:
    sent = 0
    for notification in notifications:
        if await deliver(org, notification):
            sent += 1
    return sent
