"""Deadline reminders for assigned, unresolved tickets."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from quickdesk.db.enums import ActivityType, RESOLVED_STATUSES, TicketStatus
from quickdesk.db.models import Organization, OrganizationMember, Ticket
from quickdesk.services import activity_service, deadline_service, notification_service
from quickdesk.services.activity_service import SYSTEM_ACTOR
from quickdesk.services.notification_service import Notification
from quickdesk.services.ticket_cache import ticket_cache
from quickdesk.utils.datetimes import as_utc, now_utc

logger = logging.getLogger(__name__)

REMINDER_WINDOW = timedelta(hours=24)


def reminder_tag(deadline: datetime) -> str:
    return f"Reminder sent: {as_utc(deadline).date().isoformat()}"


def check_deadline_reminders_for_org(
    db: Session, org_id: UUID, *, now: datetime | None = None
) -> tuple[dict, list[Notification]]:
    """
    Find assigned tickets due within 24h (or overdue) that have no
    reminder for their current deadline, tag them and build reminders.

    The reminder tag is a system tag, written directly and not through
    the field validator. Returns stats and notifications to deliver.
    """
    now = as_utc(now or now_utc())
    excluded = [s.value for s in RESOLVED_STATUSES] + [TicketStatus.ARCHIVED.value]
    tickets = db.execute(
        select(Ticket).where(
            Ticket.organization_id == org_id,
            Ticket.deadline.is_not(None),
            Ticket.assignee_id.is_not(None),
            Ticket.status.not_in(excluded),
        )
    ).scalars().all()

    notifications: list[Notification] = []
    checked = 0
    for ticket in tickets:
        deadline = as_utc(ticket.deadline)
        if deadline - now > REMINDER_WINDOW:
            continue
        checked += 1
        tag = reminder_tag(deadline)
        if tag in ticket.tags:
            continue
        member = db.get(OrganizationMember, ticket.assignee_id)
        if member is None:
            continue

        ticket.set_tags(ticket.tags + [tag])
        ticket.updated_at = now
        activity_service.append(
            db,
            org_id=org_id,
            ticket_id=ticket.id,
            activity_type=ActivityType.TAGS,
            details=f"Tag added: {tag}",
            actor=SYSTEM_ACTOR,
            ticket_subject=ticket.subject,
            at=now,
        )
        ticket_cache.invalidate_on_commit(db, org_id, [ticket.id])
        notifications.append(
            notification_service.deadline_reminder(
                ticket, member.email, member.name, overdue=deadline_service.is_overdue(ticket, now)
            )
        )
    db.flush()
    stats = {"tickets_checked": checked, "reminders_created": len(notifications)}
    if notifications:
        logger.info("Deadline reminders for org %s: %s", org_id, stats)
    return stats, notifications


async def process_deadline_reminders(db: Session, *, now: datetime | None = None) -> dict:
    """
    Run the reminder check for every organization.

    Each organization commits on its own; a failure is rolled back,
    recorded and does not stop the others. Reminders are sent after
    the tags are committed.
    """
    now = now or now_utc()
    orgs = db.execute(select(Organization.id, Organization.name)).all()

    total_checked = 0
    total_reminders = 0
    total_sent = 0
    errors = []

    for org_id, org_name in orgs:
        try:
            stats, notifications = check_deadline_reminders_for_org(db, org_id, now=now)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.exception("Deadline reminders failed for org %s", org_id)
            errors.append({"org_id": str(org_id), "org_name": org_name, "error": str(e)})
            continue
        total_checked += stats["tickets_checked"]
        total_reminders += stats["reminders_created"]
        if notifications:
            total_sent += await notification_service.deliver_all(db.get(Organization, org_id), notifications)

    return {
        "orgs_processed": len(orgs),
        "tickets_checked": total_checked,
        "reminders_created": total_reminders,
        "reminders_sent": total_sent,
        "errors": errors,
    }
