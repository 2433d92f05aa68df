"""Activity logging service - append-only ticket timelines."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quickdesk.db.enums import ActivityType
from quickdesk.db.models import ActivityLog, Ticket
from quickdesk.utils.datetimes import now_utc

ORG_ACTIVITY_LIMIT = 100


@dataclass(frozen=True)
class Actor:
    """Who performed an action. ``user_id`` is None for system actions."""

    user_id: UUID | None
    name: str | None
    email: str | None


SYSTEM_ACTOR = Actor(user_id=None, name="System", email=None)


def append(
    db: Session,
    *,
    org_id: UUID,
    ticket_id: UUID,
    activity_type: ActivityType,
    details: str,
    actor: Actor,
    ticket_subject: str | None = None,
    at: datetime | None = None,
) -> ActivityLog:
    """
    Append a timeline entry.

    The per-ticket ``sequence`` is assigned here, never by the caller; the
    unique (ticket_id, sequence) constraint turns a concurrent collision
    into an error instead of a silent reorder. Failures propagate: the
    ticket change may already be flushed, but the caller's transaction
    is rolled back by the workflow boundary.
    """
    next_sequence = db.execute(
        select(func.coalesce(func.max(ActivityLog.sequence), 0)).where(
            ActivityLog.ticket_id == ticket_id
        )
    ).scalar_one() + 1

    entry = ActivityLog(
        organization_id=org_id,
        ticket_id=ticket_id,
        sequence=next_sequence,
        type=ActivityType(activity_type).value,
        details=details,
        ticket_subject=ticket_subject,
        date=at or now_utc(),
        user_id=actor.user_id,
        user_name=actor.name,
        user_email=actor.email,
    )
    db.add(entry)
    db.flush()  # Don't commit - let caller control transaction
    return entry


def list_for_ticket(db: Session, org_id: UUID, ticket_id: UUID) -> list[ActivityLog]:
    """Entries for one ticket in append order."""
    return list(
        db.execute(
            select(ActivityLog)
            .where(
                ActivityLog.organization_id == org_id,
                ActivityLog.ticket_id == ticket_id,
            )
            .order_by(ActivityLog.sequence)
        ).scalars().all()
    )


def list_for_org(db: Session, org_id: UUID, limit: int = ORG_ACTIVITY_LIMIT) -> list[ActivityLog]:
    """Latest entries across the organization, newest first."""
    return list(
        db.execute(
            select(ActivityLog)
            .where(ActivityLog.organization_id == org_id)
            .order_by(ActivityLog.date.desc(), ActivityLog.sequence.desc())
            .limit(limit)
        ).scalars().all()
    )


def list_for_company(
    db: Session, org_id: UUID, company_id: UUID, limit: int = ORG_ACTIVITY_LIMIT
) -> list[ActivityLog]:
    """Latest entries for tickets that belong to ``company_id``."""
    ticket_ids = select(Ticket.id).where(
        Ticket.organization_id == org_id, Ticket.company_id == company_id
    )
    return list(
        db.execute(
            select(ActivityLog)
            .where(
                ActivityLog.organization_id == org_id,
                ActivityLog.ticket_id.in_(ticket_ids),
            )
            .order_by(ActivityLog.date.desc(), ActivityLog.sequence.desc())
            .limit(limit)
        ).scalars().all()
    )
