"""Ticket workflow: create, field updates, listing, notes, archive.

A field update runs validate -> deadline policy -> lifecycle effects ->
persist -> activity log -> cache invalidation. Notifications are built
here but delivered by the caller after commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quickdesk.core.errors import NotFoundError, StateError, ValidationError
from quickdesk.db.enums import (
    ActivityType,
    DEFAULT_TICKET_PRIORITY,
    DEFAULT_TICKET_STATUS,
    DEFAULT_TICKET_TYPE,
    TicketPriority,
    TicketStatus,
    TicketType,
)
from quickdesk.db.models import (
    Company,
    OrgCounter,
    Organization,
    OrganizationMember,
    Ticket,
    TicketNote,
)
from quickdesk.services import (
    activity_service,
    contact_service,
    deadline_service,
    lifecycle_service,
    notification_service,
)
from quickdesk.services.activity_service import Actor
from quickdesk.services.notification_service import Notification
from quickdesk.services.ticket_cache import ticket_cache
from quickdesk.services.ticket_validation import (
    FIELD_ORDER,
    ValidatedUpdate,
    canonical_field,
    coerce_enum,
    validate_update,
)
from quickdesk.utils.datetimes import as_utc, isoformat_z, now_utc
from quickdesk.utils.normalization import normalize_email, strip_html

logger = logging.getLogger(__name__)

TICKET_COUNTER = "ticket_number"
LIST_LIMIT = 100
BODY_PREVIEW_LENGTH = 255

_ACTIVITY_TYPES = {
    "priority": ActivityType.PRIORITY,
    "status": ActivityType.STATUS,
    "type": ActivityType.TYPE,
    "assignee": ActivityType.ASSIGNEE,
    "deadline": ActivityType.DEADLINE,
    "tags": ActivityType.TAGS,
    "company_id": ActivityType.COMPANY,
}


@dataclass(frozen=True)
class FieldChange:
    field: str
    old: Any
    new: Any
    details: str


@dataclass
class TicketUpdateOutcome:
    ticket: Ticket
    changes: list[FieldChange] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)


@dataclass(frozen=True)
class TicketFilter:
    include_archived: bool = False
    only_archived: bool = False
    company_id: UUID | None = None
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    assignee_id: UUID | None = None
    limit: int = LIST_LIMIT


# =============================================================================
# Serialization
# =============================================================================


def serialize_ticket(ticket: Ticket) -> dict[str, Any]:
    return {
        "id": str(ticket.id),
        "organization_id": str(ticket.organization_id),
        "ticket_number": ticket.ticket_number,
        "subject": ticket.subject,
        "sender_email": ticket.sender_email,
        "sender_name": ticket.sender_name,
        "body": ticket.body,
        "body_preview": ticket.body_preview,
        "status": ticket.status,
        "priority": ticket.priority,
        "type": ticket.type,
        "assignee_id": str(ticket.assignee_id) if ticket.assignee_id else None,
        "deadline": isoformat_z(ticket.deadline),
        "tags": list(ticket.tags),
        "closed_at": isoformat_z(ticket.closed_at),
        "archived_at": isoformat_z(ticket.archived_at),
        "company_id": str(ticket.company_id) if ticket.company_id else None,
        "conversation_id": ticket.conversation_id,
        "last_replier": ticket.last_replier,
        "received_at": isoformat_z(ticket.received_at),
        "created_at": isoformat_z(ticket.created_at),
        "updated_at": isoformat_z(ticket.updated_at),
    }


# =============================================================================
# Lookups
# =============================================================================


def get_organization(db: Session, org_id: UUID) -> Organization:
    org = db.get(Organization, org_id)
    if not org:
        raise NotFoundError(f"Organization {org_id} not found")
    return org


def get_ticket(db: Session, org_id: UUID, ticket_id: UUID) -> Ticket:
    """Fetch a ticket by id (archived tickets included)."""
    ticket = db.execute(
        select(Ticket).where(Ticket.id == ticket_id, Ticket.organization_id == org_id)
    ).scalar_one_or_none()
    if not ticket:
        raise NotFoundError(f"Ticket {ticket_id} not found")
    return ticket


def get_ticket_snapshot(db: Session, org_id: UUID, ticket_id: UUID) -> dict[str, Any]:
    """Cached read of a ticket as a plain dict."""
    cached = ticket_cache.get(org_id, ticket_id)
    if cached is not None:
        return cached
    snapshot = serialize_ticket(get_ticket(db, org_id, ticket_id))
    ticket_cache.set(org_id, ticket_id, snapshot)
    return snapshot


def _get_member(db: Session, org_id: UUID, member_id: UUID) -> OrganizationMember | None:
    return db.execute(
        select(OrganizationMember).where(
            OrganizationMember.id == member_id,
            OrganizationMember.organization_id == org_id,
        )
    ).scalar_one_or_none()


def _get_company(db: Session, org_id: UUID, company_id: UUID) -> Company | None:
    return db.execute(
        select(Company).where(Company.id == company_id, Company.organization_id == org_id)
    ).scalar_one_or_none()


def find_by_conversation(db: Session, org_id: UUID, conversation_id: str) -> Ticket | None:
    return db.execute(
        select(Ticket).where(
            Ticket.organization_id == org_id,
            Ticket.conversation_id == conversation_id,
        ).limit(1)
    ).scalar_one_or_none()


# =============================================================================
# Creation
# =============================================================================


def next_ticket_number(db: Session, org_id: UUID) -> int:
    """
    Issue the next ticket number from the org counter.

    The counter is seeded once from existing tickets and only ever
    increments, so numbers of deleted tickets are never handed out again.
    """
    counter = db.execute(
        select(OrgCounter)
        .where(
            OrgCounter.organization_id == org_id,
            OrgCounter.counter_type == TICKET_COUNTER,
        )
        .with_for_update()
    ).scalar_one_or_none()
    if counter is None:
        highest = db.execute(
            select(func.coalesce(func.max(Ticket.ticket_number), 0)).where(
                Ticket.organization_id == org_id
            )
        ).scalar_one()
        counter = OrgCounter(
            organization_id=org_id, counter_type=TICKET_COUNTER, current_value=highest
        )
        db.add(counter)
    counter.current_value += 1
    db.flush()
    return counter.current_value


def create_ticket(
    db: Session,
    org_id: UUID,
    *,
    subject: str,
    sender_email: str,
    actor: Actor,
    sender_name: str | None = None,
    body: str | None = None,
    priority: TicketPriority | str | None = None,
    ticket_type: TicketType | str | None = None,
    conversation_id: str | None = None,
    received_at: datetime | None = None,
    activity_details: str = "Ticket created",
    now: datetime | None = None,
) -> Ticket:
    """Create a ticket in status Open and log ``Create``."""
    now = now or now_utc()
    org = get_organization(db, org_id)

    subject = (subject or "").strip()
    if not subject:
        raise ValidationError("Subject is required")
    email = normalize_email(sender_email)
    if not email:
        raise ValidationError("Sender email is required")

    priority = coerce_enum(TicketPriority, "priority", priority or DEFAULT_TICKET_PRIORITY)
    ticket_type = coerce_enum(TicketType, "type", ticket_type or DEFAULT_TICKET_TYPE)

    ticket = Ticket(
        organization_id=org_id,
        ticket_number=next_ticket_number(db, org_id),
        subject=subject,
        sender_email=email,
        sender_name=sender_name,
        body=body,
        body_preview=strip_html(body)[:BODY_PREVIEW_LENGTH] if body else None,
        received_at=received_at or now,
        status=DEFAULT_TICKET_STATUS.value,
        priority=priority.value,
        type=ticket_type.value,
        deadline=deadline_service.compute_deadline(priority, org.deadline_settings, now),
        company_id=contact_service.company_for_sender(db, org_id, email),
        conversation_id=conversation_id,
        creator_user_id=actor.user_id,
        created_at=now,
        updated_at=now,
    )
    db.add(ticket)
    db.flush()

    activity_service.append(
        db,
        org_id=org_id,
        ticket_id=ticket.id,
        activity_type=ActivityType.CREATE,
        details=activity_details,
        actor=actor,
        ticket_subject=ticket.subject,
        at=now,
    )
    logger.info("Created ticket #%s (%s) in org %s", ticket.ticket_number, ticket.id, org_id)
    return ticket


# =============================================================================
# Field updates
# =============================================================================


def _assignee_label(db: Session, org_id: UUID, member_id: UUID | None) -> str:
    if member_id is None:
        return "Unassigned"
    member = _get_member(db, org_id, member_id)
    return f"Assigned to {member.name if member else 'Unknown'}"


def _deadline_label(deadline: datetime | None) -> str:
    if deadline is None:
        return "Deadline cleared"
    return f"Deadline set to {notification_service.format_long_date(deadline)}"


def _same_instant(a: datetime | None, b: datetime | None) -> bool:
    return as_utc(a) == as_utc(b)


def _apply(
    db: Session,
    org: Organization,
    ticket: Ticket,
    validated: ValidatedUpdate,
    now: datetime,
) -> list[FieldChange]:
    """Persist one validated update plus its derived effects."""
    changes: list[FieldChange] = []
    name, value = validated.field, validated.value

    if name == "priority":
        if ticket.priority == value.value:
            return changes
        changes.append(FieldChange("priority", ticket.priority, value.value,
                                   f"Priority changed to {value.value}"))
        ticket.priority = value.value
        for derived in validated.derived:
            if derived.field != "deadline":
                continue
            if derived.action == "clear":
                new_deadline = None
            else:
                new_deadline = deadline_service.compute_deadline(
                    value, org.deadline_settings, now
                )
            if not _same_instant(ticket.deadline, new_deadline):
                changes.append(FieldChange("deadline", ticket.deadline, new_deadline,
                                           _deadline_label(new_deadline)))
                ticket.deadline = new_deadline

    elif name == "status":
        if value == TicketStatus.ARCHIVED:
            raise StateError(
                "Cannot archive tickets through status update. Use the archive function instead."
            )
        effects = lifecycle_service.apply_transition(ticket, value, now)
        if not effects.changed:
            return changes
        old_tags = ticket.tags
        changes.append(FieldChange("status", ticket.status, value.value,
                                   f"Status changed to {value.value}"))
        lifecycle_service.persist_transition(ticket, effects)
        if effects.add_tags:
            changes.append(FieldChange("tags", old_tags, ticket.tags,
                                       f"Tag added: {', '.join(effects.add_tags)}"))

    elif name == "type":
        if ticket.type == value.value:
            return changes
        changes.append(FieldChange("type", ticket.type, value.value,
                                   f"Type changed to {value.value}"))
        ticket.type = value.value

    elif name == "assignee":
        if ticket.assignee_id == value:
            return changes
        changes.append(FieldChange("assignee", ticket.assignee_id, value,
                                   _assignee_label(db, org.id, value)))
        ticket.assignee_id = value

    elif name == "deadline":
        if _same_instant(ticket.deadline, value):
            return changes
        changes.append(FieldChange("deadline", ticket.deadline, value, _deadline_label(value)))
        ticket.deadline = value

    elif name == "tags":
        if ticket.tags == value:
            return changes
        changes.append(FieldChange("tags", ticket.tags, value,
                                   f"Tags updated: {', '.join(value)}"))
        ticket.set_tags(value)

    elif name == "company_id":
        if ticket.company_id == value:
            return changes
        if value is None:
            details = "Company removed"
        else:
            company = _get_company(db, org.id, value)
            details = f"Company set to {company.name if company else 'Unknown'}"
        changes.append(FieldChange("company_id", ticket.company_id, value, details))
        ticket.company_id = value

    return changes


def _notifications_for(
    db: Session, org_id: UUID, ticket: Ticket, changes: list[FieldChange]
) -> list[Notification]:
    notifications: list[Notification] = []
    changed = {c.field for c in changes}
    if ticket.assignee_id is None:
        return notifications
    member = _get_member(db, org_id, ticket.assignee_id)
    if member is None:
        return notifications
    if "assignee" in changed:
        notifications.append(notification_service.ticket_assigned(ticket, member.email, member.name))
    if "priority" in changed:
        notifications.append(notification_service.priority_changed(ticket, member.email, member.name))
    return notifications


def update_ticket(
    db: Session,
    org_id: UUID,
    ticket_id: UUID,
    changes: dict[str, Any],
    actor: Actor,
    *,
    now: datetime | None = None,
) -> TicketUpdateOutcome:
    """
    Apply several field changes in a fixed order inside one transaction.

    Each field is validated against the ticket as left by the previous
    one, so system tags added by a status change survive a tag
    replacement in the same request. Any failure aborts the whole update.
    """
    now = now or now_utc()
    if not changes:
        raise ValidationError("No changes requested")

    requested = {canonical_field(name): value for name, value in changes.items()}
    org = get_organization(db, org_id)
    ticket = get_ticket(db, org_id, ticket_id)

    applied: list[FieldChange] = []
    for name in FIELD_ORDER:
        if name not in requested:
            continue
        validated = validate_update(
            name,
            requested[name],
            ticket,
            assignee_lookup=lambda member_id: _get_member(db, org_id, member_id),
            company_lookup=lambda company_id: _get_company(db, org_id, company_id),
        )
        applied.extend(_apply(db, org, ticket, validated, now))

    outcome = TicketUpdateOutcome(ticket=ticket, changes=applied)
    if not applied:
        return outcome

    ticket.updated_at = now
    db.flush()

    for change in applied:
        activity_service.append(
            db,
            org_id=org_id,
            ticket_id=ticket.id,
            activity_type=_ACTIVITY_TYPES[change.field],
            details=change.details,
            actor=actor,
            ticket_subject=ticket.subject,
            at=now,
        )

    ticket_cache.invalidate_on_commit(db, org_id, [ticket.id])
    outcome.notifications = _notifications_for(db, org_id, ticket, applied)
    return outcome


def update_ticket_field(
    db: Session,
    org_id: UUID,
    ticket_id: UUID,
    field: str,
    value: Any,
    actor: Actor,
    *,
    now: datetime | None = None,
) -> TicketUpdateOutcome:
    """Single-field entry point for ``(org, ticket, field, value, actor)`` callers."""
    return update_ticket(db, org_id, ticket_id, {field: value}, actor, now=now)


# =============================================================================
# Listing
# =============================================================================


def list_tickets(db: Session, org_id: UUID, filters: TicketFilter | None = None) -> list[Ticket]:
    """Newest first. Archived tickets are hidden unless asked for."""
    filters = filters or TicketFilter()
    query = select(Ticket).where(Ticket.organization_id == org_id)

    if filters.only_archived:
        query = query.where(Ticket.status == TicketStatus.ARCHIVED.value)
    elif not filters.include_archived:
        query = query.where(Ticket.status != TicketStatus.ARCHIVED.value)

    if filters.status is not None:
        query = query.where(Ticket.status == TicketStatus(filters.status).value)
    if filters.priority is not None:
        query = query.where(Ticket.priority == TicketPriority(filters.priority).value)
    if filters.company_id is not None:
        query = query.where(Ticket.company_id == filters.company_id)
    if filters.assignee_id is not None:
        query = query.where(Ticket.assignee_id == filters.assignee_id)

    limit = max(1, min(filters.limit, LIST_LIMIT))
    query = query.order_by(Ticket.received_at.desc(), Ticket.ticket_number.desc()).limit(limit)
    return list(db.execute(query).scalars().all())


def list_since(
    db: Session,
    org_id: UUID,
    cursor: datetime | None,
    limit: int = LIST_LIMIT,
) -> tuple[list[Ticket], datetime | None]:
    """
    Tickets changed after ``cursor`` (archived included) and the cursor
    to pass next time. Oldest change first so the cursor only advances.
    """
    query = select(Ticket).where(Ticket.organization_id == org_id)
    if cursor is not None:
        query = query.where(Ticket.updated_at > as_utc(cursor))
    query = query.order_by(Ticket.updated_at.asc(), Ticket.ticket_number.asc()).limit(
        max(1, min(limit, LIST_LIMIT))
    )
    tickets = list(db.execute(query).scalars().all())
    next_cursor = as_utc(tickets[-1].updated_at) if tickets else as_utc(cursor)
    return tickets, next_cursor


# =============================================================================
# Notes
# =============================================================================


def add_note(
    db: Session,
    org_id: UUID,
    ticket_id: UUID,
    content: str,
    actor: Actor,
    *,
    now: datetime | None = None,
) -> TicketNote:
    now = now or now_utc()
    ticket = get_ticket(db, org_id, ticket_id)
    content = (content or "").strip()
    if not content:
        raise ValidationError("Note content is required")

    note = TicketNote(
        organization_id=org_id,
        ticket_id=ticket.id,
        content=content,
        author_name=actor.name,
        author_email=actor.email,
        created_at=now,
    )
    db.add(note)
    db.flush()
    activity_service.append(
        db,
        org_id=org_id,
        ticket_id=ticket.id,
        activity_type=ActivityType.NOTE,
        details="Note added",
        actor=actor,
        ticket_subject=ticket.subject,
        at=now,
    )
    return note


def list_notes(db: Session, org_id: UUID, ticket_id: UUID) -> list[TicketNote]:
    get_ticket(db, org_id, ticket_id)
    return list(
        db.execute(
            select(TicketNote)
            .where(TicketNote.organization_id == org_id, TicketNote.ticket_id == ticket_id)
            .order_by(TicketNote.created_at)
        ).scalars().all()
    )


# =============================================================================
# Archive / delete
# =============================================================================


def _log_batch(db: Session, org_id: UUID, changed, details: str, actor: Actor, now: datetime) -> None:
    for ticket, _effects in changed:
        activity_service.append(
            db,
            org_id=org_id,
            ticket_id=ticket.id,
            activity_type=ActivityType.STATUS,
            details=details,
            actor=actor,
            ticket_subject=ticket.subject,
            at=now,
        )
    ticket_cache.invalidate_on_commit(db, org_id, [ticket.id for ticket, _ in changed])


def archive_tickets(
    db: Session,
    org_id: UUID,
    ticket_ids: list[UUID],
    actor: Actor,
    *,
    now: datetime | None = None,
) -> int:
    """Archive all requested tickets or none. Returns how many changed."""
    now = now or now_utc()
    if not ticket_ids:
        raise ValidationError("No tickets selected for archiving.")
    changed = lifecycle_service.archive_tickets(db, org_id, ticket_ids, now)
    _log_batch(db, org_id, changed, "Status changed to Archived", actor, now)
    logger.info("Archived %d tickets in org %s", len(changed), org_id)
    return len(changed)


def unarchive_tickets(
    db: Session,
    org_id: UUID,
    ticket_ids: list[UUID],
    actor: Actor,
    *,
    now: datetime | None = None,
) -> int:
    """Unarchive all requested tickets or none. Returns how many changed."""
    now = now or now_utc()
    if not ticket_ids:
        raise ValidationError("No tickets selected for unarchiving.")
    changed = lifecycle_service.unarchive_tickets(db, org_id, ticket_ids, now)
    _log_batch(db, org_id, changed, "Ticket unarchived", actor, now)
    logger.info("Unarchived %d tickets in org %s", len(changed), org_id)
    return len(changed)


def delete_ticket(db: Session, org_id: UUID, ticket_id: UUID) -> None:
    """Hard delete. The number counter is untouched, so the number stays retired."""
    ticket = get_ticket(db, org_id, ticket_id)
    db.delete(ticket)
    db.flush()
    ticket_cache.invalidate_on_commit(db, org_id, [ticket_id])
    logger.info("Deleted ticket #%s (%s) in org %s", ticket.ticket_number, ticket_id, org_id)


def repair_archive_flags(db: Session, now: datetime | None = None) -> dict[str, int]:
    """
    Make archived_at agree with status across all organizations:
    Archived tickets without archived_at get one, others lose theirs.
    """
    now = now or now_utc()
    stamped = 0
    cleared = 0

    missing = db.execute(
        select(Ticket).where(
            Ticket.status == TicketStatus.ARCHIVED.value,
            Ticket.archived_at.is_(None),
        )
    ).scalars().all()
    for ticket in missing:
        ticket.archived_at = ticket.updated_at or now
        stamped += 1

    stale = db.execute(
        select(Ticket).where(
            Ticket.status != TicketStatus.ARCHIVED.value,
            Ticket.archived_at.is_not(None),
        )
    ).scalars().all()
    for ticket in stale:
        ticket.archived_at = None
        cleared += 1

    db.flush()
    ticket_cache.clear_on_commit(db)
    logger.info("Archive flag repair: stamped=%d cleared=%d", stamped, cleared)
    return {"stamped": stamped, "cleared": cleared}
