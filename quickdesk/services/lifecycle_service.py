"""Ticket status state machine and batch archive/unarchive."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from quickdesk.core.errors import NotFoundError
from quickdesk.db.enums import RESOLVED_STATUSES, TicketStatus
from quickdesk.db.models import Ticket
from quickdesk.utils.datetimes import as_utc

logger = logging.getLogger(__name__)

RESOLVED_LATE_TAG = "Resolved Late"

ALLOWED_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.OPEN: frozenset(
        {TicketStatus.PENDING, TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.ARCHIVED}
    ),
    TicketStatus.PENDING: frozenset(
        {TicketStatus.OPEN, TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.ARCHIVED}
    ),
    TicketStatus.RESOLVED: frozenset(
        {TicketStatus.CLOSED, TicketStatus.OPEN, TicketStatus.ARCHIVED}
    ),
    TicketStatus.CLOSED: frozenset({TicketStatus.OPEN, TicketStatus.ARCHIVED}),
    TicketStatus.ARCHIVED: frozenset({TicketStatus.OPEN}),
}


@dataclass(frozen=True)
class TransitionEffects:
    """Derived changes for a status move. Unset fields mean "leave as is"."""

    from_status: TicketStatus
    to_status: TicketStatus
    closed_at: datetime | None = None
    add_tags: tuple[str, ...] = ()
    archived_at: datetime | None = None
    clear_archived_at: bool = False

    @property
    def changed(self) -> bool:
        return self.from_status != self.to_status


def is_listed_transition(current: TicketStatus, new: TicketStatus) -> bool:
    return current == new or new in ALLOWED_TRANSITIONS.get(current, frozenset())


def apply_transition(ticket: Ticket, new_status: TicketStatus | str, now: datetime) -> TransitionEffects:
    """
    Compute the derived effects of moving ``ticket`` to ``new_status``.

    No move is forbidden. Effects:
    - every move into Resolved or Closed (Resolved -> Closed included)
      stamps closed_at = now, overwriting an older value
    - entering Resolved/Closed after the deadline adds "Resolved Late"
      once; reopening never removes it
    - entering Archived stamps archived_at, leaving it clears archived_at
    """
    current = TicketStatus(ticket.status)
    new_status = TicketStatus(new_status)
    if current == new_status:
        return TransitionEffects(from_status=current, to_status=new_status)

    if not is_listed_transition(current, new_status):
        logger.info("Unlisted status transition %s -> %s on ticket %s",
                    current.value, new_status.value, ticket.id)

    closed_at = None
    add_tags: tuple[str, ...] = ()
    if new_status in RESOLVED_STATUSES:
        closed_at = now
        deadline = as_utc(ticket.deadline)
        if deadline is not None and as_utc(now) > deadline and RESOLVED_LATE_TAG not in ticket.tags:
            add_tags = (RESOLVED_LATE_TAG,)

    archived_at = now if new_status == TicketStatus.ARCHIVED else None
    clear_archived_at = current == TicketStatus.ARCHIVED

    return TransitionEffects(
        from_status=current,
        to_status=new_status,
        closed_at=closed_at,
        add_tags=add_tags,
        archived_at=archived_at,
        clear_archived_at=clear_archived_at,
    )


def persist_transition(ticket: Ticket, effects: TransitionEffects) -> None:
    """Write status plus derived effects onto the ORM object."""
    ticket.status = effects.to_status.value
    if effects.closed_at is not None:
        ticket.closed_at = effects.closed_at
    if effects.add_tags:
        tags = ticket.tags
        ticket.set_tags(tags + [t for t in effects.add_tags if t not in tags])
    if effects.archived_at is not None:
        ticket.archived_at = effects.archived_at
    if effects.clear_archived_at:
        ticket.archived_at = None


# =============================================================================
# Batch archive / unarchive (all-or-nothing)
# =============================================================================


def _load_batch(db: Session, org_id: UUID, ticket_ids: list[UUID]) -> list[Ticket]:
    """
    Fetch every requested ticket or raise one NotFoundError naming the
    missing ids. Nothing is modified before this returns.
    """
    wanted = list(dict.fromkeys(ticket_ids))
    if not wanted:
        return []
    rows = db.execute(
        select(Ticket).where(Ticket.organization_id == org_id, Ticket.id.in_(wanted))
    ).scalars().all()
    found = {t.id: t for t in rows}
    missing = [str(tid) for tid in wanted if tid not in found]
    if missing:
        raise NotFoundError(f"Tickets not found: {', '.join(missing)}", missing=missing)
    return [found[tid] for tid in wanted]


def archive_tickets(
    db: Session, org_id: UUID, ticket_ids: list[UUID], now: datetime
) -> list[tuple[Ticket, TransitionEffects]]:
    """Archive a batch; already-archived tickets are left alone."""
    tickets = _load_batch(db, org_id, ticket_ids)
    changed = []
    for ticket in tickets:
        effects = apply_transition(ticket, TicketStatus.ARCHIVED, now)
        if effects.changed:
            persist_transition(ticket, effects)
            ticket.updated_at = now
            changed.append((ticket, effects))
    db.flush()
    return changed


def unarchive_tickets(
    db: Session, org_id: UUID, ticket_ids: list[UUID], now: datetime
) -> list[tuple[Ticket, TransitionEffects]]:
    """
    Move a batch from Archived back to Open.

    Every id is validated before any change; tickets that are not archived
    are left untouched.
    """
    tickets = _load_batch(db, org_id, ticket_ids)
    changed = []
    for ticket in tickets:
        if TicketStatus(ticket.status) != TicketStatus.ARCHIVED:
            continue
        effects = apply_transition(ticket, TicketStatus.OPEN, now)
        persist_transition(ticket, effects)
        ticket.updated_at = now
        changed.append((ticket, effects))
    db.flush()
    return changed
