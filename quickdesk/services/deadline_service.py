"""SLA deadline policy: priority + per-org lead times -> due timestamp."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Mapping

from quickdesk.core.errors import ValidationError
from quickdesk.db.enums import (
    RANKED_PRIORITIES,
    RESOLVED_STATUSES,
    TicketPriority,
    TicketStatus,
)
from quickdesk.utils.datetimes import as_utc

DEADLINE_SETTING_KEYS = tuple(p.value for p in RANKED_PRIORITIES)


def compute_deadline(
    priority: TicketPriority | str,
    deadline_settings: Mapping[str, Any] | None,
    reference_time: datetime,
) -> datetime | None:
    """
    Return the due timestamp for ``priority``.

    ``None`` priority always yields no deadline. A lead time of 0, or a
    priority missing from ``deadline_settings``, also yields no deadline.
    Pure: no I/O, callers persist and log the result.
    """
    priority = TicketPriority(priority)
    if priority == TicketPriority.NONE:
        return None
    days = (deadline_settings or {}).get(priority.value)
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        return None
    return reference_time + timedelta(days=days)


def normalize_deadline_settings(raw: Mapping[str, Any] | None) -> dict[str, int]:
    """
    Validate the persisted ``{Urgent, High, Medium, Low}`` shape.

    Missing keys become 0 (no auto-deadline). Unknown keys, negative
    numbers and non-integers are rejected.
    """
    raw = raw or {}
    unknown = sorted(set(raw) - set(DEADLINE_SETTING_KEYS))
    if unknown:
        raise ValidationError(f"Unknown deadline setting(s): {', '.join(unknown)}")

    normalized: dict[str, int] = {}
    for key in DEADLINE_SETTING_KEYS:
        value = raw.get(key, 0)
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                f"Deadline for {key} must be a non-negative whole number of days"
            )
        normalized[key] = value
    return normalized


def is_overdue(ticket, now: datetime) -> bool:
    """True when an unresolved, non-archived ticket is past its deadline."""
    if ticket.deadline is None:
        return False
    status = TicketStatus(ticket.status)
    if status in RESOLVED_STATUSES or status == TicketStatus.ARCHIVED:
        return False
    return as_utc(now) > as_utc(ticket.deadline)
