"""Field update validation for tickets.

``validate_update`` checks a single proposed field change against the
allowed value sets and declares any derived updates the caller must also
apply (priority drives the deadline).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Literal
from uuid import UUID

from quickdesk.core.errors import (
    ASSIGNEE_NOT_LICENSED,
    INVALID_ENUM_VALUE,
    INVALID_FIELD,
    RESERVED_TAG,
    NotFoundError,
    ValidationError,
)
from quickdesk.db.enums import TicketPriority, TicketStatus, TicketType
from quickdesk.services.lifecycle_service import RESOLVED_LATE_TAG
from quickdesk.utils.datetimes import parse_iso
from quickdesk.utils.normalization import normalize_tag

REMINDER_TAG_PATTERN = re.compile(r"^Reminder sent:", re.IGNORECASE)
UNASSIGNED_SENTINELS = (None, "", "unassigned")

# Order in which a multi-field update is applied
FIELD_ORDER = ("priority", "status", "type", "assignee", "deadline", "tags", "company_id")
FIELD_ALIASES = {"assignee_id": "assignee", "company": "company_id"}

_ENUM_FIELDS = {
    "status": TicketStatus,
    "priority": TicketPriority,
    "type": TicketType,
}


@dataclass(frozen=True)
class DerivedUpdate:
    """Follow-up change the caller must apply, e.g. deadline recompute."""

    field: str
    action: Literal["clear", "recompute"]


@dataclass(frozen=True)
class ValidatedUpdate:
    field: str
    value: Any
    derived: tuple[DerivedUpdate, ...] = ()


def is_reserved_tag(tag: str) -> bool:
    """System-managed tags are readable but never set through updates."""
    return tag.casefold() == RESOLVED_LATE_TAG.casefold() or bool(
        REMINDER_TAG_PATTERN.match(tag)
    )


def canonical_field(field: str) -> str:
    field = FIELD_ALIASES.get(field, field)
    if field not in FIELD_ORDER:
        raise ValidationError(f"Field '{field}' cannot be updated", code=INVALID_FIELD)
    return field


def validate_update(
    field: str,
    proposed_value: Any,
    current_ticket,
    *,
    assignee_lookup: Callable[[UUID], Any] | None = None,
    company_lookup: Callable[[UUID], Any] | None = None,
) -> ValidatedUpdate:
    """
    Validate one field change.

    Args:
        field: Ticket field name (``assignee_id`` and ``company`` accepted as aliases)
        proposed_value: Raw value from the caller
        current_ticket: Ticket being changed (read only)
        assignee_lookup: member_id -> member or None
        company_lookup: company_id -> company or None

    Raises:
        ValidationError: InvalidEnumValue, AssigneeNotLicensed, ReservedTag,
            InvalidField or InvalidValue
        NotFoundError: company does not exist in the organization
    """
    field = canonical_field(field)

    if field in _ENUM_FIELDS:
        enum_cls = _ENUM_FIELDS[field]
        value = coerce_enum(enum_cls, field, proposed_value)
        derived: tuple[DerivedUpdate, ...] = ()
        if field == "priority":
            action = "clear" if value == TicketPriority.NONE else "recompute"
            derived = (DerivedUpdate(field="deadline", action=action),)
        return ValidatedUpdate(field=field, value=value, derived=derived)

    if field == "assignee":
        return ValidatedUpdate(field=field, value=_validate_assignee(proposed_value, assignee_lookup))

    if field == "tags":
        return ValidatedUpdate(field=field, value=_validate_tags(proposed_value, current_ticket.tags))

    if field == "deadline":
        return ValidatedUpdate(field=field, value=_validate_deadline(proposed_value))

    return ValidatedUpdate(field=field, value=_validate_company(proposed_value, company_lookup))


def coerce_enum(enum_cls, field: str, value: Any):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field} '{value}'. Allowed: {allowed}", code=INVALID_ENUM_VALUE
        )


def _parse_uuid(value: Any, what: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {what} id '{value}'")


def _validate_assignee(value: Any, lookup: Callable[[UUID], Any] | None) -> UUID | None:
    if value in UNASSIGNED_SENTINELS:
        return None
    member_id = _parse_uuid(value, "assignee")
    member = lookup(member_id) if lookup else None
    if member is None or member.is_client or not member.has_license:
        raise ValidationError(
            "Assignee must be a licensed agent of this organization",
            code=ASSIGNEE_NOT_LICENSED,
        )
    return member_id


def _validate_tags(value: Any, current_tags: list[str]) -> list[str]:
    if value is None:
        value = []
    if isinstance(value, str) or not isinstance(value, (list, tuple, set)):
        raise ValidationError("Tags must be a list of strings")

    current = set(current_tags)
    result: list[str] = []
    seen: set[str] = set()
    for raw in value:
        if not isinstance(raw, str):
            raise ValidationError("Tags must be a list of strings")
        tag = normalize_tag(raw)
        if not tag or tag in seen:
            continue
        if is_reserved_tag(tag) and tag not in current:
            raise ValidationError(f"Tag '{tag}' is reserved", code=RESERVED_TAG)
        seen.add(tag)
        result.append(tag)

    # Reserved tags cannot be removed either
    for tag in current_tags:
        if is_reserved_tag(tag) and tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


def _validate_deadline(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        return parse_iso(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid deadline '{value}'")


def _validate_company(value: Any, lookup: Callable[[UUID], Any] | None) -> UUID | None:
    if value in (None, ""):
        return None
    company_id = _parse_uuid(value, "company")
    if lookup is None or lookup(company_id) is None:
        raise NotFoundError(f"Company {company_id} not found")
    return company_id
