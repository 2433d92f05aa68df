import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from quickdesk.core.errors import (
    ASSIGNEE_NOT_LICENSED,
    INVALID_ENUM_VALUE,
    INVALID_FIELD,
    RESERVED_TAG,
    NotFoundError,
    ValidationError,
)
from quickdesk.db.enums import TicketPriority, TicketStatus
from quickdesk.services.ticket_validation import is_reserved_tag, validate_update


def _ticket(tags=None):
    return SimpleNamespace(tags=list(tags or []))


def _members(**members):
    return lambda member_id: members.get(str(member_id))


def test_enum_fields_are_coerced():
    result = validate_update("status", "Pending", _ticket())
    assert result.value == TicketStatus.PENDING
    assert result.derived == ()


def test_invalid_enum_value_lists_allowed_values():
    with pytest.raises(ValidationError) as exc:
        validate_update("priority", "Critical", _ticket())
    assert exc.value.code == INVALID_ENUM_VALUE
    assert "Urgent" in exc.value.message


def test_priority_declares_deadline_follow_up():
    recompute = validate_update("priority", "High", _ticket())
    assert recompute.value == TicketPriority.HIGH
    assert [(d.field, d.action) for d in recompute.derived] == [("deadline", "recompute")]

    clear = validate_update("priority", "None", _ticket())
    assert [(d.field, d.action) for d in clear.derived] == [("deadline", "clear")]


def test_unknown_field_is_rejected():
    with pytest.raises(ValidationError) as exc:
        validate_update("subject", "New subject", _ticket())
    assert exc.value.code == INVALID_FIELD


def test_assignee_must_be_licensed_non_client():
    licensed_id = uuid.uuid4()
    client_id = uuid.uuid4()
    unlicensed_id = uuid.uuid4()
    lookup = _members(**{
        str(licensed_id): SimpleNamespace(is_client=False, has_license=True),
        str(client_id): SimpleNamespace(is_client=True, has_license=True),
        str(unlicensed_id): SimpleNamespace(is_client=False, has_license=False),
    })

    assert validate_update("assignee_id", str(licensed_id), _ticket(), assignee_lookup=lookup).value == licensed_id
    for member_id in (client_id, unlicensed_id, uuid.uuid4()):
        with pytest.raises(ValidationError) as exc:
            validate_update("assignee", member_id, _ticket(), assignee_lookup=lookup)
        assert exc.value.code == ASSIGNEE_NOT_LICENSED


@pytest.mark.parametrize("value", [None, "", "unassigned"])
def test_assignee_can_be_cleared(value):
    assert validate_update("assignee", value, _ticket()).value is None


def test_tags_are_trimmed_and_deduplicated():
    result = validate_update("tags", ["  vip ", "vip", "billing  issue", ""], _ticket())
    assert result.value == ["vip", "billing issue"]


def test_reserved_tags_cannot_be_added():
    for tag in ("Resolved Late", "reminder sent: 2026-03-01"):
        with pytest.raises(ValidationError) as exc:
            validate_update("tags", ["vip", tag], _ticket())
        assert exc.value.code == RESERVED_TAG


def test_reserved_tags_survive_a_replacement():
    current = ["Resolved Late", "vip"]
    result = validate_update("tags", ["billing"], _ticket(current))
    assert result.value == ["billing", "Resolved Late"]


def test_tags_must_be_a_list_of_strings():
    with pytest.raises(ValidationError):
        validate_update("tags", "vip", _ticket())
    with pytest.raises(ValidationError):
        validate_update("tags", ["vip", 3], _ticket())


def test_deadline_accepts_iso_strings_and_clears():
    result = validate_update("deadline", "2026-04-01T10:00:00Z", _ticket())
    assert result.value == datetime(2026, 4, 1, 10, 0, tzinfo=timezone.utc)
    assert validate_update("deadline", None, _ticket()).value is None
    with pytest.raises(ValidationError):
        validate_update("deadline", "next tuesday", _ticket())


def test_company_must_exist():
    company_id = uuid.uuid4()
    lookup = lambda cid: SimpleNamespace(id=cid) if cid == company_id else None  # noqa: E731
    assert validate_update("company", str(company_id), _ticket(), company_lookup=lookup).value == company_id
    with pytest.raises(NotFoundError):
        validate_update("company_id", uuid.uuid4(), _ticket(), company_lookup=lookup)


def test_is_reserved_tag():
    assert is_reserved_tag("resolved late")
    assert is_reserved_tag("Reminder sent: 2026-01-01")
    assert not is_reserved_tag("Late customer")
