"""API tests for the ticket inbox, updates, notes and archive endpoints."""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

from quickdesk.db.enums import Role
from quickdesk.services.ticket_cache import ticket_cache


async def _create_ticket(api: AsyncClient, **overrides) -> dict:
    payload = {
        "subject": "VPN keeps dropping",
        "sender_email": "ella@example.com",
        "sender_name": "Ella",
        "body": "<p>Every 10 minutes</p>",
    }
    payload.update(overrides)
    response = await api.post("/tickets", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_list_and_get_ticket(authed_client: AsyncClient):
    created = await _create_ticket(authed_client, priority="High")
    assert created["ticket_number"] == 1
    assert created["status"] == "Open"
    assert created["deadline"] is not None
    assert created["body_preview"] == "Every 10 minutes"

    listed = await authed_client.get("/tickets")
    assert listed.status_code == 200
    assert [t["id"] for t in listed.json()["items"]] == [created["id"]]

    detail = await authed_client.get(f"/tickets/{created['id']}")
    assert detail.status_code == 200
    assert detail.json()["body"] == "<p>Every 10 minutes</p>"


@pytest.mark.asyncio
async def test_cached_detail_reflects_committed_patch(authed_client: AsyncClient):
    ticket = await _create_ticket(authed_client)
    first = (await authed_client.get(f"/tickets/{ticket['id']}")).json()
    assert first["type"] == "Incident"
    assert ticket_cache.get(uuid.UUID(first["organization_id"]), uuid.UUID(ticket["id"])) is not None

    patched = await authed_client.patch(f"/tickets/{ticket['id']}", json={"type": "Problem", "tags": ["vip"]})
    assert patched.status_code == 200

    detail = (await authed_client.get(f"/tickets/{ticket['id']}")).json()
    assert detail["type"] == "Problem"
    assert detail["tags"] == ["vip"]


@pytest.mark.asyncio
async def test_patch_applies_fields_and_reports_changes(authed_client: AsyncClient, test_agent):
    ticket = await _create_ticket(authed_client)

    response = await authed_client.patch(
        f"/tickets/{ticket['id']}",
        json={"priority": "Urgent", "assignee_id": str(test_agent.id), "tags": ["vpn"]},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["ticket"]["priority"] == "Urgent"
    assert body["ticket"]["assignee_id"] == str(test_agent.id)
    assert body["ticket"]["tags"] == ["vpn"]
    assert body["ticket"]["deadline"] is not None
    assert [c["field"] for c in body["changes"]] == ["priority", "deadline", "assignee", "tags"]

    activity = await authed_client.get(f"/tickets/{ticket['id']}/activity")
    assert [e["type"] for e in activity.json()] == ["Create", "Priority", "Deadline", "Assignee", "Tags"]


@pytest.mark.asyncio
async def test_patch_null_clears_deadline(authed_client: AsyncClient):
    ticket = await _create_ticket(authed_client, priority="Low")
    response = await authed_client.patch(f"/tickets/{ticket['id']}", json={"deadline": None})
    assert response.status_code == 200
    assert response.json()["ticket"]["deadline"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload,status_code,code",
    [
        ({"priority": "Critical"}, 400, "InvalidEnumValue"),
        ({"status": "Archived"}, 409, "StateError"),
        ({"tags": ["Resolved Late"]}, 400, "ReservedTag"),
        ({}, 400, "InvalidValue"),
    ],
)
async def test_patch_failures_return_action_result(authed_client: AsyncClient, payload, status_code, code):
    ticket = await _create_ticket(authed_client)

    response = await authed_client.patch(f"/tickets/{ticket['id']}", json=payload)

    assert response.status_code == status_code
    body = response.json()
    assert body["success"] is False
    assert body["code"] == code
    assert body["error"]


@pytest.mark.asyncio
async def test_failed_patch_changes_nothing(authed_client: AsyncClient, member_factory):
    _user, client_member = member_factory(name="Cy Client", email="cy@client.com", is_client=True)
    ticket = await _create_ticket(authed_client)

    response = await authed_client.patch(
        f"/tickets/{ticket['id']}",
        json={"priority": "High", "assignee_id": str(client_member.id)},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "AssigneeNotLicensed"

    detail = (await authed_client.get(f"/tickets/{ticket['id']}")).json()
    assert detail["priority"] == "None"
    assert detail["deadline"] is None


@pytest.mark.asyncio
async def test_archive_all_or_nothing(authed_client: AsyncClient):
    first = await _create_ticket(authed_client, subject="first")
    second = await _create_ticket(authed_client, subject="second")
    missing = str(uuid.uuid4())

    failed = await authed_client.post("/tickets/archive", json={"ticket_ids": [first["id"], missing]})
    assert failed.status_code == 404
    assert failed.json()["missing"] == [missing]

    archived = await authed_client.post("/tickets/archive", json={"ticket_ids": [first["id"], second["id"]]})
    assert archived.json() == {
        "success": True, "error": None, "code": None, "missing": [], "count": 2,
    }
    assert (await authed_client.get("/tickets")).json()["items"] == []
    only_archived = (await authed_client.get("/tickets", params={"archived": "true"})).json()["items"]
    assert {t["id"] for t in only_archived} == {first["id"], second["id"]}

    restored = await authed_client.post("/tickets/unarchive", json={"ticket_ids": [first["id"]]})
    assert restored.json()["count"] == 1
    assert [t["id"] for t in (await authed_client.get("/tickets")).json()["items"]] == [first["id"]]


@pytest.mark.asyncio
async def test_notes(authed_client: AsyncClient, test_owner):
    ticket = await _create_ticket(authed_client)

    created = await authed_client.post(f"/tickets/{ticket['id']}/notes", json={"content": "Asked for logs"})
    assert created.status_code == 201
    assert created.json()["author_email"] == test_owner.email

    notes = await authed_client.get(f"/tickets/{ticket['id']}/notes")
    assert [n["content"] for n in notes.json()] == ["Asked for logs"]


@pytest.mark.asyncio
async def test_delete_ticket(authed_client: AsyncClient):
    ticket = await _create_ticket(authed_client)
    assert (await authed_client.delete(f"/tickets/{ticket['id']}")).status_code == 204

    missing = await authed_client.get(f"/tickets/{ticket['id']}")
    assert missing.status_code == 404
    assert missing.json()["success"] is False
    assert missing.json()["code"] == "NotFound"


@pytest.mark.asyncio
async def test_changes_feed_and_polling_policy(authed_client: AsyncClient):
    ticket = await _create_ticket(authed_client)

    feed = await authed_client.get("/tickets/changes")
    assert feed.status_code == 200
    assert [t["id"] for t in feed.json()["items"]] == [ticket["id"]]
    cursor = feed.json()["next_cursor"]

    empty = await authed_client.get("/tickets/changes", params={"cursor": cursor})
    assert empty.json()["items"] == []

    policy = await authed_client.get("/tickets/polling-policy", params={"tab_hidden": "true"})
    assert policy.status_code == 200
    assert policy.json()["next_interval_seconds"] is None


@pytest.mark.asyncio
async def test_list_filters_validate_enum_values(authed_client: AsyncClient):
    await _create_ticket(authed_client, priority="High")
    await _create_ticket(authed_client, priority="Low")

    high = await authed_client.get("/tickets", params={"priority": "High"})
    assert [t["priority"] for t in high.json()["items"]] == ["High"]

    bad = await authed_client.get("/tickets", params={"status": "Done"})
    assert bad.status_code == 400
    assert bad.json()["code"] == "InvalidEnumValue"


@pytest.mark.asyncio
async def test_ticket_routes_require_staff_session_and_csrf(
    client: AsyncClient, client_as, test_org, member_factory, authed_client: AsyncClient
):
    assert (await client.get("/tickets")).status_code == 401

    client_user, _ = member_factory(name="Cora Client", email="cora@client.com", is_client=True)
    client_api = client_as(client_user, test_org, Role.CLIENT)
    assert (await client_api.get("/tickets")).status_code == 403

    agent_user, _ = member_factory(name="Abe Agent", email="abe@test.com")
    agent_api = client_as(agent_user, test_org, Role.AGENT)
    assert (await agent_api.get("/tickets")).status_code == 200

    no_csrf = await authed_client.post(
        "/tickets",
        json={"subject": "x", "sender_email": "a@example.com"},
        headers={"X-Requested-With": ""},
    )
    assert no_csrf.status_code == 403


@pytest.mark.asyncio
async def test_reply_records_thread_and_marks_agent_as_last_replier(authed_client: AsyncClient, mail_outbox):
    ticket = await _create_ticket(authed_client)
    mail_outbox.clear()

    response = await authed_client.post(f"/tickets/{ticket['id']}/reply", json={"body": "<p>Restart the client</p>"})

    assert response.status_code == 200, response.text
    assert response.json()["from_agent"] is True
    assert mail_outbox[0]["subject"] == "Re: VPN keeps dropping"

    thread = (await authed_client.get(f"/tickets/{ticket['id']}/messages")).json()
    assert [m["body"] for m in thread] == ["<p>Restart the client</p>"]
    assert (await authed_client.get(f"/tickets/{ticket['id']}")).json()["last_replier"] == "agent"

    activity = (await authed_client.get(f"/tickets/{ticket['id']}/activity")).json()
    assert activity[-1]["type"] == "Update"


@pytest.mark.asyncio
async def test_forward_without_mail_settings_returns_action_result(authed_client: AsyncClient):
    ticket = await _create_ticket(authed_client)

    response = await authed_client.post(f"/tickets/{ticket['id']}/forward", json={"to": "ops@vendor.com"})

    assert response.status_code == 502
    assert response.json()["success"] is False
    assert response.json()["code"] == "ExternalServiceError"
    assert (await authed_client.get(f"/tickets/{ticket['id']}/messages")).json() == []
