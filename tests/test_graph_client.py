"""Graph mail client against a mocked transport: single calls, paging, reply and forward."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from quickdesk.core.errors import ExternalServiceError
from quickdesk.services import graph_client
from quickdesk.services.graph_client import GraphConfig

CONFIG = GraphConfig("tenant", "client", "secret", "support@test.com")
INBOX_URL = f"{graph_client.GRAPH_BASE_URL}/users/support@test.com/mailFolders/inbox/messages"
SINCE = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


def _token_or(responder):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "login.microsoftonline.com":
            return httpx.Response(200, json={"access_token": "token-1"})
        return responder(request)
    return handler


@pytest.fixture
def graph_calls(monkeypatch):
    """Route every Graph request through ``handler``; returns the recorded requests."""
    calls: list[httpx.Request] = []

    def install(handler):
        def recording(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        transport = httpx.MockTransport(recording)
        monkeypatch.setattr(graph_client, "_client", lambda: httpx.AsyncClient(transport=transport))
        return calls

    return install


def _graph_calls(calls):
    return [c for c in calls if c.url.host == "graph.microsoft.com"]


async def test_token_failure_is_not_retried(graph_calls):
    calls = graph_calls(lambda request: httpx.Response(503, json={"error": "temporarily_unavailable"}))

    with pytest.raises(ExternalServiceError) as exc_info:
        await graph_client.get_access_token(CONFIG)

    assert exc_info.value.status_code == 503
    assert exc_info.value.message == "temporarily_unavailable"
    assert len(calls) == 1


async def test_inbox_failure_is_not_retried(graph_calls):
    calls = graph_calls(_token_or(
        lambda request: httpx.Response(503, json={"error": {"code": "ServiceUnavailable", "message": "Try later"}})
    ))

    with pytest.raises(ExternalServiceError) as exc_info:
        await graph_client.list_inbox_messages(CONFIG, SINCE)

    assert exc_info.value.message == "Try later"
    assert len(_graph_calls(calls)) == 1


async def test_transport_error_becomes_service_error(graph_calls):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    calls = graph_calls(_token_or(refuse))

    with pytest.raises(ExternalServiceError):
        await graph_client.list_inbox_messages(CONFIG, SINCE)
    assert len(_graph_calls(calls)) == 1


async def test_inbox_since_cursor_follows_every_page_oldest_first(graph_calls):
    next_link = f"{INBOX_URL}?$skip=30"

    def pages(request):
        if request.url.params.get("$skip") == "30":
            return httpx.Response(200, json={"value": [{"id": "m3", "receivedDateTime": "2026-03-10T11:00:00Z"}]})
        return httpx.Response(200, json={
            "value": [
                {"id": "m1", "receivedDateTime": "2026-03-10T09:00:00Z"},
                {"id": "m2", "receivedDateTime": "2026-03-10T10:00:00Z"},
            ],
            "@odata.nextLink": next_link,
        })

    calls = graph_calls(_token_or(pages))

    messages = await graph_client.list_inbox_messages(CONFIG, SINCE)

    assert [m["id"] for m in messages] == ["m1", "m2", "m3"]
    first, second = _graph_calls(calls)
    assert first.url.params["$orderby"] == "receivedDateTime asc"
    assert first.url.params["$filter"] == "receivedDateTime gt 2026-03-10T08:00:00Z"
    assert first.headers["Authorization"] == "Bearer token-1"
    assert second.url.params.get("$skip") == "30"


async def test_inbox_page_limit_stops_paging(graph_calls, monkeypatch):
    monkeypatch.setattr(graph_client, "MAX_INBOX_PAGES", 2)
    calls = graph_calls(_token_or(lambda request: httpx.Response(200, json={
        "value": [{"id": "m", "receivedDateTime": "2026-03-10T09:00:00Z"}],
        "@odata.nextLink": f"{INBOX_URL}?$skip=1",
    })))

    messages = await graph_client.list_inbox_messages(CONFIG, SINCE)

    assert len(messages) == 2
    assert len(_graph_calls(calls)) == 2


async def test_first_sync_reads_only_the_newest_page(graph_calls):
    calls = graph_calls(_token_or(lambda request: httpx.Response(200, json={
        "value": [
            {"id": "new", "receivedDateTime": "2026-03-10T10:00:00Z"},
            {"id": "old", "receivedDateTime": "2026-03-10T09:00:00Z"},
        ],
        "@odata.nextLink": f"{INBOX_URL}?$skip=30",
    })))

    messages = await graph_client.list_inbox_messages(CONFIG, None)

    assert [m["id"] for m in messages] == ["old", "new"]
    (only,) = _graph_calls(calls)
    assert only.url.params["$orderby"] == "receivedDateTime desc"
    assert "$filter" not in only.url.params


async def test_conversation_read_filters_by_conversation(graph_calls):
    calls = graph_calls(_token_or(lambda request: httpx.Response(200, json={"value": [
        {"id": "b", "receivedDateTime": "2026-03-10T10:00:00Z"},
        {"id": "a", "receivedDateTime": "2026-03-10T09:00:00Z"},
    ]})))

    messages = await graph_client.list_conversation_messages(CONFIG, "conv-'1'")

    assert [m["id"] for m in messages] == ["a", "b"]
    (request,) = _graph_calls(calls)
    assert request.url.params["$filter"] == "conversationId eq 'conv-''1'''"


async def test_reply_posts_to_the_message_thread(graph_calls):
    calls = graph_calls(_token_or(lambda request: httpx.Response(202)))

    await graph_client.reply(CONFIG, "msg-1", body_html="<p>Fixed</p>", to=["peter@initech.com"], bcc=["qa@test.com"])

    (request,) = _graph_calls(calls)
    assert request.method == "POST"
    assert request.url.path.endswith("/users/support@test.com/messages/msg-1/reply")
    message = json.loads(request.content)["message"]
    assert message["body"] == {"contentType": "HTML", "content": "<p>Fixed</p>"}
    assert message["toRecipients"] == [{"emailAddress": {"address": "peter@initech.com"}}]
    assert message["bccRecipients"] == [{"emailAddress": {"address": "qa@test.com"}}]
    assert "ccRecipients" not in message


async def test_forward_posts_comment_and_recipients(graph_calls):
    calls = graph_calls(_token_or(lambda request: httpx.Response(202)))

    await graph_client.forward(CONFIG, "msg-1", to=["ops@vendor.com"], comment_html="FYI")

    (request,) = _graph_calls(calls)
    assert request.url.path.endswith("/messages/msg-1/forward")
    assert json.loads(request.content) == {
        "comment": "FYI",
        "toRecipients": [{"emailAddress": {"address": "ops@vendor.com"}}],
    }


async def test_rejected_send_is_surfaced_once(graph_calls):
    calls = graph_calls(_token_or(
        lambda request: httpx.Response(500, json={"error": {"code": "ErrorSendAs", "message": "Mailbox disabled"}})
    ))

    with pytest.raises(ExternalServiceError) as exc_info:
        await graph_client.send_mail(CONFIG, recipient="a@example.com", subject="s", body_html="b")

    assert exc_info.value.message == "Mailbox disabled"
    assert len(_graph_calls(calls)) == 1
