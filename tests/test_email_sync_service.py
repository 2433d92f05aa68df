"""Inbox messages become tickets for verified company contacts only."""

from __future__ import annotations

import pytest

from quickdesk.db.enums import MemberStatus
from quickdesk.services import (
    activity_service,
    company_service,
    conversation_service,
    email_sync_service,
    graph_client,
    ticket_service,
)


def _message(conversation_id, sender, subject="Cannot log in", received="2026-03-10T08:00:00Z", **extra):
    message = {
        "id": f"msg-{conversation_id}",
        "conversationId": conversation_id,
        "subject": subject,
        "from": {"emailAddress": {"address": sender, "name": sender.split("@")[0].title()}},
        "receivedDateTime": received,
        "bodyPreview": "Hi team, I cannot log in",
        "body": {"contentType": "html", "content": "<p>Hi team, I cannot log in</p>"},
    }
    message.update(extra)
    return message


@pytest.fixture
def verified_contact(db, test_org):
    company = company_service.create_company(db, test_org.id, name="Initech")
    company_service.add_employee(
        db, test_org.id, company.id, name="Peter", email="peter@initech.com",
        status=MemberStatus.VERIFIED.value,
    )
    company_service.add_employee(db, test_org.id, company.id, name="Milton", email="milton@initech.com")
    db.commit()
    return company


def test_ingest_creates_tickets_for_verified_senders(db, test_org, verified_contact):
    result = email_sync_service.ingest_messages(
        db,
        test_org.id,
        [
            _message("conv-2", "peter@initech.com", subject="Second", received="2026-03-10T09:00:00Z"),
            _message("conv-1", "Peter@Initech.com", subject="First", received="2026-03-10T08:00:00Z"),
        ],
    )

    assert result.tickets_created == 2
    first, second = (ticket_service.get_ticket(db, test_org.id, tid) for tid in result.ticket_ids)
    assert (first.subject, first.ticket_number) == ("First", 1)
    assert (second.subject, second.ticket_number) == ("Second", 2)
    assert first.company_id == verified_contact.id
    assert first.priority == "None"
    assert first.body_preview == "Hi team, I cannot log in"
    assert first.conversation_id == "conv-1"
    assert [n.kind for n in result.notifications] == ["ticket_created", "ticket_created"]

    entries = activity_service.list_for_ticket(db, test_org.id, first.id)
    assert [(e.type, e.details, e.user_name) for e in entries] == [
        ("Create", email_sync_service.EMAIL_SYNC_DETAILS, "System"),
    ]


@pytest.mark.parametrize(
    "message,reason",
    [
        (_message("c1", "milton@initech.com"), "unverified_sender"),
        (_message("c2", "stranger@example.com"), "unverified_sender"),
        (_message("c3", "peter@initech.com", subject="Automatic reply: away"), "auto_reply"),
        (_message("c4", "peter@initech.com", subject="Out of Office until Monday"), "auto_reply"),
        (_message("c5", "peter@initech.com", subject="Update on ticket #4"), "system_notification"),
        (_message("c6", "support@test.com"), "own_mailbox"),
        (_message(None, "peter@initech.com"), "no_conversation"),
        (_message("c7", "peter@initech.com", **{"from": {}}), "no_sender"),
    ],
)
def test_ingest_skips_messages(db, test_org, verified_contact, message, reason):
    result = email_sync_service.ingest_messages(db, test_org.id, [message], mailbox="support@test.com")
    assert result.tickets_created == 0
    assert result.skipped == {reason: 1}


def test_existing_conversation_joins_the_stored_thread(db, test_org, verified_contact):
    created = email_sync_service.ingest_messages(
        db, test_org.id, [_message("conv-1", "peter@initech.com", hasAttachments=True,
                                   attachments=[{"id": "a1", "name": "log.txt", "size": 10}])],
        mailbox="support@test.com",
    )
    ticket_id = created.ticket_ids[0]
    follow_up = _message(
        "conv-1", "milton@initech.com", subject="RE: Cannot log in", received="2026-03-10T12:00:00Z",
        id="msg-follow-up",
    )

    result = email_sync_service.ingest_messages(db, test_org.id, [follow_up], mailbox="support@test.com")

    assert result.tickets_created == 0
    assert result.skipped == {}
    assert result.messages_recorded == 1
    thread = conversation_service.list_messages(db, test_org.id, ticket_id)
    assert [m.graph_message_id for m in thread] == ["msg-conv-1", "msg-follow-up"]
    assert thread[0].attachments[0]["name"] == "log.txt"
    assert ticket_service.get_ticket(db, test_org.id, ticket_id).last_replier == "client"

    again = email_sync_service.ingest_messages(db, test_org.id, [follow_up], mailbox="support@test.com")
    assert again.messages_recorded == 1
    assert len(conversation_service.list_messages(db, test_org.id, ticket_id)) == 2


async def test_sync_without_mail_settings_is_a_no_op(db, test_org, monkeypatch):
    async def fail(*args, **kwargs):
        raise AssertionError("inbox must not be read")

    monkeypatch.setattr(graph_client, "list_inbox_messages", fail)
    result = await email_sync_service.sync_emails_to_tickets(db, test_org.id)
    assert result.tickets_created == 0


async def test_sync_reads_inbox_since_latest_email_ticket(db, test_org, verified_contact, mail_outbox, monkeypatch):
    seen_since = []

    async def fake_list_inbox_messages(config, since, top=50):
        seen_since.append(since)
        return [_message("conv-9", "peter@initech.com", received="2026-03-11T10:00:00Z")]

    monkeypatch.setattr(graph_client, "list_inbox_messages", fake_list_inbox_messages)

    stats = await email_sync_service.process_email_sync(db)

    assert stats["tickets_created"] == 1
    assert stats["notifications_sent"] == 1
    assert stats["errors"] == []
    assert mail_outbox[0]["recipient"] == "peter@initech.com"
    assert seen_since == [None]

    await email_sync_service.sync_emails_to_tickets(db, test_org.id)
    assert seen_since[1].isoformat().startswith("2026-03-11T10:00:00")


async def test_failing_mailbox_is_reported_and_rolled_back(db, test_org, mail_outbox, monkeypatch):
    from quickdesk.core.errors import ExternalServiceError

    async def broken(config, since, top=50):
        raise ExternalServiceError("Microsoft Graph", "InvalidAuthenticationToken")

    monkeypatch.setattr(graph_client, "list_inbox_messages", broken)

    stats = await email_sync_service.process_email_sync(db)

    assert stats["tickets_created"] == 0
    assert stats["errors"] == [
        {"org_id": str(test_org.id), "org_name": test_org.name, "error": "InvalidAuthenticationToken"}
    ]
