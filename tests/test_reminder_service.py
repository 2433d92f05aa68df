"""Deadline reminders: once per deadline, assigned unresolved tickets only."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from quickdesk.services import activity_service, reminder_service, ticket_service

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def _assigned_ticket(db, org, actor, agent, *, deadline, subject="Renew certificate", status=None):
    ticket = ticket_service.create_ticket(
        db, org.id, subject=subject, sender_email="ops@example.com", actor=actor, now=NOW
    )
    changes = {"assignee_id": agent.id, "deadline": deadline}
    if status:
        changes["status"] = status
    ticket_service.update_ticket(db, org.id, ticket.id, changes, actor, now=NOW)
    db.commit()
    return ticket


def test_reminder_tag_uses_deadline_date():
    assert reminder_service.reminder_tag(datetime(2026, 3, 11, 23, 0, tzinfo=timezone.utc)) == (
        "Reminder sent: 2026-03-11"
    )


def test_ticket_due_soon_is_reminded_once(db, test_org, actor, test_agent):
    ticket = _assigned_ticket(db, test_org, actor, test_agent, deadline=NOW + timedelta(hours=6))

    stats, notifications = reminder_service.check_deadline_reminders_for_org(db, test_org.id, now=NOW)

    assert stats == {"tickets_checked": 1, "reminders_created": 1}
    assert notifications[0].kind == "deadline_reminder"
    assert notifications[0].recipient == test_agent.email
    assert ticket.tags == ["Reminder sent: 2026-03-10"]
    last = activity_service.list_for_ticket(db, test_org.id, ticket.id)[-1]
    assert (last.type, last.details, last.user_name) == ("Tags", "Tag added: Reminder sent: 2026-03-10", "System")

    stats, notifications = reminder_service.check_deadline_reminders_for_org(db, test_org.id, now=NOW)
    assert stats == {"tickets_checked": 1, "reminders_created": 0}
    assert notifications == []


def test_moved_deadline_gets_a_new_reminder(db, test_org, actor, test_agent):
    ticket = _assigned_ticket(db, test_org, actor, test_agent, deadline=NOW + timedelta(hours=6))
    reminder_service.check_deadline_reminders_for_org(db, test_org.id, now=NOW)

    ticket_service.update_ticket(
        db, test_org.id, ticket.id, {"deadline": NOW + timedelta(days=2)}, actor, now=NOW
    )
    later = NOW + timedelta(days=1, hours=12)
    stats, _ = reminder_service.check_deadline_reminders_for_org(db, test_org.id, now=later)

    assert stats["reminders_created"] == 1
    assert ticket.tags == ["Reminder sent: 2026-03-10", "Reminder sent: 2026-03-12"]


def test_far_resolved_and_unassigned_tickets_are_skipped(db, test_org, actor, test_agent):
    _assigned_ticket(db, test_org, actor, test_agent, deadline=NOW + timedelta(days=3), subject="far")
    _assigned_ticket(
        db, test_org, actor, test_agent, deadline=NOW + timedelta(hours=1), subject="done", status="Resolved"
    )
    unassigned = ticket_service.create_ticket(
        db, test_org.id, subject="nobody", sender_email="x@example.com", priority="Urgent", actor=actor, now=NOW
    )
    db.commit()
    assert unassigned.deadline is not None

    stats, notifications = reminder_service.check_deadline_reminders_for_org(db, test_org.id, now=NOW)
    assert stats == {"tickets_checked": 0, "reminders_created": 0}
    assert notifications == []


def test_overdue_ticket_reminder_says_overdue(db, test_org, actor, test_agent):
    _assigned_ticket(db, test_org, actor, test_agent, deadline=NOW - timedelta(hours=2))
    _, notifications = reminder_service.check_deadline_reminders_for_org(db, test_org.id, now=NOW)
    assert "is overdue" in notifications[0].body_html


async def test_process_deadline_reminders_sends_after_commit(db, test_org, actor, test_agent, mail_outbox):
    _assigned_ticket(db, test_org, actor, test_agent, deadline=NOW + timedelta(hours=3))

    stats = await reminder_service.process_deadline_reminders(db, now=NOW)

    assert stats == {
        "orgs_processed": 1,
        "tickets_checked": 1,
        "reminders_created": 1,
        "reminders_sent": 1,
        "errors": [],
    }
    assert [m["recipient"] for m in mail_outbox] == [test_agent.email]
