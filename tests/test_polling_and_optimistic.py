from datetime import datetime, timedelta, timezone

from quickdesk.services import optimistic
from quickdesk.services.polling import PollingPolicy

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
POLICY = PollingPolicy(active_seconds=10, idle_seconds=60, idle_threshold_seconds=300)


def test_active_user_gets_short_interval():
    assert POLICY.next_interval(NOW - timedelta(seconds=30), NOW) == 10


def test_idle_user_gets_long_interval():
    assert POLICY.next_interval(NOW - timedelta(minutes=5), NOW) == 60
    assert POLICY.next_interval(None, NOW) == 60


def test_hidden_tab_pauses_polling():
    assert POLICY.next_interval(NOW, NOW, tab_hidden=True) is None


def test_optimistic_change_confirmed_by_server_ticket():
    snapshot = {"id": "t1", "priority": "Low", "deadline": None}
    change = optimistic.propose_change(snapshot, "priority", "High")
    assert change.optimistic_view["priority"] == "High"

    server = {"id": "t1", "priority": "High", "deadline": "2026-03-12T12:00:00Z"}
    assert optimistic.confirm_change(change, {"success": True, "ticket": server}) == server


def test_optimistic_change_reverted_on_failure():
    snapshot = {"id": "t1", "status": "Open"}
    change = optimistic.propose_change(snapshot, "status", "Closed")
    result = optimistic.confirm_change(change, {"success": False, "error": "boom"})
    assert result == snapshot


def test_rebased_change_reverts_to_fresh_value():
    change = optimistic.propose_change({"status": "Open"}, "status", "Closed")
    rebased = optimistic.with_snapshot(change, {"status": "Pending"})
    assert optimistic.revert_change(rebased) == {"status": "Pending"}
