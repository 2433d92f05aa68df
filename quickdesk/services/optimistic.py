"""Two-phase optimistic field changes.

A client applies ``propose_change`` locally, sends the update, then calls
``confirm_change`` with the server result, or ``revert_change`` when the
round trip fails. The authoritative state is always the server's.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping


@dataclass(frozen=True)
class ProposedChange:
    field: str
    previous: Any
    proposed: Any
    snapshot: Mapping[str, Any]

    @property
    def optimistic_view(self) -> dict[str, Any]:
        """Snapshot with the proposed value applied."""
        view = dict(self.snapshot)
        view[self.field] = self.proposed
        return view


def propose_change(snapshot: Mapping[str, Any], field: str, value: Any) -> ProposedChange:
    return ProposedChange(
        field=field,
        previous=snapshot.get(field),
        proposed=value,
        snapshot=dict(snapshot),
    )


def confirm_change(change: ProposedChange, result: Mapping[str, Any]) -> dict[str, Any]:
    """
    Reconcile with the server response.

    A failed result reverts. A successful one takes the server's ticket
    (when returned) over the local guess, since derived fields such as
    the deadline are only known server-side.
    """
    if not result.get("success"):
        return revert_change(change)
    server_ticket = result.get("ticket")
    if server_ticket:
        return dict(server_ticket)
    return change.optimistic_view


def revert_change(change: ProposedChange) -> dict[str, Any]:
    view = dict(change.snapshot)
    view[change.field] = change.previous
    return view


def with_snapshot(change: ProposedChange, snapshot: Mapping[str, Any]) -> ProposedChange:
    """Rebase a pending change onto a fresher snapshot (e.g. after a poll)."""
    return replace(change, snapshot=dict(snapshot), previous=snapshot.get(change.field))
