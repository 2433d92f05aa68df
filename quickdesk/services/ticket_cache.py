"""Bounded read cache for ticket detail views.

Keyed by (organization_id, ticket_id), LRU-evicted at ``max_entries``,
expired after ``ttl_seconds`` and invalidated by every ticket write:
once when the write is flushed and again when its session commits, so a
reader that cached the pre-commit row in between is dropped too.
Values are plain dict snapshots (deep-copied in and out), never live
ORM objects.
"""

from __future__ import annotations

import copy
import threading
import time
from collections import OrderedDict
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session

from quickdesk.core.config import settings

CacheKey = tuple[UUID, UUID]


class TicketCache:
    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[CacheKey, tuple[float, dict[str, Any]]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, org_id: UUID, ticket_id: UUID) -> dict[str, Any] | None:
        key = (org_id, ticket_id)
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            stored_at, value = item
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return copy.deepcopy(value)

    def set(self, org_id: UUID, ticket_id: UUID, value: dict[str, Any]) -> None:
        if self.max_entries <= 0:
            return
        key = (org_id, ticket_id)
        with self._lock:
            self._entries[key] = (self._clock(), copy.deepcopy(value))
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, org_id: UUID, ticket_id: UUID) -> None:
        with self._lock:
            self._entries.pop((org_id, ticket_id), None)

    def invalidate_many(self, org_id: UUID, ticket_ids) -> None:
        with self._lock:
            for ticket_id in ticket_ids:
                self._entries.pop((org_id, ticket_id), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def invalidate_on_commit(self, db: Session, org_id: UUID, ticket_ids) -> None:
        """Drop the entries now and once more after ``db`` commits."""
        ticket_ids = list(ticket_ids)
        self.invalidate_many(org_id, ticket_ids)
        event.listen(
            db,
            "after_commit",
            lambda _session: self.invalidate_many(org_id, ticket_ids),
            once=True,
        )

    def clear_on_commit(self, db: Session) -> None:
        self.clear()
        event.listen(db, "after_commit", lambda _session: self.clear(), once=True)

    def __len__(self) -> int:
        return len(self._entries)


ticket_cache = TicketCache(
    max_entries=settings.TICKET_CACHE_MAX_ENTRIES,
    ttl_seconds=settings.TICKET_CACHE_TTL_SECONDS,
)
