"""Adaptive polling interval advertised to inbox clients."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from quickdesk.core.config import settings
from quickdesk.utils.datetimes import as_utc


@dataclass(frozen=True)
class PollingPolicy:
    active_seconds: int
    idle_seconds: int
    idle_threshold_seconds: int

    def next_interval(
        self,
        last_activity_at: datetime | None,
        now: datetime,
        tab_hidden: bool = False,
    ) -> int | None:
        """
        Seconds until the next refresh, or None when polling is paused.

        Hidden tabs pause; users idle past the threshold get the long
        interval; everyone else the short one.
        """
        if tab_hidden:
            return None
        if last_activity_at is None:
            return self.idle_seconds
        idle_for = (as_utc(now) - as_utc(last_activity_at)).total_seconds()
        if idle_for >= self.idle_threshold_seconds:
            return self.idle_seconds
        return self.active_seconds

    def to_dict(self) -> dict[str, int]:
        return {
            "active_seconds": self.active_seconds,
            "idle_seconds": self.idle_seconds,
            "idle_threshold_seconds": self.idle_threshold_seconds,
        }


def default_policy() -> PollingPolicy:
    return PollingPolicy(
        active_seconds=settings.POLL_ACTIVE_SECONDS,
        idle_seconds=settings.POLL_IDLE_SECONDS,
        idle_threshold_seconds=settings.POLL_IDLE_THRESHOLD_SECONDS,
    )
