"""Workflow boundary: turn service exceptions into action results.

UI and CLI callers get ``{"success": bool, "error": str | None}`` and
never see an exception. The session is committed on success and rolled
back on any failure.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.orm import Session

from quickdesk.core.errors import QuickdeskError

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"


@dataclass
class ActionResult:
    success: bool
    error: str | None = None
    code: str | None = None
    data: Any = None
    missing: list[str] = field(default_factory=list)
    status_code: int = 200

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.error is not None:
            payload["error"] = self.error
        if self.code is not None:
            payload["code"] = self.code
        if self.missing:
            payload["missing"] = self.missing
        return payload


def _failure(db: Session, exc: Exception, action: str) -> ActionResult:
    db.rollback()
    if isinstance(exc, QuickdeskError):
        logger.info("Action %s failed: %s (%s)", action, exc.message, exc.code)
        return ActionResult(
            success=False,
            error=exc.message,
            code=exc.code,
            missing=list(getattr(exc, "missing", []) or []),
            status_code=exc.http_status,
        )
    logger.exception("Action %s raised unexpectedly", action)
    return ActionResult(success=False, error=UNEXPECTED_ERROR_MESSAGE, code="Error", status_code=500)


def run_action(db: Session, fn: Callable[..., Any], *args, **kwargs) -> ActionResult:
    """Run ``fn(db, *args, **kwargs)`` inside the boundary."""
    action = getattr(fn, "__name__", repr(fn))
    try:
        data = fn(db, *args, **kwargs)
        db.commit()
    except Exception as exc:
        return _failure(db, exc, action)
    return ActionResult(success=True, data=data)


async def run_action_async(db: Session, fn: Callable[..., Any], *args, **kwargs) -> ActionResult:
    """Same as ``run_action`` for coroutine functions (gateway calls)."""
    action = getattr(fn, "__name__", repr(fn))
    try:
        data = fn(db, *args, **kwargs)
        if inspect.isawaitable(data):
            data = await data
        db.commit()
    except Exception as exc:
        return _failure(db, exc, action)
    return ActionResult(success=True, data=data)
