"""Service-layer error taxonomy.

Services raise these; the workflow boundary (``services.workflow``)
converts them into ``{"success": false, "error": ...}`` results so that
nothing escapes to UI/CLI callers as an exception.
"""

from __future__ import annotations

from datetime import datetime


class QuickdeskError(Exception):
    """Base exception for Quickdesk service errors."""

    code = "Error"
    http_status = 400

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ValidationError(QuickdeskError):
    """Illegal value for a ticket field, member or setting."""

    code = "InvalidValue"


class NotFoundError(QuickdeskError):
    """Ticket, member, company, payment or subscription is absent."""

    code = "NotFound"
    http_status = 404

    def __init__(self, message: str, *, missing: list[str] | None = None, code: str | None = None):
        super().__init__(message, code=code)
        self.missing = missing or []


class LicenseError(QuickdeskError):
    """Seat accounting refused the request."""

    code = "LicenseError"
    http_status = 409


class ExternalServiceError(QuickdeskError):
    """Email provider or payment gateway call failed.

    The upstream provider text is kept verbatim in ``message``.
    """

    code = "ExternalServiceError"
    http_status = 502

    def __init__(self, service: str, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class StateError(QuickdeskError):
    """Operation is not allowed in the record's current state."""

    code = "StateError"
    http_status = 409


class AuthError(QuickdeskError):
    """Credentials rejected."""

    code = "AuthError"
    http_status = 401


class LockoutError(AuthError):
    """Too many failed login attempts inside the lockout window."""

    code = "LockedOut"
    http_status = 429

    def __init__(self, message: str, *, locked_until: datetime):
        super().__init__(message)
        self.locked_until = locked_until


# Stable codes referenced by callers and tests
INVALID_ENUM_VALUE = "InvalidEnumValue"
RESERVED_TAG = "ReservedTag"
ASSIGNEE_NOT_LICENSED = "AssigneeNotLicensed"
INVALID_FIELD = "InvalidField"
NO_AVAILABLE_LICENSES = "NoAvailableLicenses"
INSUFFICIENT_LICENSES = "InsufficientLicenses"
CLIENT_NOT_LICENSABLE = "ClientNotLicensable"
