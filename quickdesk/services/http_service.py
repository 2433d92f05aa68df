"""Shared httpx plumbing for the Graph and PayMongo clients.

Every upstream call is made once. A transport error or non-2xx response
becomes an ExternalServiceError carrying the provider's own message;
retrying is left to the caller (the next scheduled sync, or the user).
"""

from __future__ import annotations

import httpx

from quickdesk.core.errors import ExternalServiceError


def provider_error_text(response: httpx.Response) -> str:
    """Best-effort extraction of the upstream error message, kept verbatim."""
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    if isinstance(payload, dict):
        # PayMongo: {"errors": [{"detail": ...}]}
        errors = payload.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            detail = errors[0].get("detail") or errors[0].get("code")
            if detail:
                return str(detail)
        # Graph: {"error": {"code": ..., "message": ...}} / OAuth: {"error_description": ...}
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if payload.get("error_description"):
            return str(payload["error_description"])
        if isinstance(error, str):
            return error
    return response.text or f"HTTP {response.status_code}"


def ensure_success(response: httpx.Response, service: str) -> httpx.Response:
    if response.is_success:
        return response
    raise ExternalServiceError(
        service, provider_error_text(response), status_code=response.status_code
    )
