"""PayMongo payment-link client.

Amounts are sent in centavos. Calls are made once; upstream error text
(``errors[0].detail``) is surfaced unchanged.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from quickdesk.core.config import settings
from quickdesk.core.errors import ExternalServiceError
from quickdesk.core.security import hmac_sha256_hex, verify_secret
from quickdesk.services.http_service import ensure_success

logger = logging.getLogger(__name__)

SERVICE = "PayMongo"


@dataclass(frozen=True)
class PaymentLink:
    id: str
    status: str
    checkout_url: str | None
    reference_number: str | None
    payment_id: str | None = None
    payment_method: str | None = None


def _auth_header() -> dict[str, str]:
    if not settings.paymongo_enabled:
        raise ExternalServiceError(SERVICE, "PayMongo is not configured")
    token = base64.b64encode(f"{settings.PAYMONGO_SECRET_KEY}:".encode()).decode()
    return {"Authorization": f"Basic {token}", "Accept": "application/json"}


def to_centavos(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


def _parse_link(payload: dict[str, Any]) -> PaymentLink:
    data = payload.get("data") or {}
    attributes = data.get("attributes") or {}
    payment_id = None
    payment_method = None
    payments = attributes.get("payments") or []
    if payments:
        first = payments[0]
        payment_id = first.get("id") or (first.get("data") or {}).get("id")
        payment_attrs = first.get("attributes") or (first.get("data") or {}).get("attributes") or {}
        payment_method = (payment_attrs.get("source") or {}).get("type")
    return PaymentLink(
        id=data.get("id", ""),
        status=attributes.get("status", ""),
        checkout_url=attributes.get("checkout_url"),
        reference_number=attributes.get("reference_number"),
        payment_id=payment_id,
        payment_method=payment_method,
    )


async def _send(method: str, path: str, **kwargs) -> dict[str, Any]:
    url = f"{settings.PAYMONGO_API_URL.rstrip('/')}{path}"
    async with httpx.AsyncClient(timeout=settings.PAYMONGO_TIMEOUT_SECONDS) as client:
        try:
            response = await client.request(method, url, headers=_auth_header(), **kwargs)
        except httpx.RequestError as exc:
            raise ExternalServiceError(SERVICE, str(exc)) from exc
    ensure_success(response, SERVICE)
    return response.json()


async def create_link(amount: Decimal, description: str, remarks: str | None = None) -> PaymentLink:
    attributes: dict[str, Any] = {"amount": to_centavos(amount), "description": description}
    if remarks:
        attributes["remarks"] = remarks
    payload = await _send("POST", "/links", json={"data": {"attributes": attributes}})
    link = _parse_link(payload)
    logger.info("PayMongo link %s created (%s)", link.id, link.status)
    return link


async def retrieve_link(link_id: str) -> PaymentLink:
    return _parse_link(await _send("GET", f"/links/{link_id}"))


def parse_signature_header(header: str | None) -> dict[str, str]:
    """``t=123,te=abc,li=def`` -> {"t": "123", "te": "abc", "li": "def"}."""
    parts: dict[str, str] = {}
    for item in (header or "").split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts[key] = value
    return parts


def verify_webhook_signature(raw_body: bytes, header: str | None, *, livemode: bool = False) -> bool:
    """
    HMAC-SHA256 over ``"<t>.<raw body>"`` compared against ``te`` (test)
    or ``li`` (live).
    """
    if not settings.PAYMONGO_WEBHOOK_SECRET:
        return False
    parts = parse_signature_header(header)
    timestamp = parts.get("t")
    if not timestamp:
        return False
    expected = hmac_sha256_hex(
        settings.PAYMONGO_WEBHOOK_SECRET, f"{timestamp}.{raw_body.decode('utf-8')}"
    )
    received = parts.get("li") if livemode else parts.get("te")
    return verify_secret(received, expected)
