"""API tests for auth, subscription checkout, PayMongo webhooks and cron endpoints."""

from __future__ import annotations

import json

import pytest
from httpx import AsyncClient

from quickdesk.core.config import settings
from quickdesk.core.deps import COOKIE_NAME
from quickdesk.core.security import hmac_sha256_hex
from quickdesk.services import paymongo_client
from quickdesk.services.paymongo_client import PaymentLink

PASSWORD = "Secret#123"


@pytest.fixture
def fake_links(monkeypatch):
    async def fake_create_link(amount, description, remarks=None):
        return PaymentLink(
            id="link_api",
            status="unpaid",
            checkout_url="https://pm.link/checkout/link_api",
            reference_number="REFAPI",
        )

    monkeypatch.setattr(paymongo_client, "create_link", fake_create_link)


# =============================================================================
# Auth
# =============================================================================

@pytest.mark.asyncio
async def test_signup_sets_session_cookie(client: AsyncClient):
    response = await client.post(
        "/auth/signup",
        json={
            "org_name": "Newco Support",
            "domain": "newco.com",
            "name": "Nina New",
            "email": "nina@newco.com",
            "password": PASSWORD,
        },
    )
    assert response.status_code == 201, response.text
    assert response.json()["role"] == "owner"
    assert f"{COOKIE_NAME}=" in response.headers["set-cookie"]


@pytest.mark.asyncio
async def test_login_lockout(client: AsyncClient, test_owner):
    for _ in range(settings.LOGIN_MAX_ATTEMPTS):
        failed = await client.post("/auth/login", json={"email": test_owner.email, "password": "wrong"})
        assert failed.status_code == 401
        assert failed.json()["code"] == "AuthError"

    locked = await client.post("/auth/login", json={"email": test_owner.email, "password": PASSWORD})
    assert locked.status_code == 429
    body = locked.json()
    assert body["code"] == "LockedOut"
    assert body["locked_until"]


@pytest.mark.asyncio
async def test_login_me_and_logout(client: AsyncClient, authed_client: AsyncClient, test_owner, test_org):
    login = await client.post("/auth/login", json={"email": test_owner.email, "password": PASSWORD})
    assert login.status_code == 200
    assert login.json()["org_id"] == str(test_org.id)

    me = await authed_client.get("/auth/me")
    assert me.json()["email"] == test_owner.email
    assert me.json()["role"] == "owner"

    logout = await authed_client.post("/auth/logout")
    assert logout.json() == {"status": "logged_out"}


# =============================================================================
# Subscription
# =============================================================================

@pytest.mark.asyncio
async def test_checkout_and_cancel_payment(authed_client: AsyncClient, fake_links):
    summary = (await authed_client.get("/subscription")).json()
    assert summary["subscription"]["status"] == "TRIAL"
    assert summary["used_slots"] == 1
    assert summary["has_pending_payment"] is False

    checkout = await authed_client.post("/subscription/checkout", json={"slots": 3})
    assert checkout.status_code == 201, checkout.text
    payment = checkout.json()
    assert payment["status"] == "PENDING"
    assert payment["checkout_url"] == "https://pm.link/checkout/link_api"

    second = await authed_client.post("/subscription/checkout", json={"slots": 1})
    assert second.status_code == 409
    assert second.json()["code"] == "StateError"

    payments = (await authed_client.get("/subscription/payments")).json()
    assert [p["id"] for p in payments] == [payment["id"]]

    assert (await authed_client.delete(f"/subscription/payments/{payment['id']}")).status_code == 204
    summary = (await authed_client.get("/subscription")).json()
    assert summary["has_pending_payment"] is False


@pytest.mark.asyncio
async def test_paid_webhook_credits_slots(authed_client: AsyncClient, client: AsyncClient, fake_links, monkeypatch):
    monkeypatch.setattr(settings, "PAYMONGO_WEBHOOK_SECRET", "whsk_test")
    await authed_client.post("/subscription/checkout", json={"slots": 3})

    event = {
        "data": {
            "attributes": {
                "type": "link.payment.paid",
                "livemode": False,
                "data": {"id": "pay_api", "attributes": {"reference_number": "REFAPI"}},
            }
        }
    }
    body = json.dumps(event)
    signature = hmac_sha256_hex("whsk_test", f"1700000000.{body}")

    rejected = await client.post(
        "/webhooks/paymongo",
        content=body,
        headers={"Paymongo-Signature": "t=1700000000,te=bad,li="},
    )
    assert rejected.status_code == 401

    accepted = await client.post(
        "/webhooks/paymongo",
        content=body,
        headers={"Paymongo-Signature": f"t=1700000000,te={signature},li="},
    )
    assert accepted.status_code == 200
    assert accepted.json() == {"received": True, "result": "paid"}

    summary = (await authed_client.get("/subscription")).json()
    assert summary["subscription"]["agent_slots"] == 8
    assert summary["subscription"]["status"] == "ACTIVE"


# =============================================================================
# Internal scheduled endpoints
# =============================================================================

@pytest.mark.asyncio
async def test_internal_endpoints_require_secret(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "cron-secret")
    assert (await client.post("/internal/scheduled/subscriptions")).status_code == 403
    wrong = await client.post("/internal/scheduled/subscriptions", headers={"X-Internal-Secret": "nope"})
    assert wrong.status_code == 403


@pytest.mark.asyncio
async def test_internal_sweeps_report_stats(client: AsyncClient, test_org, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "cron-secret")
    headers = {"X-Internal-Secret": "cron-secret"}

    sweep = await client.post("/internal/scheduled/subscriptions", headers=headers)
    assert sweep.json() == {"expired": 0, "past_due": 0}

    sync = await client.post("/internal/scheduled/email-sync", headers=headers)
    assert sync.status_code == 200
    assert sync.json()["tickets_created"] == 0

    reminders = await client.post("/internal/scheduled/deadline-reminders", headers=headers)
    assert reminders.status_code == 200
    assert reminders.json()["reminders_sent"] == 0
