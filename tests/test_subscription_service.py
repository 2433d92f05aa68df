"""Subscription lifecycle, slot checkout and PayMongo reconciliation."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from quickdesk.core.config import settings
from quickdesk.core.errors import StateError, ValidationError
from quickdesk.core.security import hmac_sha256_hex
from quickdesk.db.enums import PaymentStatus, SubscriptionStatus
from quickdesk.db.models import Organization
from quickdesk.services import paymongo_client, subscription_service
from quickdesk.services.paymongo_client import PaymentLink
from quickdesk.utils.datetimes import as_utc

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_paymongo(monkeypatch):
    calls = {"create": [], "retrieve": []}

    async def fake_create_link(amount, description, remarks=None):
        calls["create"].append((amount, description))
        return PaymentLink(
            id="link_123",
            status="unpaid",
            checkout_url="https://pm.link/checkout/link_123",
            reference_number="REF123",
        )

    async def fake_retrieve_link(link_id):
        calls["retrieve"].append(link_id)
        return PaymentLink(
            id=link_id,
            status="paid",
            checkout_url=None,
            reference_number="REF123",
            payment_id="pay_999",
            payment_method="gcash",
        )

    monkeypatch.setattr(paymongo_client, "create_link", fake_create_link)
    monkeypatch.setattr(paymongo_client, "retrieve_link", fake_retrieve_link)
    return calls


def _paid_event(reference="REF123", event_type="link.payment.paid"):
    return {
        "data": {
            "attributes": {
                "type": event_type,
                "livemode": False,
                "data": {
                    "id": "pay_abc",
                    "attributes": {"reference_number": reference, "source": {"type": "card"}},
                },
            }
        }
    }


def test_new_organization_starts_a_trial(db):
    org = Organization(id=uuid.uuid4(), name="Fresh Org", domain="fresh.com")
    db.add(org)
    db.flush()

    subscription = subscription_service.get_or_create_subscription(db, org.id, now=NOW)

    assert subscription.status == SubscriptionStatus.TRIAL.value
    assert subscription.agent_slots == 0
    assert as_utc(subscription.trial_ends_at) == NOW + timedelta(days=settings.TRIAL_DAYS)
    assert subscription_service.get_or_create_subscription(db, org.id) is subscription


async def test_slot_checkout_creates_pending_payment(db, test_org, test_subscription, fake_paymongo):
    payment = await subscription_service.create_slot_checkout(db, test_org.id, 3, now=NOW)

    assert payment.status == PaymentStatus.PENDING.value
    assert payment.amount == Decimal(3) * test_subscription.price_per_agent
    assert payment.billing_period == "March 2026"
    assert payment.payment_metadata["checkout_url"] == "https://pm.link/checkout/link_123"
    assert "(3 agent slots)" in payment.description
    # Slots are not credited until paid
    assert test_subscription.agent_slots == 5


async def test_only_one_pending_checkout(db, test_org, test_subscription, fake_paymongo):
    await subscription_service.create_slot_checkout(db, test_org.id, 1)
    with pytest.raises(StateError):
        await subscription_service.create_slot_checkout(db, test_org.id, 1)


@pytest.mark.parametrize("slots", [0, -2, 501])
async def test_slot_checkout_validates_quantity(db, test_org, slots, fake_paymongo):
    with pytest.raises(ValidationError):
        await subscription_service.create_slot_checkout(db, test_org.id, slots)
    assert fake_paymongo["create"] == []


async def test_paid_webhook_credits_slots_once(db, test_org, test_subscription, fake_paymongo):
    payment = await subscription_service.create_slot_checkout(db, test_org.id, 3, now=NOW)

    assert subscription_service.handle_webhook_event(db, _paid_event(), now=NOW) == "paid"
    assert payment.status == PaymentStatus.PAID.value
    assert payment.paymongo_payment_id == "pay_abc"
    assert payment.payment_method == "card"
    assert test_subscription.agent_slots == 8
    assert test_subscription.status == SubscriptionStatus.ACTIVE.value

    # Replayed delivery and a manual check change nothing
    subscription_service.handle_webhook_event(db, _paid_event(), now=NOW)
    await subscription_service.check_payment_status(db, test_org.id, payment.id)
    assert test_subscription.agent_slots == 8
    assert fake_paymongo["retrieve"] == []


async def test_check_payment_status_marks_paid(db, test_org, test_subscription, fake_paymongo):
    payment = await subscription_service.create_slot_checkout(db, test_org.id, 2)

    await subscription_service.check_payment_status(db, test_org.id, payment.id)

    assert fake_paymongo["retrieve"] == ["link_123"]
    assert payment.status == PaymentStatus.PAID.value
    assert payment.payment_method == "gcash"
    assert test_subscription.agent_slots == 7


async def test_failed_webhook_marks_payment_failed(db, test_org, fake_paymongo):
    payment = await subscription_service.create_slot_checkout(db, test_org.id, 1)
    event = _paid_event(event_type="payment.failed")
    assert subscription_service.handle_webhook_event(db, event) == "failed"
    assert payment.status == PaymentStatus.FAILED.value


def test_unknown_and_unmatched_events_are_acknowledged(db, test_org):
    assert subscription_service.handle_webhook_event(db, _paid_event(event_type="source.chargeable")) == "ignored"
    assert subscription_service.handle_webhook_event(db, _paid_event(reference="NOPE")) == "unmatched"


async def test_cancel_only_pending_payments(db, test_org, fake_paymongo):
    payment = await subscription_service.create_slot_checkout(db, test_org.id, 1)
    subscription_service.cancel_pending_payment(db, test_org.id, payment.id)
    assert subscription_service.list_payments(db, test_org.id) == []

    paid = await subscription_service.create_slot_checkout(db, test_org.id, 1)
    subscription_service.mark_payment_paid(db, paid)
    with pytest.raises(StateError):
        subscription_service.cancel_pending_payment(db, test_org.id, paid.id)


def test_expire_subscriptions(db, test_org, test_subscription):
    test_subscription.trial_ends_at = NOW - timedelta(days=1)
    db.flush()
    assert subscription_service.expire_subscriptions(db, now=NOW) == {"expired": 1, "past_due": 0}
    assert test_subscription.status == SubscriptionStatus.EXPIRED.value

    test_subscription.status = SubscriptionStatus.ACTIVE.value
    test_subscription.current_period_end = NOW - timedelta(hours=1)
    db.flush()
    assert subscription_service.expire_subscriptions(db, now=NOW) == {"expired": 0, "past_due": 1}
    assert test_subscription.status == SubscriptionStatus.PAST_DUE.value


def test_cancel_subscription(db, test_org, test_subscription):
    subscription_service.cancel_subscription(db, test_org.id, now=NOW)
    assert test_subscription.status == SubscriptionStatus.CANCELED.value
    assert as_utc(test_subscription.canceled_at) == NOW


def test_webhook_signature_verification(monkeypatch):
    monkeypatch.setattr(settings, "PAYMONGO_WEBHOOK_SECRET", "whsk_test")
    body = json.dumps(_paid_event()).encode()
    signature = hmac_sha256_hex("whsk_test", f"1700000000.{body.decode()}")

    assert paymongo_client.verify_webhook_signature(body, f"t=1700000000,te={signature},li=")
    assert paymongo_client.verify_webhook_signature(body, f"t=1700000000,te=,li={signature}", livemode=True)
    assert not paymongo_client.verify_webhook_signature(body, f"t=1700000000,te={signature}", livemode=True)
    assert not paymongo_client.verify_webhook_signature(body, "te=abc")
    assert not paymongo_client.verify_webhook_signature(body + b" ", f"t=1700000000,te={signature}")


def test_parse_webhook_body_rejects_non_objects():
    with pytest.raises(ValidationError):
        subscription_service.parse_webhook_body(b"not json")
    with pytest.raises(ValidationError):
        subscription_service.parse_webhook_body(b"[1, 2]")
