"""Subscriptions, slot purchases and PayMongo payment reconciliation."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from quickdesk.core.config import settings
from quickdesk.core.errors import NotFoundError, StateError, ValidationError
from quickdesk.db.enums import (
    PaymentStatus,
    SUBSCRIPTION_USABLE_STATUSES,
    SubscriptionStatus,
)
from quickdesk.db.models import Organization, Payment, Subscription
from quickdesk.services import license_service, paymongo_client
from quickdesk.utils.datetimes import add_months, as_utc, now_utc

logger = logging.getLogger(__name__)

SLOT_PURCHASE = "slot_purchase"
PAID_EVENTS = frozenset({"payment.paid", "link.payment.paid", "checkout_session.payment.paid"})
FAILED_EVENTS = frozenset({"payment.failed"})
MAX_SLOTS_PER_PURCHASE = 500


# =============================================================================
# Subscription lifecycle
# =============================================================================


def get_or_create_subscription(
    db: Session, org_id: UUID, *, now: datetime | None = None
) -> Subscription:
    """Return the org subscription, starting a trial if there is none."""
    subscription = license_service.get_subscription(db, org_id)
    if subscription:
        return subscription

    now = now or now_utc()
    subscription = Subscription(
        organization_id=org_id,
        status=SubscriptionStatus.TRIAL.value,
        agent_slots=0,
        price_per_agent=Decimal(str(settings.PRICE_PER_AGENT)),
        total_amount=Decimal("0.00"),
        trial_ends_at=now + timedelta(days=settings.TRIAL_DAYS),
        current_period_start=now,
        current_period_end=add_months(now, 1),
        created_at=now,
        updated_at=now,
    )
    db.add(subscription)
    db.flush()
    license_service.recompute_billing(db, org_id)
    logger.info("Started %d-day trial for org %s", settings.TRIAL_DAYS, org_id)
    return subscription


def cancel_subscription(db: Session, org_id: UUID, *, now: datetime | None = None) -> Subscription:
    subscription = license_service.get_subscription(db, org_id)
    if not subscription:
        raise NotFoundError("Subscription not found")
    if subscription.status == SubscriptionStatus.CANCELED.value:
        return subscription
    now = now or now_utc()
    subscription.status = SubscriptionStatus.CANCELED.value
    subscription.canceled_at = now
    subscription.updated_at = now
    db.flush()
    logger.info("Subscription canceled for org %s", org_id)
    return subscription


def expire_subscriptions(db: Session, *, now: datetime | None = None) -> dict[str, int]:
    """
    Scheduled sweep: TRIAL past trial_ends_at -> EXPIRED, ACTIVE past
    current_period_end -> PAST_DUE.
    """
    now = as_utc(now or now_utc())
    expired = 0
    past_due = 0
    rows = db.execute(
        select(Subscription).where(
            Subscription.status.in_(
                [SubscriptionStatus.TRIAL.value, SubscriptionStatus.ACTIVE.value]
            )
        )
    ).scalars().all()
    for subscription in rows:
        if subscription.status == SubscriptionStatus.TRIAL.value:
            ends = as_utc(subscription.trial_ends_at)
            if ends is not None and ends < now:
                subscription.status = SubscriptionStatus.EXPIRED.value
                subscription.updated_at = now
                expired += 1
        else:
            ends = as_utc(subscription.current_period_end)
            if ends is not None and ends < now:
                subscription.status = SubscriptionStatus.PAST_DUE.value
                subscription.updated_at = now
                past_due += 1
    db.flush()
    if expired or past_due:
        logger.info("Subscription sweep: expired=%d past_due=%d", expired, past_due)
    return {"expired": expired, "past_due": past_due}


# =============================================================================
# Payments
# =============================================================================


def list_payments(db: Session, org_id: UUID) -> list[Payment]:
    return list(
        db.execute(
            select(Payment)
            .where(Payment.organization_id == org_id)
            .order_by(Payment.created_at.desc())
        ).scalars().all()
    )


def get_payment(db: Session, org_id: UUID, payment_id: UUID) -> Payment:
    payment = db.execute(
        select(Payment).where(Payment.id == payment_id, Payment.organization_id == org_id)
    ).scalar_one_or_none()
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


def billing_period(now: datetime) -> str:
    return f"{now:%B} {now.year}"


async def create_slot_checkout(
    db: Session, org_id: UUID, slots: int, *, now: datetime | None = None
) -> Payment:
    """
    Open a PayMongo link for ``slots`` more agent seats.

    Slots are only credited once the payment is confirmed PAID.
    """
    if not isinstance(slots, int) or slots <= 0 or slots > MAX_SLOTS_PER_PURCHASE:
        raise ValidationError(f"Slots must be between 1 and {MAX_SLOTS_PER_PURCHASE}")
    if license_service.has_pending_payment(db, org_id):
        raise StateError("A payment is already pending. Complete or cancel it first.")

    now = now or now_utc()
    org = db.get(Organization, org_id)
    if not org:
        raise NotFoundError(f"Organization {org_id} not found")
    subscription = get_or_create_subscription(db, org_id, now=now)

    amount = Decimal(slots) * Decimal(subscription.price_per_agent)
    period = billing_period(now)
    description = f"{org.name} - {period} ({slots} agent slot{'s' if slots > 1 else ''})"

    link = await paymongo_client.create_link(
        amount, description, remarks=f"Agent slot purchase for {period}"
    )

    payment = Payment(
        organization_id=org_id,
        subscription_id=subscription.id,
        amount=amount,
        currency=settings.BILLING_CURRENCY,
        status=PaymentStatus.PENDING.value,
        agent_count=slots,
        description=description,
        billing_period=period,
        paymongo_link_id=link.id,
        payment_metadata={
            "purpose": SLOT_PURCHASE,
            "slots_purchased": slots,
            "checkout_url": link.checkout_url,
            "reference_number": link.reference_number,
        },
        created_at=now,
    )
    db.add(payment)
    if SubscriptionStatus(subscription.status) not in SUBSCRIPTION_USABLE_STATUSES:
        subscription.status = SubscriptionStatus.INCOMPLETE.value
        subscription.updated_at = now
    db.flush()
    logger.info("Slot checkout %s opened for org %s (%d slots)", payment.id, org_id, slots)
    return payment


def mark_payment_paid(
    db: Session,
    payment: Payment,
    *,
    paymongo_payment_id: str | None = None,
    payment_method: str | None = None,
    now: datetime | None = None,
) -> Payment:
    """
    PENDING -> PAID, credit the slots and start a fresh billing period.

    Idempotent: a payment that is already PAID is returned untouched, so
    the slots are credited exactly once no matter how many confirmations
    (manual check, webhook retries) arrive.
    """
    status = PaymentStatus(payment.status)
    if status == PaymentStatus.PAID:
        return payment
    if status != PaymentStatus.PENDING:
        raise StateError(f"Payment is {status.value} and cannot be marked paid")

    now = now or now_utc()
    payment.status = PaymentStatus.PAID.value
    payment.paid_at = now
    if paymongo_payment_id:
        payment.paymongo_payment_id = paymongo_payment_id
    if payment_method:
        payment.payment_method = payment_method
    db.flush()

    subscription = license_service.apply_paid_slot_purchase(db, payment)
    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.current_period_start = now
    subscription.current_period_end = add_months(now, 1)
    subscription.updated_at = now
    db.flush()
    logger.info("Payment %s confirmed PAID for org %s", payment.id, payment.organization_id)
    return payment


def mark_payment_failed(db: Session, payment: Payment, *, now: datetime | None = None) -> Payment:
    if PaymentStatus(payment.status) != PaymentStatus.PENDING:
        return payment
    now = now or now_utc()
    payment.status = PaymentStatus.FAILED.value
    subscription = license_service.get_subscription(db, payment.organization_id)
    if subscription and subscription.status == SubscriptionStatus.INCOMPLETE.value:
        subscription.status = SubscriptionStatus.PAST_DUE.value
        subscription.updated_at = now
    db.flush()
    logger.info("Payment %s marked FAILED for org %s", payment.id, payment.organization_id)
    return payment


async def check_payment_status(
    db: Session, org_id: UUID, payment_id: UUID, *, now: datetime | None = None
) -> Payment:
    """Ask PayMongo about a link-backed payment and reconcile."""
    payment = get_payment(db, org_id, payment_id)
    if PaymentStatus(payment.status) != PaymentStatus.PENDING or not payment.paymongo_link_id:
        return payment

    link = await paymongo_client.retrieve_link(payment.paymongo_link_id)
    if link.status == "paid":
        mark_payment_paid(
            db,
            payment,
            paymongo_payment_id=link.payment_id,
            payment_method=link.payment_method,
            now=now,
        )
    return payment


def cancel_pending_payment(db: Session, org_id: UUID, payment_id: UUID) -> None:
    """Delete a PENDING payment. Terminal payments are immutable."""
    payment = get_payment(db, org_id, payment_id)
    if PaymentStatus(payment.status) != PaymentStatus.PENDING:
        raise StateError(f"Only pending payments can be canceled (payment is {payment.status})")
    db.delete(payment)
    db.flush()
    logger.info("Pending payment %s canceled for org %s", payment_id, org_id)


# =============================================================================
# Webhooks
# =============================================================================


def _find_payment_for_event(db: Session, resource: dict[str, Any]) -> Payment | None:
    attributes = resource.get("attributes") or {}
    metadata = attributes.get("metadata") or {}

    payment_id = metadata.get("payment_id")
    if payment_id:
        try:
            return db.get(Payment, UUID(str(payment_id)))
        except ValueError:
            pass

    reference = attributes.get("external_reference_number") or attributes.get("reference_number")
    if not reference:
        return None

    pending = db.execute(
        select(Payment).where(Payment.status == PaymentStatus.PENDING.value)
    ).scalars().all()
    for payment in pending:
        if (payment.payment_metadata or {}).get("reference_number") == reference:
            return payment
    return None


def handle_webhook_event(db: Session, event: dict[str, Any], *, now: datetime | None = None) -> str:
    """
    Apply a verified PayMongo event. Returns a short outcome label.

    Unknown event types and unmatched payments are acknowledged and ignored.
    """
    attributes = (event.get("data") or {}).get("attributes") or {}
    event_type = attributes.get("type", "")
    resource = attributes.get("data") or {}

    if event_type not in PAID_EVENTS and event_type not in FAILED_EVENTS:
        logger.info("Ignoring PayMongo event %s", event_type)
        return "ignored"

    payment = _find_payment_for_event(db, resource)
    if payment is None:
        logger.warning("PayMongo event %s matched no payment", event_type)
        return "unmatched"

    if event_type in PAID_EVENTS:
        source = (resource.get("attributes") or {}).get("source") or {}
        mark_payment_paid(
            db,
            payment,
            paymongo_payment_id=resource.get("id"),
            payment_method=source.get("type"),
            now=now,
        )
        return "paid"
    mark_payment_failed(db, payment, now=now)
    return "failed"


def parse_webhook_body(raw_body: bytes) -> dict[str, Any]:
    try:
        event = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(event, dict):
        raise ValidationError("Webhook body must be a JSON object")
    return event
