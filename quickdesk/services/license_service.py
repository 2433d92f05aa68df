"""Seat accounting: purchased agent slots vs. licensed members."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quickdesk.core.errors import (
    CLIENT_NOT_LICENSABLE,
    INSUFFICIENT_LICENSES,
    NO_AVAILABLE_LICENSES,
    LicenseError,
    NotFoundError,
    ValidationError,
)
from quickdesk.db.enums import PaymentStatus, SUBSCRIPTION_USABLE_STATUSES, SubscriptionStatus
from quickdesk.db.models import OrganizationMember, Payment, Subscription
from quickdesk.utils.datetimes import now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemberGate:
    """Whether new agents may be added, with a reason the UI can show."""

    allowed: bool
    reason: str | None = None


def get_subscription(db: Session, org_id: UUID) -> Subscription | None:
    return db.execute(
        select(Subscription).where(Subscription.organization_id == org_id)
    ).scalar_one_or_none()


def used_slots(db: Session, org_id: UUID) -> int:
    """Live count of licensed non-client members (never cached)."""
    return db.execute(
        select(func.count(OrganizationMember.id)).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.is_client.is_(False),
            OrganizationMember.has_license.is_(True),
        )
    ).scalar_one()


def available_slots(db: Session, org_id: UUID, subscription: Subscription | None = None) -> int:
    subscription = subscription or get_subscription(db, org_id)
    if subscription is None:
        return 0
    return subscription.agent_slots - used_slots(db, org_id)


def can_activate_license(subscription: Subscription | None, used: int) -> bool:
    if subscription is None:
        return False
    return subscription.agent_slots - used > 0


def _get_member(db: Session, org_id: UUID, member_id: UUID) -> OrganizationMember:
    member = db.execute(
        select(OrganizationMember).where(
            OrganizationMember.id == member_id,
            OrganizationMember.organization_id == org_id,
        )
    ).scalar_one_or_none()
    if not member:
        raise NotFoundError(f"Member {member_id} not found")
    return member


def _ensure_licensable(member: OrganizationMember) -> None:
    if member.is_client:
        raise ValidationError(
            f"{member.email} is a client contact and cannot hold a license",
            code=CLIENT_NOT_LICENSABLE,
        )


def activate_license(db: Session, org_id: UUID, member_id: UUID) -> OrganizationMember:
    """
    Give one member a seat.

    Fails with NoAvailableLicenses before touching anything when the
    organization has no free slot. Already-licensed members are returned
    unchanged.
    """
    member = _get_member(db, org_id, member_id)
    _ensure_licensable(member)
    if member.has_license:
        return member

    subscription = get_subscription(db, org_id)
    if not can_activate_license(subscription, used_slots(db, org_id)):
        raise LicenseError("No available licenses", code=NO_AVAILABLE_LICENSES)

    member.has_license = True
    db.flush()
    recompute_billing(db, org_id)
    logger.info("License activated for member %s in org %s", member.id, org_id)
    return member


def revoke_license(db: Session, org_id: UUID, member_id: UUID) -> OrganizationMember:
    member = _get_member(db, org_id, member_id)
    if member.has_license:
        member.has_license = False
        db.flush()
        logger.info("License revoked for member %s in org %s", member.id, org_id)
    recompute_billing(db, org_id)
    return member


def bulk_activate_licenses(
    db: Session, org_id: UUID, member_ids: list[UUID]
) -> list[OrganizationMember]:
    """
    Activate licenses for a batch, all or nothing.

    Every member is checked first (existence, not a client). Members that
    already hold a license need no new slot. If the free slots cannot
    cover the rest, InsufficientLicenses is raised and nobody changes.
    """
    wanted = list(dict.fromkeys(member_ids))
    rows = db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.id.in_(wanted),
        )
    ).scalars().all() if wanted else []
    found = {m.id: m for m in rows}
    missing = [str(mid) for mid in wanted if mid not in found]
    if missing:
        raise NotFoundError(f"Members not found: {', '.join(missing)}", missing=missing)

    members = [found[mid] for mid in wanted]
    for member in members:
        _ensure_licensable(member)

    to_activate = [m for m in members if not m.has_license]
    if not to_activate:
        return members

    free = available_slots(db, org_id)
    if free < len(to_activate):
        raise LicenseError(
            f"Insufficient licenses: {len(to_activate)} requested, {max(free, 0)} available",
            code=INSUFFICIENT_LICENSES,
        )

    for member in to_activate:
        member.has_license = True
    db.flush()
    recompute_billing(db, org_id)
    logger.info("Bulk activated %d licenses in org %s", len(to_activate), org_id)
    return members


def recompute_billing(db: Session, org_id: UUID) -> Subscription | None:
    """
    Refresh agent_count (unlicensed non-client members) and total_amount
    (agent_slots * price_per_agent).
    """
    subscription = get_subscription(db, org_id)
    if subscription is None:
        return None
    unlicensed = db.execute(
        select(func.count(OrganizationMember.id)).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.is_client.is_(False),
            OrganizationMember.has_license.is_(False),
        )
    ).scalar_one()
    subscription.agent_count = unlicensed
    subscription.total_amount = Decimal(subscription.agent_slots) * Decimal(
        subscription.price_per_agent
    )
    subscription.updated_at = now_utc()
    db.flush()
    return subscription


def has_pending_payment(db: Session, org_id: UUID) -> bool:
    return db.execute(
        select(Payment.id).where(
            Payment.organization_id == org_id,
            Payment.status == PaymentStatus.PENDING.value,
        ).limit(1)
    ).first() is not None


def can_add_members(db: Session, org_id: UUID) -> MemberGate:
    """All of: subscription exists, free slot, no pending payment, usable status."""
    subscription = get_subscription(db, org_id)
    if subscription is None:
        return MemberGate(False, "No subscription found for this organization.")
    if available_slots(db, org_id, subscription) <= 0:
        return MemberGate(
            False, "No available licenses. Purchase more agent slots to add members."
        )
    if has_pending_payment(db, org_id):
        return MemberGate(
            False, "A payment is pending. Complete or cancel it before adding members."
        )
    status = SubscriptionStatus(subscription.status)
    if status not in SUBSCRIPTION_USABLE_STATUSES:
        return MemberGate(
            False, f"Subscription is {status.value}. Renew it before adding members."
        )
    return MemberGate(True)


def apply_paid_slot_purchase(db: Session, payment: Payment) -> Subscription:
    """
    Credit purchased slots from a PAID payment.

    The only path that increases agent_slots. A ``slots_applied`` marker
    in the payment metadata makes it run at most once per payment.
    """
    if PaymentStatus(payment.status) != PaymentStatus.PAID:
        raise ValidationError("Only PAID payments can add agent slots")
    subscription = get_subscription(db, payment.organization_id)
    if subscription is None:
        raise NotFoundError(f"Subscription for organization {payment.organization_id} not found")

    metadata = dict(payment.payment_metadata or {})
    if metadata.get("slots_applied"):
        return subscription

    slots = int(metadata.get("slots_purchased") or payment.agent_count or 0)
    subscription.agent_slots += slots
    metadata["slots_applied"] = True
    payment.payment_metadata = metadata
    db.flush()
    recompute_billing(db, payment.organization_id)
    logger.info(
        "Applied %d purchased slots from payment %s (org %s)",
        slots, payment.id, payment.organization_id,
    )
    return subscription
