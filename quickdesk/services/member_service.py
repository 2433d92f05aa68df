"""Organization members: agents and client contacts."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from quickdesk.core.errors import (
    ExternalServiceError,
    LicenseError,
    NotFoundError,
    StateError,
    ValidationError,
)
from quickdesk.core.structured_logging import mask_email
from quickdesk.db.enums import DEFAULT_MEMBER_STATUS, MemberStatus
from quickdesk.db.models import Organization, OrganizationMember
from quickdesk.services import graph_client, license_service, notification_service
from quickdesk.utils.normalization import normalize_email, normalize_name

logger = logging.getLogger(__name__)

MEMBERS_BLOCKED = "MembersBlocked"
MEMBER_FIELDS = ("name", "address", "mobile", "landline", "is_client")


def list_members(db: Session, org_id: UUID, *, include_clients: bool = True) -> list[OrganizationMember]:
    query = select(OrganizationMember).where(OrganizationMember.organization_id == org_id)
    if not include_clients:
        query = query.where(OrganizationMember.is_client.is_(False))
    return list(db.execute(query.order_by(OrganizationMember.name)).scalars().all())


def get_member(db: Session, org_id: UUID, member_id: UUID) -> OrganizationMember:
    member = db.execute(
        select(OrganizationMember).where(
            OrganizationMember.id == member_id,
            OrganizationMember.organization_id == org_id,
        )
    ).scalar_one_or_none()
    if not member:
        raise NotFoundError(f"Member {member_id} not found")
    return member


def add_member(
    db: Session,
    org_id: UUID,
    *,
    name: str,
    email: str,
    is_client: bool = False,
    address: str | None = None,
    mobile: str | None = None,
    landline: str | None = None,
) -> OrganizationMember:
    """
    Add a member in status UNINVITED.

    Agents (non-client) pass the ``can_add_members`` gate first; client
    contacts never consume a seat and skip it.
    """
    name = normalize_name(name)
    email = normalize_email(email)
    if not name or not email:
        raise ValidationError("Name and email are required")

    exists = db.execute(
        select(OrganizationMember.id).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.email == email,
        )
    ).first()
    if exists:
        raise ValidationError(f"A member with email {email} already exists")

    if not is_client:
        gate = license_service.can_add_members(db, org_id)
        if not gate.allowed:
            raise LicenseError(gate.reason or "Members cannot be added", code=MEMBERS_BLOCKED)

    member = OrganizationMember(
        organization_id=org_id,
        name=name,
        email=email,
        is_client=is_client,
        has_license=False,
        status=DEFAULT_MEMBER_STATUS.value,
        address=address,
        mobile=mobile,
        landline=landline,
    )
    db.add(member)
    db.flush()
    license_service.recompute_billing(db, org_id)
    logger.info("Member %s added to org %s (client=%s)", mask_email(email), org_id, is_client)
    return member


def update_member(db: Session, org_id: UUID, member_id: UUID, changes: dict) -> OrganizationMember:
    """
    Update editable member fields. Turning a client contact into an agent
    passes the same ``can_add_members`` gate as adding a new agent.
    """
    member = get_member(db, org_id, member_id)
    for key, value in changes.items():
        if key not in MEMBER_FIELDS:
            raise ValidationError(f"Field '{key}' cannot be updated")
        if key == "name":
            value = normalize_name(value)
            if not value:
                raise ValidationError("Name is required")
        if key == "is_client":
            value = bool(value)
            if value and member.has_license:
                # Clients never hold a seat
                member.has_license = False
            if not value and member.is_client:
                gate = license_service.can_add_members(db, org_id)
                if not gate.allowed:
                    raise LicenseError(gate.reason or "Members cannot be added", code=MEMBERS_BLOCKED)
        setattr(member, key, value)
    db.flush()
    license_service.recompute_billing(db, org_id)
    return member


def delete_member(db: Session, org_id: UUID, member_id: UUID) -> None:
    """Remove a member; the license is released and billing recomputed."""
    member = get_member(db, org_id, member_id)
    org = db.get(Organization, org_id)
    if org and member.user_id and member.user_id == org.owner_user_id:
        raise StateError("The organization owner cannot be removed")
    if member.has_license:
        license_service.revoke_license(db, org_id, member_id)
    db.delete(member)
    db.flush()
    license_service.recompute_billing(db, org_id)
    logger.info("Member %s removed from org %s", member_id, org_id)


async def invite_member(db: Session, org_id: UUID, member_id: UUID) -> OrganizationMember:
    """
    E-mail an invitation. Status becomes INVITED only after the provider
    accepts the message; a send failure leaves the member unchanged.
    """
    member = get_member(db, org_id, member_id)
    if MemberStatus(member.status) == MemberStatus.VERIFIED:
        raise StateError(f"{member.email} has already joined")

    org = db.get(Organization, org_id)
    config = graph_client.config_for_org(org)
    if config is None:
        raise ExternalServiceError(graph_client.SERVICE, "Mail settings are not configured")

    notification = notification_service.member_invitation(org.name, member.name, member.email)
    await graph_client.send_mail(
        config,
        recipient=notification.recipient,
        subject=notification.subject,
        body_html=notification.body_html,
    )
    member.status = MemberStatus.INVITED.value
    db.flush()
    logger.info("Invitation sent to %s for org %s", mask_email(member.email), org_id)
    return member
