"""Organization signup, password login with lockout, member signup."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from quickdesk.core.config import settings
from quickdesk.core.errors import (
    AuthError,
    LockoutError,
    NotFoundError,
    StateError,
    ValidationError,
)
from quickdesk.core.security import hash_password, verify_password
from quickdesk.core.structured_logging import mask_email
from quickdesk.db.enums import DEFAULT_DEADLINE_SETTINGS, MemberStatus, Role
from quickdesk.db.models import (
    Company,
    Employee,
    LoginAttempt,
    Organization,
    OrganizationMember,
    User,
)
from quickdesk.services import deadline_service, subscription_service
from quickdesk.utils.datetimes import as_utc, now_utc
from quickdesk.utils.normalization import extract_email_domain, normalize_email, normalize_name

logger = logging.getLogger(__name__)

# bcrypt ignores everything past 72 bytes
MAX_PASSWORD_BYTES = 72
DOMAIN_PATTERN = re.compile(r"^(?=.{3,255}$)[a-z0-9-]+(\.[a-z0-9-]+)+$")


@dataclass(frozen=True)
class OrgContext:
    org_id: UUID
    role: Role
    member_id: UUID | None = None


@dataclass(frozen=True)
class LoginResult:
    user: User
    context: OrgContext


# =============================================================================
# Validation helpers
# =============================================================================


def validate_password(password: str) -> None:
    """At least 8 chars with upper, lower, digit and special character."""
    problems = []
    if len(password) < 8:
        problems.append("at least 8 characters")
    if not re.search(r"[A-Z]", password):
        problems.append("an uppercase letter")
    if not re.search(r"[a-z]", password):
        problems.append("a lowercase letter")
    if not re.search(r"\d", password):
        problems.append("a number")
    if not re.search(r"[^A-Za-z0-9]", password):
        problems.append("a special character")
    if problems:
        raise ValidationError("Password must contain " + ", ".join(problems))
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


def normalize_domain(domain: str) -> str:
    value = (domain or "").strip().lower().lstrip("@")
    if not DOMAIN_PATTERN.match(value):
        raise ValidationError(f"Invalid domain '{domain}'")
    return value


# =============================================================================
# Organization context
# =============================================================================


def resolve_org_context(db: Session, user: User) -> OrgContext | None:
    """
    Work out which organization a user acts in, and as what.

    Owned organization first, then a member record, then a company
    employee record (client contact).
    """
    owned = db.execute(
        select(Organization).where(Organization.owner_user_id == user.id).limit(1)
    ).scalar_one_or_none()
    if owned:
        member = db.execute(
            select(OrganizationMember).where(
                OrganizationMember.organization_id == owned.id,
                OrganizationMember.user_id == user.id,
            )
        ).scalar_one_or_none()
        return OrgContext(owned.id, Role.OWNER, member.id if member else None)

    member = db.execute(
        select(OrganizationMember).where(OrganizationMember.user_id == user.id).limit(1)
    ).scalar_one_or_none()
    if member:
        role = Role.CLIENT if member.is_client else Role.AGENT
        return OrgContext(member.organization_id, role, member.id)

    row = db.execute(
        select(Company.organization_id)
        .join(Employee, Employee.company_id == Company.id)
        .where(Employee.user_id == user.id)
        .limit(1)
    ).first()
    if row:
        return OrgContext(row[0], Role.CLIENT)
    return None


# =============================================================================
# Signup
# =============================================================================


def signup(
    db: Session,
    *,
    org_name: str,
    domain: str,
    name: str,
    email: str,
    password: str,
    now: datetime | None = None,
) -> tuple[User, Organization]:
    """
    Create an owner account with its organization, owner member record
    and a trial subscription.
    """
    now = now or now_utc()
    org_name = normalize_name(org_name)
    name = normalize_name(name)
    email = normalize_email(email)
    if not org_name or not name or not email:
        raise ValidationError("Organization name, name and email are required")
    domain = normalize_domain(domain)
    if extract_email_domain(email) != domain:
        raise ValidationError(f"Email must belong to the organization domain @{domain}")
    validate_password(password)

    existing_org = db.execute(
        select(Organization).where(
            or_(func.lower(Organization.name) == org_name.lower(), Organization.domain == domain)
        ).limit(1)
    ).scalar_one_or_none()
    if existing_org:
        if existing_org.domain == domain:
            raise ValidationError("An organization with this domain already exists.")
        raise ValidationError("An organization with this name already exists.")
    if db.execute(select(User.id).where(User.email == email)).first():
        raise ValidationError("An account with this email already exists.")

    user = User(email=email, name=name, password_hash=hash_password(password))
    db.add(user)
    db.flush()

    org = Organization(
        name=org_name,
        domain=domain,
        owner_user_id=user.id,
        deadline_settings=dict(DEFAULT_DEADLINE_SETTINGS),
    )
    db.add(org)
    db.flush()

    db.add(
        OrganizationMember(
            organization_id=org.id,
            user_id=user.id,
            name=name,
            email=email,
            is_client=False,
            has_license=False,
            status=MemberStatus.NOT_VERIFIED.value,
        )
    )
    db.flush()
    subscription_service.get_or_create_subscription(db, org.id, now=now)
    logger.info("Organization %s created by %s", org.id, mask_email(email))
    return user, org


def member_signup(db: Session, *, email: str, password: str) -> User:
    """
    Register an invited member. The member record must be INVITED; it
    becomes VERIFIED and linked to the new (or existing) user.
    """
    email = normalize_email(email)
    validate_password(password)
    member = db.execute(
        select(OrganizationMember).where(
            OrganizationMember.email == email,
            OrganizationMember.status == MemberStatus.INVITED.value,
        ).limit(1)
    ).scalar_one_or_none()
    if not member:
        raise NotFoundError("No pending invitation for this email")

    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user and user.password_hash:
        raise StateError("An account with this email already exists.")
    if user is None:
        user = User(email=email, name=member.name)
        db.add(user)
    user.password_hash = hash_password(password)
    db.flush()

    member.user_id = user.id
    member.status = MemberStatus.VERIFIED.value
    db.flush()
    logger.info("Member %s completed signup for org %s", mask_email(email), member.organization_id)
    return user


# =============================================================================
# Login with lockout
# =============================================================================


def _recent_failures(db: Session, email: str, since: datetime) -> list[LoginAttempt]:
    return list(
        db.execute(
            select(LoginAttempt)
            .where(
                LoginAttempt.email == email,
                LoginAttempt.success.is_(False),
                LoginAttempt.created_at >= since,
            )
            .order_by(LoginAttempt.created_at.desc())
        ).scalars().all()
    )


def lockout_until(db: Session, email: str, now: datetime) -> datetime | None:
    """
    Return when the lockout ends if ``email`` hit LOGIN_MAX_ATTEMPTS
    failures inside the window, else None. A success resets the count.
    """
    window = timedelta(seconds=settings.LOGIN_LOCKOUT_SECONDS)
    since = now - window
    last_success = db.execute(
        select(func.max(LoginAttempt.created_at)).where(
            LoginAttempt.email == email, LoginAttempt.success.is_(True)
        )
    ).scalar_one_or_none()
    if last_success is not None and as_utc(last_success) > since:
        since = as_utc(last_success)

    failures = [f for f in _recent_failures(db, email, since) if as_utc(f.created_at) > since]
    if len(failures) < settings.LOGIN_MAX_ATTEMPTS:
        return None
    until = as_utc(failures[0].created_at) + window
    return until if until > now else None


def _record_attempt(db: Session, email: str, success: bool, now: datetime, reason: str | None = None) -> None:
    db.add(LoginAttempt(email=email, success=success, reason=reason, created_at=now))
    db.flush()


def login(db: Session, *, email: str, password: str, now: datetime | None = None) -> LoginResult:
    """
    Check credentials. Every attempt is recorded; the caller must commit
    even on AuthError so failures count toward the lockout.
    """
    now = now or now_utc()
    email = normalize_email(email) or ""

    locked = lockout_until(db, email, now)
    if locked:
        raise LockoutError(
            "Too many failed login attempts. Try again later.", locked_until=locked
        )

    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not verify_password(password, user.password_hash):
        _record_attempt(db, email, False, now, "invalid_credentials")
        logger.info("Failed login for %s", mask_email(email))
        raise AuthError("Invalid email or password")
    if not user.is_active:
        _record_attempt(db, email, False, now, "disabled")
        raise AuthError("Account disabled")

    context = resolve_org_context(db, user)
    if context is None:
        _record_attempt(db, email, False, now, "no_organization")
        raise AuthError("No organization membership")

    _record_attempt(db, email, True, now)
    user.last_login_at = now
    db.flush()
    return LoginResult(user=user, context=context)


# =============================================================================
# Organization settings
# =============================================================================


def update_deadline_settings(db: Session, org_id: UUID, raw: dict) -> dict[str, int]:
    org = db.get(Organization, org_id)
    if not org:
        raise NotFoundError(f"Organization {org_id} not found")
    org.deadline_settings = deadline_service.normalize_deadline_settings(raw)
    db.flush()
    return org.deadline_settings


ORG_PROFILE_FIELDS = ("name", "address", "mobile", "landline", "website")
ORG_MAIL_FIELDS = ("graph_tenant_id", "graph_client_id", "graph_client_secret", "graph_mailbox")


def update_organization(db: Session, org_id: UUID, changes: dict) -> Organization:
    org = db.get(Organization, org_id)
    if not org:
        raise NotFoundError(f"Organization {org_id} not found")
    for key, value in changes.items():
        if key not in ORG_PROFILE_FIELDS and key not in ORG_MAIL_FIELDS:
            raise ValidationError(f"Field '{key}' cannot be updated")
        if key == "name":
            value = normalize_name(value)
            if not value:
                raise ValidationError("Organization name is required")
        elif not value:
            value = None
        setattr(org, key, value)
    db.flush()
    return org
