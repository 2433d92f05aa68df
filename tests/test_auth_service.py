"""Signup, member signup and login lockout."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from quickdesk.core.config import settings
from quickdesk.core.errors import AuthError, LockoutError, NotFoundError, StateError, ValidationError
from quickdesk.db.enums import MemberStatus, Role, SubscriptionStatus
from quickdesk.services import auth_service, license_service

PASSWORD = "Secret#123"
NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def _signup(db, **overrides):
    data = {
        "org_name": "Acme Corp",
        "domain": "acme.com",
        "name": "Jan Cruz",
        "email": "jan@acme.com",
        "password": PASSWORD,
    }
    data.update(overrides)
    return auth_service.signup(db, **data)


def test_signup_creates_owner_org_and_trial(db):
    user, org = _signup(db, email="JAN@Acme.com", domain="@ACME.com")

    assert user.email == "jan@acme.com"
    assert org.domain == "acme.com"
    assert org.owner_user_id == user.id
    assert org.deadline_settings == {"Urgent": 1, "High": 2, "Medium": 3, "Low": 4}
    subscription = license_service.get_subscription(db, org.id)
    assert subscription.status == SubscriptionStatus.TRIAL.value

    context = auth_service.resolve_org_context(db, user)
    assert context.org_id == org.id
    assert context.role == Role.OWNER
    assert context.member_id is not None


def test_signup_email_must_match_domain(db):
    with pytest.raises(ValidationError):
        _signup(db, email="jan@gmail.com")


@pytest.mark.parametrize("password", ["short1!", "alllowercase1!", "NoDigits!!", "NoSpecial123"])
def test_signup_rejects_weak_passwords(db, password):
    with pytest.raises(ValidationError):
        _signup(db, password=password)


def test_signup_rejects_taken_domain_and_name(db):
    _signup(db)
    with pytest.raises(ValidationError, match="domain"):
        _signup(db, org_name="Other Corp", email="ann@acme.com")
    with pytest.raises(ValidationError, match="name"):
        _signup(db, org_name="acme corp", domain="acme.net", email="ann@acme.net")


def test_login_returns_org_context(db, test_org, test_owner):
    result = auth_service.login(db, email=test_owner.email.upper(), password=PASSWORD, now=NOW)
    assert result.user.id == test_owner.id
    assert result.context.role == Role.OWNER
    assert result.context.org_id == test_org.id


def test_agent_and_client_roles(db, test_org, member_factory):
    agent_user, _ = member_factory(name="Ada", email="ada@test.com")
    client_user, _ = member_factory(name="Cid", email="cid@client.com", is_client=True)

    assert auth_service.resolve_org_context(db, agent_user).role == Role.AGENT
    assert auth_service.resolve_org_context(db, client_user).role == Role.CLIENT


def test_repeated_failures_lock_the_account(db, test_owner):
    for attempt in range(settings.LOGIN_MAX_ATTEMPTS):
        with pytest.raises(AuthError):
            auth_service.login(
                db, email=test_owner.email, password="Wrong#123", now=NOW + timedelta(seconds=attempt)
            )

    with pytest.raises(LockoutError) as exc:
        auth_service.login(db, email=test_owner.email, password=PASSWORD, now=NOW + timedelta(seconds=5))
    assert exc.value.locked_until > NOW

    after_window = NOW + timedelta(seconds=settings.LOGIN_LOCKOUT_SECONDS + 10)
    assert auth_service.login(db, email=test_owner.email, password=PASSWORD, now=after_window).user.id == test_owner.id


def test_success_resets_failure_count(db, test_owner):
    for offset in (0, 1):
        with pytest.raises(AuthError):
            auth_service.login(db, email=test_owner.email, password="Wrong#123", now=NOW + timedelta(seconds=offset))
    auth_service.login(db, email=test_owner.email, password=PASSWORD, now=NOW + timedelta(seconds=2))
    with pytest.raises(AuthError):
        auth_service.login(db, email=test_owner.email, password="Wrong#123", now=NOW + timedelta(seconds=3))

    assert auth_service.lockout_until(db, test_owner.email, NOW + timedelta(seconds=4)) is None


def test_member_signup_requires_invitation(db, test_org):
    with pytest.raises(NotFoundError):
        auth_service.member_signup(db, email="nobody@test.com", password=PASSWORD)


def test_member_signup_verifies_invited_member(db, test_org):
    from quickdesk.db.models import OrganizationMember

    member = OrganizationMember(
        organization_id=test_org.id,
        name="Ivy Invitee",
        email="ivy@test.com",
        status=MemberStatus.INVITED.value,
    )
    db.add(member)
    db.flush()

    user = auth_service.member_signup(db, email="Ivy@test.com", password=PASSWORD)

    assert member.user_id == user.id
    assert member.status == MemberStatus.VERIFIED.value
    assert auth_service.login(db, email="ivy@test.com", password=PASSWORD).context.role == Role.AGENT
    with pytest.raises(NotFoundError):
        auth_service.member_signup(db, email="ivy@test.com", password=PASSWORD)


def test_member_signup_refuses_existing_account(db, test_org, member_factory):
    user, member = member_factory(name="Eve", email="eve@test.com")
    member.status = MemberStatus.INVITED.value
    db.flush()
    with pytest.raises(StateError):
        auth_service.member_signup(db, email="eve@test.com", password=PASSWORD)


def test_update_deadline_settings_validates(db, test_org):
    assert auth_service.update_deadline_settings(db, test_org.id, {"Urgent": 2}) == {
        "Urgent": 2, "High": 0, "Medium": 0, "Low": 0,
    }
    with pytest.raises(ValidationError):
        auth_service.update_deadline_settings(db, test_org.id, {"Urgent": -1})
