"""
Test configuration and fixtures.

Provides:
- In-memory SQLite schema built from the models
- Database session with savepoint (rollback after each test)
- JWT token minting for authenticated tests
- HTTPX AsyncClient with proper headers
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

# Must be set before the app (and its settings) are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from quickdesk.main import app
from quickdesk.db.base import Base
from quickdesk.db.session import SessionLocal, engine
from quickdesk.core.deps import COOKIE_NAME, get_db
from quickdesk.core.security import create_session_token, hash_password
from quickdesk.db.enums import MemberStatus, Role
from quickdesk.db.models import Organization, OrganizationMember, Subscription, User
from quickdesk.services import subscription_service
from quickdesk.services.activity_service import Actor
from quickdesk.services.ticket_cache import ticket_cache

TEST_PASSWORD = "Secret#123"


# =============================================================================
# Database Fixtures (Savepoint pattern)
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def schema() -> Generator[None, None, None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def clear_ticket_cache() -> Generator[None, None, None]:
    ticket_cache.clear()
    yield
    ticket_cache.clear()


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Creates a database session with savepoint for test isolation.

    Service and router code may call commit() or rollback(); both only
    touch the session's savepoint, and the outer transaction is rolled
    back at the end of the test. Fixtures commit so that a rolled back
    action does not discard them.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = SessionLocal(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization with a trial subscription and 5 agent slots."""
    org = Organization(
        id=uuid.uuid4(),
        name=f"Test Organization {uuid.uuid4().hex[:6]}",
        domain="test.com",
        deadline_settings={"Urgent": 1, "High": 2, "Medium": 3, "Low": 4},
    )
    db.add(org)
    db.flush()
    subscription = subscription_service.get_or_create_subscription(db, org.id)
    subscription.agent_slots = 5
    db.commit()
    return org


@pytest.fixture(scope="function")
def test_subscription(db: Session, test_org: Organization) -> Subscription:
    return subscription_service.get_or_create_subscription(db, test_org.id)


def make_user_member(
    db: Session,
    org: Organization,
    *,
    name: str,
    email: str,
    has_license: bool = True,
    is_client: bool = False,
) -> tuple[User, OrganizationMember]:
    user = User(id=uuid.uuid4(), email=email, name=name, password_hash=hash_password(TEST_PASSWORD))
    db.add(user)
    db.flush()
    member = OrganizationMember(
        id=uuid.uuid4(),
        organization_id=org.id,
        user_id=user.id,
        name=name,
        email=email,
        is_client=is_client,
        has_license=has_license,
        status=MemberStatus.VERIFIED.value,
    )
    db.add(member)
    db.commit()
    return user, member


@pytest.fixture(scope="function")
def member_factory(db: Session, test_org: Organization):
    """Build extra (user, member) pairs in test_org."""
    def _make(**kwargs) -> tuple[User, OrganizationMember]:
        return make_user_member(db, test_org, **kwargs)
    return _make


@pytest.fixture(scope="function")
def test_owner(db: Session, test_org: Organization) -> User:
    """Owner account of test_org (licensed member record included)."""
    user, _member = make_user_member(
        db, test_org, name="Olivia Owner", email=f"owner-{uuid.uuid4().hex[:6]}@test.com"
    )
    test_org.owner_user_id = user.id
    db.commit()
    return user


@pytest.fixture(scope="function")
def test_agent(db: Session, test_org: Organization) -> OrganizationMember:
    """A licensed agent who can be assigned tickets."""
    _user, member = make_user_member(
        db, test_org, name="Alex Agent", email=f"agent-{uuid.uuid4().hex[:6]}@test.com"
    )
    return member


@pytest.fixture(scope="function")
def actor(test_owner: User) -> Actor:
    return Actor(user_id=test_owner.id, name=test_owner.name, email=test_owner.email)


@pytest.fixture(scope="function")
def mail_outbox(db: Session, test_org: Organization, monkeypatch) -> list[dict]:
    """Configure test_org mail settings and capture outgoing messages."""
    from quickdesk.services import graph_client

    test_org.graph_tenant_id = "tenant"
    test_org.graph_client_id = "client"
    test_org.graph_client_secret = "secret"
    test_org.graph_mailbox = "support@test.com"
    db.commit()

    sent: list[dict] = []

    async def fake_send_mail(config, *, recipient, subject, body_html, cc=None, bcc=None):
        sent.append(
            {"recipient": recipient, "subject": subject, "body_html": body_html, "cc": cc or [], "bcc": bcc or []}
        )

    monkeypatch.setattr(graph_client, "send_mail", fake_send_mail)
    return sent


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    org: Organization
    token: str
    cookie_name: str = COOKIE_NAME


@pytest.fixture(scope="function")
def test_auth(test_owner: User, test_org: Organization) -> TestAuth:
    """Create JWT token for the organization owner."""
    token = create_session_token(
        user_id=test_owner.id,
        org_id=test_org.id,
        role=Role.OWNER.value,
        token_version=test_owner.token_version,
    )
    return TestAuth(user=test_owner, org=test_org, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient for testing public endpoints.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create authenticated AsyncClient with JWT cookie and CSRF header.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={test_auth.cookie_name: test_auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client_as(db: Session) -> AsyncGenerator:
    """
    Factory for AsyncClients signed in as any user.

    Usage: ``api = client_as(user, org, Role.AGENT)``.
    """
    clients: list[AsyncClient] = []

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    def _make(user: User, org: Organization, role: Role) -> AsyncClient:
        token = create_session_token(user.id, org.id, role.value, user.token_version)
        c = AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies={COOKIE_NAME: token},
            headers={"X-Requested-With": "XMLHttpRequest"},
        )
        clients.append(c)
        return c

    yield _make

    for c in clients:
        await c.aclose()
    app.dependency_overrides.clear()
