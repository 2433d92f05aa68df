"""Organization, user, membership and login-attempt models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickdesk.db.base import Base
from quickdesk.db.enums import DEFAULT_DEADLINE_SETTINGS, DEFAULT_MEMBER_STATUS

if TYPE_CHECKING:
    from quickdesk.db.models import Company, Subscription


def _default_deadline_settings() -> dict[str, int]:
    return dict(DEFAULT_DEADLINE_SETTINGS)


class Organization(Base):
    """
    A tenant in the multi-tenant system.

    All tickets, members, companies and billing records belong to an
    organization and must be scoped by organization_id in all queries.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    owner_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Lead time in days per priority: {Urgent, High, Medium, Low}
    deadline_settings: Mapped[dict] = mapped_column(
        JSON, default=_default_deadline_settings, nullable=False
    )

    # Contact details
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    mobile: Mapped[str | None] = mapped_column(String(50), nullable=True)
    landline: Mapped[str | None] = mapped_column(String(50), nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Mail settings (NULL = use GRAPH_* settings)
    graph_tenant_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    graph_client_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    graph_client_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    graph_mailbox: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    # Relationships
    members: Mapped[list["OrganizationMember"]] = relationship(
        back_populates="organization", cascade="all, delete-orphan"
    )
    companies: Mapped[list["Company"]] = relationship(
        back_populates="organization", cascade="all, delete-orphan"
    )
    subscription: Mapped["Subscription | None"] = relationship(
        back_populates="organization", cascade="all, delete-orphan", uselist=False
    )


class User(Base):
    """
    Application login identity.

    A user signs in with e-mail and password; the organization context comes
    from the member record (or the owned organization).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class OrganizationMember(Base):
    """
    Agent or client contact listed under an organization.

    Members with is_client=True never count toward seat accounting.
    """

    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint("organization_id", "email", name="uq_member_org_email"),
        Index("idx_members_org_license", "organization_id", "is_client", "has_license"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    mobile: Mapped[str | None] = mapped_column(String(50), nullable=True)
    landline: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_client: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_license: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_MEMBER_STATUS.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    organization: Mapped["Organization"] = relationship(back_populates="members")


class LoginAttempt(Base):
    """One row per password login attempt (success or failure)."""

    __tablename__ = "login_attempts"
    __table_args__ = (Index("idx_login_attempts_email_time", "email", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
