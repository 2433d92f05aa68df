"""Subscription and payment models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickdesk.db.base import Base
from quickdesk.db.enums import DEFAULT_PAYMENT_STATUS, DEFAULT_SUBSCRIPTION_STATUS
from quickdesk.utils.datetimes import now_utc

if TYPE_CHECKING:
    from quickdesk.db.models import Organization


class Subscription(Base):
    """
    Per-seat subscription, one per organization.

    agent_slots only grows through a confirmed (PAID) slot purchase.
    """

    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_SUBSCRIPTION_STATUS.value, nullable=False
    )
    agent_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    agent_slots: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    price_per_agent: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0.00"), nullable=False
    )
    trial_ends_at: Mapped[datetime | None] = mapped_column(nullable=True)
    current_period_start: Mapped[datetime | None] = mapped_column(nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)

    organization: Mapped["Organization"] = relationship(back_populates="subscription")


class Payment(Base):
    """
    Gateway payment for a slot purchase.

    PAID, FAILED and CANCELED are terminal; a PENDING payment may be
    deleted by the organization owner.
    """

    __tablename__ = "payments"
    __table_args__ = (Index("idx_payments_org_status", "organization_id", "status"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_PAYMENT_STATUS.value, nullable=False
    )
    agent_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    billing_period: Mapped[str | None] = mapped_column(String(50), nullable=True)
    paymongo_link_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    paymongo_payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # "metadata" is reserved on declarative classes
    payment_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict, nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=now_utc, nullable=False)
