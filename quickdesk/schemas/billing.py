"""Subscription and payment schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class SubscriptionRead(BaseModel):
    id: UUID
    status: str
    agent_count: int
    agent_slots: int
    price_per_agent: Decimal
    total_amount: Decimal
    trial_ends_at: datetime | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    canceled_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubscriptionSummary(BaseModel):
    subscription: SubscriptionRead
    used_slots: int
    available_slots: int
    has_pending_payment: bool


class CheckoutRequest(BaseModel):
    slots: int = Field(..., ge=1, le=500)


class PaymentRead(BaseModel):
    id: UUID
    amount: Decimal
    currency: str
    status: str
    agent_count: int
    description: str | None = None
    billing_period: str | None = None
    payment_method: str | None = None
    paid_at: datetime | None = None
    created_at: datetime
    checkout_url: str | None = None

    model_config = {"from_attributes": True}


class WebhookAck(BaseModel):
    received: bool = True
    result: str
