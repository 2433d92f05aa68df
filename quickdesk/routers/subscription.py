"""Subscription, agent slot checkout and payment history."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quickdesk.core.deps import get_db, require_csrf_header, require_owner, require_staff
from quickdesk.db.models import Payment
from quickdesk.schemas.auth import UserSession
from quickdesk.schemas.billing import (
    CheckoutRequest,
    PaymentRead,
    SubscriptionRead,
    SubscriptionSummary,
)
from quickdesk.services import license_service, subscription_service

router = APIRouter(prefix="/subscription", tags=["Subscription"])


def _payment_read(payment: Payment) -> PaymentRead:
    read = PaymentRead.model_validate(payment)
    read.checkout_url = (payment.payment_metadata or {}).get("checkout_url")
    return read


@router.get("", response_model=SubscriptionSummary)
def get_subscription(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> SubscriptionSummary:
    subscription = subscription_service.get_or_create_subscription(db, session.org_id)
    db.commit()
    return SubscriptionSummary(
        subscription=SubscriptionRead.model_validate(subscription),
        used_slots=license_service.used_slots(db, session.org_id),
        available_slots=license_service.available_slots(db, session.org_id, subscription),
        has_pending_payment=license_service.has_pending_payment(db, session.org_id),
    )


@router.post(
    "/checkout",
    response_model=PaymentRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def create_checkout(
    data: CheckoutRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
) -> PaymentRead:
    """Open a PayMongo link for more agent slots. Slots are added once it is paid."""
    payment = await subscription_service.create_slot_checkout(db, session.org_id, data.slots)
    db.commit()
    db.refresh(payment)
    return _payment_read(payment)


@router.get("/payments", response_model=list[PaymentRead])
def list_payments(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
) -> list[PaymentRead]:
    return [_payment_read(p) for p in subscription_service.list_payments(db, session.org_id)]


@router.post(
    "/payments/{payment_id}/check",
    response_model=PaymentRead,
    dependencies=[Depends(require_csrf_header)],
)
async def check_payment(
    payment_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
) -> PaymentRead:
    """Reconcile a pending payment with PayMongo (no webhook needed)."""
    payment = await subscription_service.check_payment_status(db, session.org_id, payment_id)
    db.commit()
    db.refresh(payment)
    return _payment_read(payment)


@router.delete(
    "/payments/{payment_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def cancel_payment(
    payment_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
) -> None:
    subscription_service.cancel_pending_payment(db, session.org_id, payment_id)
    db.commit()


@router.post(
    "/cancel",
    response_model=SubscriptionRead,
    dependencies=[Depends(require_csrf_header)],
)
def cancel_subscription(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
):
    subscription = subscription_service.cancel_subscription(db, session.org_id)
    db.commit()
    db.refresh(subscription)
    return subscription
