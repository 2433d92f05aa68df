"""Webhooks router - PayMongo payment events."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from quickdesk.core.deps import get_db
from quickdesk.schemas.billing import WebhookAck
from quickdesk.services import paymongo_client, subscription_service

router = APIRouter()
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Paymongo-Signature"


@router.post("/paymongo", response_model=WebhookAck)
async def receive_paymongo_webhook(
    request: Request,
    db: Session = Depends(get_db),
) -> WebhookAck:
    """
    Receive PayMongo payment events.

    The signature covers the raw body, so it is read before parsing.
    Unknown events and unmatched payments are acknowledged with 200 so
    PayMongo does not keep retrying them.
    """
    body = await request.body()
    event = subscription_service.parse_webhook_body(body)
    livemode = bool(((event.get("data") or {}).get("attributes") or {}).get("livemode"))

    if not paymongo_client.verify_webhook_signature(
        body, request.headers.get(SIGNATURE_HEADER), livemode=livemode
    ):
        logger.warning("PayMongo webhook with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    result = subscription_service.handle_webhook_event(db, event)
    db.commit()
    return WebhookAck(result=result)
