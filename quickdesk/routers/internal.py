"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from external cron (Render/Railway/GH Actions).
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from quickdesk.core.deps import get_db, require_internal_secret
from quickdesk.services import email_sync_service, reminder_service, subscription_service


router = APIRouter(
    prefix="/internal/scheduled",
    tags=["internal"],
    dependencies=[Depends(require_internal_secret)],
)


class EmailSyncResponse(BaseModel):
    orgs_processed: int
    tickets_created: int
    notifications_sent: int
    errors: list[dict] = Field(default_factory=list)


class DeadlineReminderResponse(BaseModel):
    orgs_processed: int
    tickets_checked: int
    reminders_created: int
    reminders_sent: int
    errors: list[dict] = Field(default_factory=list)


class SubscriptionSweepResponse(BaseModel):
    expired: int
    past_due: int


@router.post("/email-sync", response_model=EmailSyncResponse)
async def email_sync(db: Session = Depends(get_db)):
    """Pull new inbox messages for every organization and open tickets."""
    return EmailSyncResponse(**await email_sync_service.process_email_sync(db))


@router.post("/deadline-reminders", response_model=DeadlineReminderResponse)
async def deadline_reminders(db: Session = Depends(get_db)):
    """
    Remind assignees of tickets due within 24h or overdue.

    Each ticket is reminded once per deadline value.
    """
    return DeadlineReminderResponse(**await reminder_service.process_deadline_reminders(db))


@router.post("/subscriptions", response_model=SubscriptionSweepResponse)
def subscription_sweep(db: Session = Depends(get_db)):
    """Expire trials past their end date; mark lapsed periods PAST_DUE."""
    stats = subscription_service.expire_subscriptions(db)
    db.commit()
    return SubscriptionSweepResponse(**stats)
