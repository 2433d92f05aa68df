"""Ticket inbox, detail, field update, archive, note and e-mail thread APIs."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from quickdesk.core.deps import get_db, require_csrf_header, require_staff
from quickdesk.db.enums import TicketPriority, TicketStatus
from quickdesk.schemas.auth import UserSession
from quickdesk.schemas.ticketing import (
    ActionResponse,
    ActivityRead,
    BatchResponse,
    FieldChangeRead,
    PollingPolicyRead,
    TicketBatchRequest,
    TicketChangesResponse,
    TicketCreateRequest,
    TicketDetail,
    TicketForwardRequest,
    TicketListResponse,
    TicketMessageRead,
    TicketNoteCreate,
    TicketNoteRead,
    TicketPatchRequest,
    TicketRead,
    TicketReplyRequest,
)
from quickdesk.services import (
    activity_service,
    conversation_service,
    notification_service,
    polling,
    ticket_service,
)
from quickdesk.services.activity_service import Actor
from quickdesk.services.ticket_validation import coerce_enum
from quickdesk.services.workflow import ActionResult, run_action, run_action_async
from quickdesk.utils.datetimes import now_utc

router = APIRouter(prefix="/tickets", tags=["Tickets"])


def _actor(session: UserSession) -> Actor:
    return Actor(user_id=session.user_id, name=session.name, email=session.email)


def _failure_response(result: ActionResult, model) -> JSONResponse:
    body = model(success=False, error=result.error, code=result.code, missing=result.missing)
    return JSONResponse(status_code=result.status_code, content=body.model_dump(mode="json"))


# =============================================================================
# Reads
# =============================================================================

@router.get("", response_model=TicketListResponse)
def list_tickets(
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
    status: str | None = None,
    priority: str | None = None,
    company_id: UUID | None = None,
    assignee_id: UUID | None = None,
    archived: bool = False,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> TicketListResponse:
    """Newest first; archived tickets only when ``archived=true``."""
    filters = ticket_service.TicketFilter(
        only_archived=archived,
        status=coerce_enum(TicketStatus, "status", status) if status else None,
        priority=coerce_enum(TicketPriority, "priority", priority) if priority else None,
        company_id=company_id,
        assignee_id=assignee_id,
        limit=limit,
    )
    tickets = ticket_service.list_tickets(db, session.org_id, filters)
    return TicketListResponse(items=[TicketRead.model_validate(t) for t in tickets])


@router.get("/changes", response_model=TicketChangesResponse)
def list_changes(
    cursor: datetime | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> TicketChangesResponse:
    """Tickets changed after ``cursor``, for incremental inbox refresh."""
    tickets, next_cursor = ticket_service.list_since(db, session.org_id, cursor, limit)
    return TicketChangesResponse(
        items=[TicketRead.model_validate(t) for t in tickets],
        next_cursor=next_cursor,
    )


@router.get("/polling-policy", response_model=PollingPolicyRead)
def get_polling_policy(
    last_activity_at: datetime | None = None,
    tab_hidden: bool = False,
    session: UserSession = Depends(require_staff),
) -> PollingPolicyRead:
    policy = polling.default_policy()
    return PollingPolicyRead(
        **policy.to_dict(),
        next_interval_seconds=policy.next_interval(last_activity_at, now_utc(), tab_hidden),
    )


@router.get("/{ticket_id}", response_model=TicketDetail)
def get_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> TicketDetail:
    """Served from the bounded ticket cache; writes drop the entry."""
    return TicketDetail.model_validate(ticket_service.get_ticket_snapshot(db, session.org_id, ticket_id))


@router.get("/{ticket_id}/activity", response_model=list[ActivityRead])
def list_activity(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> list[ActivityRead]:
    ticket_service.get_ticket(db, session.org_id, ticket_id)
    entries = activity_service.list_for_ticket(db, session.org_id, ticket_id)
    return [ActivityRead.model_validate(e) for e in entries]


@router.get("/{ticket_id}/notes", response_model=list[TicketNoteRead])
def list_notes(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> list[TicketNoteRead]:
    notes = ticket_service.list_notes(db, session.org_id, ticket_id)
    return [TicketNoteRead.model_validate(n) for n in notes]


@router.get("/{ticket_id}/messages", response_model=list[TicketMessageRead])
def list_messages(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> list[TicketMessageRead]:
    """Stored e-mail thread, oldest first."""
    messages = conversation_service.list_messages(db, session.org_id, ticket_id)
    return [TicketMessageRead.model_validate(m) for m in messages]


# =============================================================================
# Mutations
# =============================================================================

@router.post(
    "",
    response_model=TicketDetail,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def create_ticket(
    data: TicketCreateRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> TicketDetail:
    """Create a ticket by hand; the sender is notified after commit."""
    ticket = ticket_service.create_ticket(
        db,
        session.org_id,
        subject=data.subject,
        sender_email=data.sender_email,
        sender_name=data.sender_name,
        body=data.body,
        priority=data.priority,
        ticket_type=data.type,
        actor=_actor(session),
    )
    notification = notification_service.ticket_created(ticket)
    db.commit()
    db.refresh(ticket)
    payload = TicketDetail.model_validate(ticket)

    org = ticket_service.get_organization(db, session.org_id)
    await notification_service.deliver(org, notification)
    return payload


@router.patch("/{ticket_id}", dependencies=[Depends(require_csrf_header)])
async def patch_ticket(
    ticket_id: UUID,
    data: TicketPatchRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    """
    Apply the fields present in the body as one atomic update.
    Returns an action result; notifications go out after commit.
    """
    changes = data.model_dump(exclude_unset=True)
    result = run_action(
        db, ticket_service.update_ticket, session.org_id, ticket_id, changes, _actor(session)
    )
    if not result.success:
        return _failure_response(result, ActionResponse)

    outcome = result.data
    db.refresh(outcome.ticket)
    response = ActionResponse(
        success=True,
        ticket=TicketRead.model_validate(outcome.ticket),
        changes=[FieldChangeRead(field=c.field, details=c.details) for c in outcome.changes],
    )
    if outcome.notifications:
        org = ticket_service.get_organization(db, session.org_id)
        await notification_service.deliver_all(org, outcome.notifications)
    return response


@router.post(
    "/archive",
    response_model=BatchResponse,
    dependencies=[Depends(require_csrf_header)],
)
def archive_tickets(
    data: TicketBatchRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    """Archive every listed ticket or none of them."""
    result = run_action(db, ticket_service.archive_tickets, session.org_id, data.ticket_ids, _actor(session))
    if not result.success:
        return _failure_response(result, BatchResponse)
    return BatchResponse(success=True, count=result.data)


@router.post(
    "/unarchive",
    response_model=BatchResponse,
    dependencies=[Depends(require_csrf_header)],
)
def unarchive_tickets(
    data: TicketBatchRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    result = run_action(db, ticket_service.unarchive_tickets, session.org_id, data.ticket_ids, _actor(session))
    if not result.success:
        return _failure_response(result, BatchResponse)
    return BatchResponse(success=True, count=result.data)


@router.post(
    "/{ticket_id}/notes",
    response_model=TicketNoteRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_note(
    ticket_id: UUID,
    data: TicketNoteCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> TicketNoteRead:
    note = ticket_service.add_note(db, session.org_id, ticket_id, data.content, _actor(session))
    db.commit()
    db.refresh(note)
    return TicketNoteRead.model_validate(note)


@router.delete(
    "/{ticket_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> None:
    ticket_service.delete_ticket(db, session.org_id, ticket_id)
    db.commit()


# =============================================================================
# E-mail thread
# =============================================================================

@router.post(
    "/{ticket_id}/messages/sync",
    response_model=list[TicketMessageRead],
    dependencies=[Depends(require_csrf_header)],
)
async def sync_messages(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> list[TicketMessageRead]:
    """Re-read the conversation from the mailbox and return the stored thread."""
    messages = await conversation_service.sync_conversation(db, session.org_id, ticket_id)
    db.commit()
    return [TicketMessageRead.model_validate(m) for m in messages]


@router.post("/{ticket_id}/reply", dependencies=[Depends(require_csrf_header)])
async def reply_to_ticket(
    ticket_id: UUID,
    data: TicketReplyRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    """Reply from the support mailbox; nothing is stored if the send fails."""
    result = await run_action_async(
        db,
        conversation_service.reply_to_ticket,
        session.org_id,
        ticket_id,
        data.body,
        _actor(session),
        message_id=data.message_id,
        to=data.to,
        cc=data.cc,
        bcc=data.bcc,
    )
    if not result.success:
        return _failure_response(result, ActionResponse)
    db.refresh(result.data)
    return TicketMessageRead.model_validate(result.data)


@router.post("/{ticket_id}/forward", dependencies=[Depends(require_csrf_header)])
async def forward_ticket(
    ticket_id: UUID,
    data: TicketForwardRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    result = await run_action_async(
        db,
        conversation_service.forward_ticket,
        session.org_id,
        ticket_id,
        data.to,
        _actor(session),
        comment_html=data.comment,
        message_id=data.message_id,
        cc=data.cc,
        bcc=data.bcc,
    )
    if not result.success:
        return _failure_response(result, ActionResponse)
    db.refresh(result.data)
    return TicketMessageRead.model_validate(result.data)
