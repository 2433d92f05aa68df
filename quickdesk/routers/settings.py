"""Organization settings: SLA deadlines, profile and mail configuration."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quickdesk.core.deps import get_db, require_csrf_header, require_owner, require_staff
from quickdesk.schemas.auth import UserSession
from quickdesk.schemas.org import DeadlineSettings, OrgRead, OrgUpdate
from quickdesk.services import auth_service, deadline_service, graph_client, ticket_service

router = APIRouter(prefix="/settings", tags=["Settings"])


def _org_read(org) -> OrgRead:
    read = OrgRead.model_validate(org)
    read.mail_configured = graph_client.config_for_org(org) is not None
    return read


@router.get("/deadlines", response_model=DeadlineSettings)
def get_deadline_settings(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> DeadlineSettings:
    org = ticket_service.get_organization(db, session.org_id)
    return DeadlineSettings(**deadline_service.normalize_deadline_settings(org.deadline_settings))


@router.put(
    "/deadlines",
    response_model=DeadlineSettings,
    dependencies=[Depends(require_csrf_header)],
)
def update_deadline_settings(
    body: DeadlineSettings,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
) -> DeadlineSettings:
    """Lead times apply to deadlines computed from now on; existing deadlines are kept."""
    saved = auth_service.update_deadline_settings(db, session.org_id, body.model_dump())
    db.commit()
    return DeadlineSettings(**saved)


@router.get("/organization", response_model=OrgRead)
def get_organization(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> OrgRead:
    return _org_read(ticket_service.get_organization(db, session.org_id))


@router.patch(
    "/organization",
    response_model=OrgRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_organization(
    body: OrgUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
) -> OrgRead:
    org = auth_service.update_organization(db, session.org_id, body.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(org)
    return _org_read(org)
