"""Organization members and license seats."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quickdesk.core.deps import get_db, require_csrf_header, require_owner, require_staff
from quickdesk.schemas.auth import UserSession
from quickdesk.schemas.member import (
    BulkLicenseRequest,
    LicenseSummary,
    MemberCreate,
    MemberGateRead,
    MemberRead,
    MemberUpdate,
)
from quickdesk.services import license_service, member_service

router = APIRouter(prefix="/members", tags=["Members"])


@router.get("", response_model=list[MemberRead])
def list_members(
    include_clients: bool = True,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    return member_service.list_members(db, session.org_id, include_clients=include_clients)


@router.get("/gate", response_model=MemberGateRead)
def member_gate(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> MemberGateRead:
    """Whether the organization may add agents right now, with the reason if not."""
    gate = license_service.can_add_members(db, session.org_id)
    return MemberGateRead(allowed=gate.allowed, reason=gate.reason)


@router.get("/licenses", response_model=LicenseSummary)
def license_summary(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> LicenseSummary:
    subscription = license_service.get_subscription(db, session.org_id)
    return LicenseSummary(
        agent_slots=subscription.agent_slots if subscription else 0,
        used_slots=license_service.used_slots(db, session.org_id),
        available_slots=license_service.available_slots(db, session.org_id, subscription),
    )


@router.get("/{member_id}", response_model=MemberRead)
def get_member(
    member_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    return member_service.get_member(db, session.org_id, member_id)


@router.post(
    "",
    response_model=MemberRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def add_member(
    data: MemberCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
):
    member = member_service.add_member(db, session.org_id, **data.model_dump())
    db.commit()
    db.refresh(member)
    return member


@router.patch(
    "/{member_id}",
    response_model=MemberRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_member(
    member_id: UUID,
    data: MemberUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
):
    member = member_service.update_member(
        db, session.org_id, member_id, data.model_dump(exclude_unset=True)
    )
    db.commit()
    db.refresh(member)
    return member


@router.delete(
    "/{member_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_member(
    member_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
) -> None:
    member_service.delete_member(db, session.org_id, member_id)
    db.commit()


@router.post(
    "/{member_id}/invite",
    response_model=MemberRead,
    dependencies=[Depends(require_csrf_header)],
)
async def invite_member(
    member_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
):
    """Send the invitation e-mail; the member becomes INVITED only if it was sent."""
    member = await member_service.invite_member(db, session.org_id, member_id)
    db.commit()
    db.refresh(member)
    return member


# =============================================================================
# Licenses
# =============================================================================

@router.post(
    "/{member_id}/license",
    response_model=MemberRead,
    dependencies=[Depends(require_csrf_header)],
)
def activate_license(
    member_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
):
    member = license_service.activate_license(db, session.org_id, member_id)
    db.commit()
    db.refresh(member)
    return member


@router.delete(
    "/{member_id}/license",
    response_model=MemberRead,
    dependencies=[Depends(require_csrf_header)],
)
def revoke_license(
    member_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
):
    member = license_service.revoke_license(db, session.org_id, member_id)
    db.commit()
    db.refresh(member)
    return member


@router.post(
    "/licenses/bulk",
    response_model=list[MemberRead],
    dependencies=[Depends(require_csrf_header)],
)
def bulk_activate_licenses(
    data: BulkLicenseRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_owner),
):
    """All listed members get a license, or none do."""
    members = license_service.bulk_activate_licenses(db, session.org_id, data.member_ids)
    db.commit()
    for member in members:
        db.refresh(member)
    return members
