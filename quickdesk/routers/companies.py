"""Client companies and their employees."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quickdesk.core.deps import get_db, require_csrf_header, require_staff
from quickdesk.schemas.auth import UserSession
from quickdesk.schemas.company import (
    CompanyCreate,
    CompanyListItem,
    CompanyRead,
    CompanyUpdate,
    EmployeeCreate,
    EmployeeRead,
    EmployeeUpdate,
)
from quickdesk.schemas.ticketing import ActivityRead
from quickdesk.services import activity_service, company_service

router = APIRouter(
    prefix="/companies",
    tags=["Companies"],
    dependencies=[Depends(require_staff)],
)


@router.get("", response_model=list[CompanyListItem])
def list_companies(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    """Companies with ticket and employee counts (archived tickets excluded)."""
    return [
        CompanyListItem(
            **CompanyRead.model_validate(stats.company).model_dump(),
            ticket_count=stats.ticket_count,
            unresolved_count=stats.unresolved_count,
            resolved_count=stats.resolved_count,
            employee_count=stats.employee_count,
        )
        for stats in company_service.list_companies(db, session.org_id)
    ]


@router.post(
    "",
    response_model=CompanyRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_company(
    data: CompanyCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    company = company_service.create_company(db, session.org_id, **data.model_dump())
    db.commit()
    db.refresh(company)
    return company


@router.get("/{company_id}", response_model=CompanyRead)
def get_company(
    company_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    return company_service.get_company(db, session.org_id, company_id)


@router.get("/{company_id}/activity", response_model=list[ActivityRead])
def company_activity(
    company_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    company_service.get_company(db, session.org_id, company_id)
    return activity_service.list_for_company(db, session.org_id, company_id)


@router.patch(
    "/{company_id}",
    response_model=CompanyRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_company(
    company_id: UUID,
    data: CompanyUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    company = company_service.update_company(
        db, session.org_id, company_id, data.model_dump(exclude_unset=True)
    )
    db.commit()
    db.refresh(company)
    return company


@router.delete(
    "/{company_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_company(
    company_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> None:
    company_service.delete_company(db, session.org_id, company_id)
    db.commit()


# =============================================================================
# Employees
# =============================================================================

@router.get("/{company_id}/employees", response_model=list[EmployeeRead])
def list_employees(
    company_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    return company_service.list_employees(db, session.org_id, company_id)


@router.post(
    "/{company_id}/employees",
    response_model=EmployeeRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def add_employee(
    company_id: UUID,
    data: EmployeeCreate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    employee = company_service.add_employee(db, session.org_id, company_id, **data.model_dump())
    db.commit()
    db.refresh(employee)
    return employee


@router.patch(
    "/{company_id}/employees/{employee_id}",
    response_model=EmployeeRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_employee(
    company_id: UUID,
    employee_id: UUID,
    data: EmployeeUpdate,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
):
    employee = company_service.update_employee(
        db, session.org_id, company_id, employee_id, data.model_dump(exclude_unset=True)
    )
    db.commit()
    db.refresh(employee)
    return employee


@router.delete(
    "/{company_id}/employees/{employee_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_employee(
    company_id: UUID,
    employee_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_staff),
) -> None:
    company_service.delete_employee(db, session.org_id, company_id, employee_id)
    db.commit()
