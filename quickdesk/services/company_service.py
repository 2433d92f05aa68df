"""Client companies and their employees."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from quickdesk.core.errors import NotFoundError, ValidationError
from quickdesk.db.enums import MemberStatus, RESOLVED_STATUSES, TicketStatus
from quickdesk.db.models import Company, Employee, Ticket
from quickdesk.utils.normalization import normalize_email, normalize_name

logger = logging.getLogger(__name__)

COMPANY_FIELDS = ("name", "address", "mobile", "landline", "website")
EMPLOYEE_FIELDS = ("name", "email", "address", "mobile", "landline", "status")


@dataclass(frozen=True)
class CompanyStats:
    company: Company
    ticket_count: int
    unresolved_count: int
    resolved_count: int
    employee_count: int


# =============================================================================
# Companies
# =============================================================================


def _name_taken(db: Session, org_id: UUID, name: str, exclude_id: UUID | None = None) -> bool:
    query = select(Company.id).where(
        Company.organization_id == org_id, func.lower(Company.name) == name.lower()
    )
    if exclude_id is not None:
        query = query.where(Company.id != exclude_id)
    return db.execute(query).first() is not None


def create_company(db: Session, org_id: UUID, *, name: str, **fields) -> Company:
    name = normalize_name(name)
    if not name:
        raise ValidationError("Company name is required")
    if _name_taken(db, org_id, name):
        raise ValidationError(f"Company '{name}' already exists")
    unknown = set(fields) - set(COMPANY_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown company field(s): {', '.join(sorted(unknown))}")
    company = Company(organization_id=org_id, name=name, **fields)
    db.add(company)
    db.flush()
    return company


def get_company(db: Session, org_id: UUID, company_id: UUID) -> Company:
    company = db.execute(
        select(Company).where(Company.id == company_id, Company.organization_id == org_id)
    ).scalar_one_or_none()
    if not company:
        raise NotFoundError(f"Company {company_id} not found")
    return company


def list_companies(db: Session, org_id: UUID) -> list[CompanyStats]:
    """Companies with ticket (archived excluded) and employee counts."""
    resolved = [s.value for s in RESOLVED_STATUSES]
    ticket_stats = (
        select(
            Ticket.company_id.label("company_id"),
            func.count(Ticket.id).label("total"),
            func.sum(case((Ticket.status.in_(resolved), 1), else_=0)).label("resolved"),
        )
        .where(
            Ticket.organization_id == org_id,
            Ticket.status != TicketStatus.ARCHIVED.value,
        )
        .group_by(Ticket.company_id)
        .subquery()
    )
    employee_stats = (
        select(Employee.company_id.label("company_id"), func.count(Employee.id).label("employees"))
        .group_by(Employee.company_id)
        .subquery()
    )
    rows = db.execute(
        select(
            Company,
            func.coalesce(ticket_stats.c.total, 0),
            func.coalesce(ticket_stats.c.resolved, 0),
            func.coalesce(employee_stats.c.employees, 0),
        )
        .outerjoin(ticket_stats, ticket_stats.c.company_id == Company.id)
        .outerjoin(employee_stats, employee_stats.c.company_id == Company.id)
        .where(Company.organization_id == org_id)
        .order_by(Company.name)
    ).all()
    return [
        CompanyStats(
            company=company,
            ticket_count=int(total),
            unresolved_count=int(total) - int(resolved_count),
            resolved_count=int(resolved_count),
            employee_count=int(employees),
        )
        for company, total, resolved_count, employees in rows
    ]


def update_company(db: Session, org_id: UUID, company_id: UUID, changes: dict) -> Company:
    company = get_company(db, org_id, company_id)
    for key, value in changes.items():
        if key not in COMPANY_FIELDS:
            raise ValidationError(f"Field '{key}' cannot be updated")
        if key == "name":
            value = normalize_name(value)
            if not value:
                raise ValidationError("Company name is required")
            if _name_taken(db, org_id, value, exclude_id=company.id):
                raise ValidationError(f"Company '{value}' already exists")
        setattr(company, key, value)
    db.flush()
    return company


def delete_company(db: Session, org_id: UUID, company_id: UUID) -> None:
    """Delete a company; its tickets keep existing without a company."""
    company = get_company(db, org_id, company_id)
    db.delete(company)
    db.flush()
    logger.info("Company %s deleted from org %s", company_id, org_id)


# =============================================================================
# Employees
# =============================================================================


def add_employee(
    db: Session, org_id: UUID, company_id: UUID, *, name: str, email: str, **fields
) -> Employee:
    company = get_company(db, org_id, company_id)
    name = normalize_name(name)
    email = normalize_email(email)
    if not name or not email:
        raise ValidationError("Name and email are required")
    unknown = set(fields) - set(EMPLOYEE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown employee field(s): {', '.join(sorted(unknown))}")
    duplicate = db.execute(
        select(Employee.id).where(Employee.company_id == company.id, Employee.email == email)
    ).first()
    if duplicate:
        raise ValidationError(f"An employee with email {email} already exists")
    employee = Employee(company_id=company.id, name=name, email=email, **fields)
    db.add(employee)
    db.flush()
    return employee


def list_employees(db: Session, org_id: UUID, company_id: UUID) -> list[Employee]:
    company = get_company(db, org_id, company_id)
    return list(
        db.execute(
            select(Employee).where(Employee.company_id == company.id).order_by(Employee.name)
        ).scalars().all()
    )


def get_employee(db: Session, org_id: UUID, company_id: UUID, employee_id: UUID) -> Employee:
    company = get_company(db, org_id, company_id)
    employee = db.execute(
        select(Employee).where(Employee.id == employee_id, Employee.company_id == company.id)
    ).scalar_one_or_none()
    if not employee:
        raise NotFoundError(f"Employee {employee_id} not found")
    return employee


def update_employee(
    db: Session, org_id: UUID, company_id: UUID, employee_id: UUID, changes: dict
) -> Employee:
    employee = get_employee(db, org_id, company_id, employee_id)
    for key, value in changes.items():
        if key not in EMPLOYEE_FIELDS:
            raise ValidationError(f"Field '{key}' cannot be updated")
        if key == "email":
            value = normalize_email(value)
            if not value:
                raise ValidationError("Email is required")
        if key == "status":
            try:
                value = MemberStatus(value).value
            except ValueError:
                raise ValidationError(f"Invalid status '{value}'")
        setattr(employee, key, value)
    db.flush()
    return employee


def delete_employee(db: Session, org_id: UUID, company_id: UUID, employee_id: UUID) -> None:
    employee = get_employee(db, org_id, company_id, employee_id)
    db.delete(employee)
    db.flush()
