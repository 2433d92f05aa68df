"""Contact resolution: organization members and company employees as one union.

Callers branch on ``contact.kind`` instead of probing record shapes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from quickdesk.db.enums import MemberStatus
from quickdesk.db.models import Company, Employee, OrganizationMember
from quickdesk.utils.normalization import normalize_email


@dataclass(frozen=True)
class MemberContact:
    id: UUID
    name: str
    email: str
    status: MemberStatus
    is_client: bool
    has_license: bool
    kind: Literal["member"] = "member"


@dataclass(frozen=True)
class EmployeeContact:
    id: UUID
    name: str
    email: str
    status: MemberStatus
    company_id: UUID
    company_name: str
    kind: Literal["employee"] = "employee"


Contact = Union[MemberContact, EmployeeContact]


def _member_contact(member: OrganizationMember) -> MemberContact:
    return MemberContact(
        id=member.id,
        name=member.name,
        email=member.email,
        status=MemberStatus(member.status),
        is_client=member.is_client,
        has_license=member.has_license,
    )


def resolve_contact(db: Session, org_id: UUID, email: str | None) -> Contact | None:
    """
    Resolve an address to a member or a company employee of ``org_id``.

    Members win when an address is listed both ways.
    """
    email = normalize_email(email)
    if not email:
        return None

    member = db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.email == email,
        )
    ).scalar_one_or_none()
    if member:
        return _member_contact(member)

    row = db.execute(
        select(Employee, Company)
        .join(Company, Employee.company_id == Company.id)
        .where(Company.organization_id == org_id, Employee.email == email)
        .limit(1)
    ).first()
    if row:
        employee, company = row
        return EmployeeContact(
            id=employee.id,
            name=employee.name,
            email=employee.email,
            status=MemberStatus(employee.status),
            company_id=company.id,
            company_name=company.name,
        )
    return None


def company_for_sender(db: Session, org_id: UUID, email: str | None) -> UUID | None:
    contact = resolve_contact(db, org_id, email)
    if isinstance(contact, EmployeeContact):
        return contact.company_id
    return None
