"""Client companies and their employees (client contacts)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickdesk.db.base import Base
from quickdesk.db.enums import DEFAULT_MEMBER_STATUS

if TYPE_CHECKING:
    from quickdesk.db.models import Organization


class Company(Base):
    """External company whose employees submit tickets."""

    __tablename__ = "companies"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_company_org_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    mobile: Mapped[str | None] = mapped_column(String(50), nullable=True)
    landline: Mapped[str | None] = mapped_column(String(50), nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    organization: Mapped["Organization"] = relationship(back_populates="companies")
    employees: Mapped[list["Employee"]] = relationship(
        back_populates="company", cascade="all, delete-orphan"
    )


class Employee(Base):
    """Client contact belonging to a company. Never billable as a seat."""

    __tablename__ = "employees"
    __table_args__ = (
        UniqueConstraint("company_id", "email", name="uq_employee_company_email"),
        Index("idx_employees_email", "email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    mobile: Mapped[str | None] = mapped_column(String(50), nullable=True)
    landline: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_MEMBER_STATUS.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)

    company: Mapped["Company"] = relationship(back_populates="employees")
