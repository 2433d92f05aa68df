"""Client company and employee schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: str | None = Field(None, max_length=500)
    mobile: str | None = Field(None, max_length=50)
    landline: str | None = Field(None, max_length=50)
    website: str | None = Field(None, max_length=255)


class CompanyUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    address: str | None = Field(None, max_length=500)
    mobile: str | None = Field(None, max_length=50)
    landline: str | None = Field(None, max_length=50)
    website: str | None = Field(None, max_length=255)


class CompanyRead(BaseModel):
    id: UUID
    name: str
    address: str | None = None
    mobile: str | None = None
    landline: str | None = None
    website: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CompanyListItem(CompanyRead):
    ticket_count: int = 0
    unresolved_count: int = 0
    resolved_count: int = 0
    employee_count: int = 0


class EmployeeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    address: str | None = Field(None, max_length=500)
    mobile: str | None = Field(None, max_length=50)
    landline: str | None = Field(None, max_length=50)


class EmployeeUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    address: str | None = Field(None, max_length=500)
    mobile: str | None = Field(None, max_length=50)
    landline: str | None = Field(None, max_length=50)
    status: str | None = None


class EmployeeRead(BaseModel):
    id: UUID
    company_id: UUID
    user_id: UUID | None = None
    name: str
    email: str
    address: str | None = None
    mobile: str | None = None
    landline: str | None = None
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
