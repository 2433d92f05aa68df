"""Organization member and license schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class MemberCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    is_client: bool = False
    address: str | None = Field(None, max_length=500)
    mobile: str | None = Field(None, max_length=50)
    landline: str | None = Field(None, max_length=50)


class MemberUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    is_client: bool | None = None
    address: str | None = Field(None, max_length=500)
    mobile: str | None = Field(None, max_length=50)
    landline: str | None = Field(None, max_length=50)


class MemberRead(BaseModel):
    id: UUID
    user_id: UUID | None = None
    name: str
    email: str
    address: str | None = None
    mobile: str | None = None
    landline: str | None = None
    is_client: bool
    has_license: bool
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class BulkLicenseRequest(BaseModel):
    member_ids: list[UUID] = Field(..., min_length=1, max_length=500)


class LicenseSummary(BaseModel):
    agent_slots: int
    used_slots: int
    available_slots: int


class MemberGateRead(BaseModel):
    """Whether new members can be added right now."""
    allowed: bool
    reason: str | None = None
