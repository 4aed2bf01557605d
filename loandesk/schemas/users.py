from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from loandesk.core.permissions import Role
from loandesk.schemas.common import Pagination


class UserSummary(BaseModel):
    id: UUID
    email: EmailStr
    full_name: str
    phone_number: str | None = None
    address: str | None = None
    role: Role
    is_active: bool
    email_verified: bool
    last_active_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    items: list[UserSummary]
    pagination: Pagination


class UserUpdateRequest(BaseModel):
    email: EmailStr | None = None
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    phone_number: str | None = Field(default=None, max_length=50)
    address: str | None = Field(default=None, max_length=500)
    role: Role | None = None
    is_active: bool | None = None
    email_verified: bool | None = None


class StaffCreateRequest(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)
    role: Role
    phone_number: str | None = Field(default=None, max_length=50)
