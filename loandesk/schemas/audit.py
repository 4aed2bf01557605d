from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from loandesk.schemas.common import Pagination


class AuditActorSummary(BaseModel):
    user_id: UUID
    full_name: str | None = None
    email: str


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    actor_id: UUID | None = None
    actor: AuditActorSummary | None = None
    action: str
    resource_type: str
    resource_id: str
    old_value: dict[str, Any] | list[Any] | None = None
    new_value: dict[str, Any] | list[Any] | None = None
    changes: dict[str, Any] | None = None
    summary: str | None = None
    ip_address: str | None = None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    items: list[AuditLogEntry]
    pagination: Pagination
