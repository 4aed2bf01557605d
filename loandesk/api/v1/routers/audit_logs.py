from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.permissions import Role
from loandesk.db.session import get_db
from loandesk.schemas.audit import AuditActorSummary, AuditLogEntry, AuditLogListResponse
from loandesk.schemas.common import Pagination
from loandesk.services import audit as audit_service

router = APIRouter(prefix="/admin/audit-logs", tags=["audit-logs"])


@router.get("", response_model=AuditLogListResponse, summary="Browse the audit trail")
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    resource_type: str | None = Query(default=None),
    resource_id: str | None = Query(default=None),
    actor_id: UUID | None = Query(default=None),
    action: str | None = Query(default=None, description="Action or action prefix, e.g. 'loan.'"),
    created_from: datetime | None = Query(default=None),
    created_to: datetime | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    _: deps.Principal = Depends(deps.require_roles(Role.SUPER_ADMIN)),
) -> AuditLogListResponse:
    rows, total = await audit_service.list_audit_logs(
        db,
        page=page,
        limit=limit,
        resource_type=resource_type,
        resource_id=resource_id,
        actor_id=actor_id,
        action_prefix=action,
        created_from=created_from,
        created_to=created_to,
    )
    items = []
    for entry, actor in rows:
        summary = None
        if actor is not None:
            summary = AuditActorSummary(user_id=actor.id, full_name=actor.full_name, email=actor.email)
        items.append(AuditLogEntry.model_validate(entry).model_copy(update={"actor": summary}))
    return AuditLogListResponse(items=items, pagination=Pagination.build(page=page, limit=limit, total=total))
