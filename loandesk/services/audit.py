from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.logging import get_audit_logger
from loandesk.models.audit_log import AuditLog
from loandesk.models.user import User


logger = logging.getLogger(__name__)

# Never copied into audit snapshots.
SENSITIVE_FIELDS = frozenset({"hashed_password", "bvn", "nin", "token_version"})


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
            UUID: lambda v: str(v),
        },
    )


def model_snapshot(model: Any, *, exclude: Iterable[str] | None = None) -> dict[str, Any]:
    if model is None:
        return {}
    excluded = set(exclude or []) | SENSITIVE_FIELDS
    data: dict[str, Any] = {}
    for column in model.__table__.columns:
        name = column.name
        if name in excluded:
            continue
        data[name] = getattr(model, name, None)
    return serialize_for_audit(data)


def _diff_values(old: Any, new: Any, prefix: str = "") -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    if isinstance(old, dict) and isinstance(new, dict):
        keys = set(old.keys()) | set(new.keys())
        for key in keys:
            path = f"{prefix}.{key}" if prefix else str(key)
            changes.update(_diff_values(old.get(key), new.get(key), path))
        return changes
    if old != new:
        changes[prefix or "value"] = {"from": old, "to": new}
    return changes


def _build_summary(action: str, changes: dict[str, dict[str, Any]] | None) -> str:
    if not changes:
        return action
    keys = sorted(changes.keys())
    snippet = ", ".join(keys[:3])
    suffix = "..." if len(keys) > 3 else ""
    return f"{action}: {snippet}{suffix}"


async def record_audit_log(
    db: AsyncSession,
    principal: deps.Principal | None,
    *,
    action: str,
    resource_type: str,
    resource_id: Any,
    old_value: Any | None = None,
    new_value: Any | None = None,
    actor_id: UUID | None = None,
) -> AuditLog | None:
    """Append an audit entry without letting a failure abort the caller.

    The row is written inside a SAVEPOINT; if that fails the savepoint is
    rolled back, the failure is logged and ``None`` is returned. The entry is
    also emitted on the audit log stream.
    """
    serialized_old = serialize_for_audit(old_value) if old_value is not None else None
    serialized_new = serialize_for_audit(new_value) if new_value is not None else None
    changes = None
    if serialized_old is not None or serialized_new is not None:
        changes = _diff_values(serialized_old or {}, serialized_new or {}) or None
    summary = _build_summary(action, changes)

    entry = AuditLog(
        actor_id=actor_id or (principal.user_id if principal else None),
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id),
        old_value=serialized_old,
        new_value=serialized_new,
        changes=changes,
        summary=summary,
        ip_address=principal.ip_address if principal else None,
        user_agent=principal.user_agent if principal else None,
    )
    try:
        async with db.begin_nested():
            db.add(entry)
    except SQLAlchemyError:
        logger.warning(
            "Audit entry %s for %s %s was not stored", action, resource_type, resource_id, exc_info=True
        )
        return None

    get_audit_logger().info(
        summary,
        extra={
            "event": {
                "action": action,
                "resource_type": resource_type,
                "resource_id": str(resource_id),
                "actor_id": str(entry.actor_id) if entry.actor_id else None,
            }
        },
    )
    return entry


async def list_audit_logs(
    db: AsyncSession,
    *,
    page: int,
    limit: int,
    resource_type: str | None = None,
    resource_id: str | None = None,
    actor_id: UUID | None = None,
    action_prefix: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
) -> tuple[list[tuple[AuditLog, User | None]], int]:
    """Newest-first page of audit rows joined to their actor, plus the total count.

    ``action_prefix`` narrows by family, e.g. ``"loan."`` or ``"document.reviewed"``.
    """
    conditions = []
    if resource_type:
        conditions.append(AuditLog.resource_type == resource_type)
    if resource_id:
        conditions.append(AuditLog.resource_id == resource_id)
    if actor_id:
        conditions.append(AuditLog.actor_id == actor_id)
    if action_prefix:
        conditions.append(AuditLog.action.startswith(action_prefix, autoescape=True))
    if created_from:
        conditions.append(AuditLog.created_at >= created_from)
    if created_to:
        conditions.append(AuditLog.created_at <= created_to)

    total = (await db.execute(select(func.count(AuditLog.id)).where(*conditions))).scalar_one_or_none() or 0
    stmt = (
        select(AuditLog, User)
        .outerjoin(User, User.id == AuditLog.actor_id)
        .where(*conditions)
        .order_by(AuditLog.created_at.desc(), AuditLog.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = [(row[0], row[1]) for row in (await db.execute(stmt)).all()]
    return rows, int(total)
