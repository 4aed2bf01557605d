from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.errors import NotFound, ValidationError
from loandesk.core.settings import settings
from loandesk.models.interest_rate import InterestRate
from loandesk.services.audit import model_snapshot, record_audit_log


logger = logging.getLogger(__name__)

MIN_MONTHS = 1
MAX_MONTHS = 60


def _validate(months: int, rate: Decimal) -> None:
    errors = []
    if months < MIN_MONTHS or months > MAX_MONTHS:
        errors.append({"field": "months", "message": f"Must be between {MIN_MONTHS} and {MAX_MONTHS}"})
    if rate < 0 or rate > 100:
        errors.append({"field": "rate", "message": "Must be between 0 and 100"})
    if errors:
        raise ValidationError.for_fields(errors)


async def list_rates(db: AsyncSession) -> list[InterestRate]:
    stmt = select(InterestRate).order_by(InterestRate.months.asc(), InterestRate.created_at.desc())
    return list((await db.execute(stmt)).scalars().all())


async def available_rates(db: AsyncSession) -> list[InterestRate]:
    stmt = (
        select(InterestRate)
        .where(InterestRate.is_active.is_(True))
        .order_by(InterestRate.months.asc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def get_active_rate(db: AsyncSession, months: int) -> InterestRate | None:
    stmt = (
        select(InterestRate)
        .where(InterestRate.months == months, InterestRate.is_active.is_(True))
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def rate_for_duration(db: AsyncSession, months: int) -> Decimal:
    """Active rate for ``months``, or the configured default when none is set."""
    row = await get_active_rate(db, months)
    if row is None:
        logger.info("No active interest rate for %s months; using default", months)
        return Decimal(str(settings.default_interest_rate_percent))
    return Decimal(str(row.rate))


async def upsert_rate(
    db: AsyncSession,
    principal: deps.Principal,
    *,
    months: int,
    rate: Decimal,
) -> tuple[InterestRate, bool]:
    """Set the active rate for a duration.

    There is at most one active row per duration, so an existing active row
    is updated in place. Returns ``(row, created)``.
    """
    rate = Decimal(str(rate))
    _validate(months, rate)

    existing = await get_active_rate(db, months)
    if existing is not None:
        old_snapshot = model_snapshot(existing)
        existing.rate = rate
        existing.admin_id = principal.user_id
        db.add(existing)
        await db.flush()
        await record_audit_log(
            db,
            principal,
            action="interest_rate.updated",
            resource_type="interest_rate",
            resource_id=existing.id,
            old_value=old_snapshot,
            new_value=model_snapshot(existing),
        )
        return existing, False

    row = InterestRate(months=months, rate=rate, is_active=True, admin_id=principal.user_id)
    db.add(row)
    await db.flush()
    await record_audit_log(
        db,
        principal,
        action="interest_rate.created",
        resource_type="interest_rate",
        resource_id=row.id,
        new_value=model_snapshot(row),
    )
    return row, True


async def delete_rate(db: AsyncSession, principal: deps.Principal, rate_id: UUID) -> None:
    row = await db.get(InterestRate, rate_id)
    if row is None:
        raise NotFound(message="Interest rate not found", details={"interest_rate_id": str(rate_id)})
    old_snapshot = model_snapshot(row)
    await db.delete(row)
    await db.flush()
    await record_audit_log(
        db,
        principal,
        action="interest_rate.deleted",
        resource_type="interest_rate",
        resource_id=rate_id,
        old_value=old_snapshot,
    )
