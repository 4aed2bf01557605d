from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.permissions import Role
from loandesk.db.session import get_db
from loandesk.schemas.interest_rates import InterestRateCreate, InterestRateListResponse, InterestRateOut
from loandesk.services import interest_rates as rate_service

router = APIRouter(prefix="/interest-rates", tags=["interest-rates"])


@router.get("", response_model=InterestRateListResponse)
async def list_interest_rates(
    db: AsyncSession = Depends(get_db),
    _: deps.Principal = Depends(deps.require_roles(Role.SUPER_ADMIN)),
) -> InterestRateListResponse:
    rows = await rate_service.list_rates(db)
    return InterestRateListResponse(items=[InterestRateOut.model_validate(row) for row in rows], total=len(rows))


@router.get("/available", response_model=InterestRateListResponse)
async def list_available_rates(
    db: AsyncSession = Depends(get_db),
    _: deps.Principal = Depends(deps.get_principal),
) -> InterestRateListResponse:
    rows = await rate_service.available_rates(db)
    return InterestRateListResponse(items=[InterestRateOut.model_validate(row) for row in rows], total=len(rows))


@router.post("", response_model=InterestRateOut)
async def set_interest_rate(
    payload: InterestRateCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.require_roles(Role.SUPER_ADMIN)),
) -> InterestRateOut:
    row, created = await rate_service.upsert_rate(db, principal, months=payload.months, rate=payload.rate)
    await db.commit()
    await db.refresh(row)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return InterestRateOut.model_validate(row)


@router.delete("/{rate_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_interest_rate(
    rate_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.require_roles(Role.SUPER_ADMIN)),
) -> None:
    await rate_service.delete_rate(db, principal, rate_id)
    await db.commit()
    return None
