from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.db.session import get_db
from loandesk.schemas.common import Pagination
from loandesk.schemas.loans import LoanListResponse, LoanOut, RepaymentListResponse, RepaymentOut
from loandesk.services import loans as loan_service

router = APIRouter(prefix="/loans", tags=["loans"])


@router.get("", response_model=LoanListResponse)
async def list_loans(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    is_fully_paid: bool | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> LoanListResponse:
    items, total = await loan_service.list_loans(
        db, principal, page=page, limit=limit, is_fully_paid=is_fully_paid
    )
    return LoanListResponse(
        loans=[LoanOut.model_validate(item) for item in items],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.get("/{loan_id}", response_model=LoanOut)
async def get_loan(
    loan_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> LoanOut:
    loan = await loan_service.get_loan(db, principal, loan_id)
    return LoanOut.model_validate(loan)


@router.get("/{loan_id}/repayments", response_model=RepaymentListResponse)
async def list_repayments(
    loan_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> RepaymentListResponse:
    items = await loan_service.list_repayments(db, principal, loan_id)
    return RepaymentListResponse(items=[RepaymentOut.model_validate(item) for item in items], total=len(items))
