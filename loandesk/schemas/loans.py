from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from loandesk.schemas.common import Pagination


class LoanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    approved_amount: Decimal
    disbursement_amount: Decimal
    interest_rate: Decimal
    duration_months: int
    monthly_payment: Decimal
    total_repayment: Decimal
    total_repaid: Decimal
    next_payment_due: date | None = None
    is_fully_paid: bool
    disbursement_date: datetime | None = None
    closed_at: datetime | None = None
    bank_account: str | None = None
    bank_name: str | None = None
    created_by_id: UUID | None = None


class LoanListResponse(BaseModel):
    loans: list[LoanOut]
    pagination: Pagination


class RepaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    loan_id: UUID
    amount: Decimal
    reference: str | None = None
    recorded_by_id: UUID | None = None
    paid_at: datetime | None = None


class RepaymentListResponse(BaseModel):
    items: list[RepaymentOut]
    total: int
