from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel

from loandesk.schemas.common import LoanApplicationStatus


RiskBand = Literal["High", "Medium", "Low"]


class StatusCount(BaseModel):
    status: LoanApplicationStatus
    count: int


class PendingApplication(BaseModel):
    id: UUID
    applicant_name: str | None = None
    amount: Decimal
    duration_months: int
    status: LoanApplicationStatus
    submitted_at: datetime | None = None
    risk: RiskBand


class AdminDashboard(BaseModel):
    total_users: int
    active_users: int
    total_applications: int
    status_counts: list[StatusCount]
    approval_rate: float
    total_disbursed: Decimal
    total_repaid: Decimal
    active_loans: int
    fully_paid_loans: int


class OfficerDashboard(BaseModel):
    assigned_total: int
    status_counts: list[StatusCount]
    awaiting_action: int
    top_pending: list[PendingApplication]


class ApproverDashboard(BaseModel):
    awaiting_decision: int
    awaiting_disbursement: int
    approved_total: int
    rejected_total: int
    approval_rate: float
    top_pending: list[PendingApplication]
