from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from loandesk.core.permissions import Role
from loandesk.schemas.common import EmploymentStatus, LoanApplicationStatus, Pagination
from loandesk.schemas.documents import DocumentOut
from loandesk.schemas.loans import LoanOut
from loandesk.schemas.reviews import ReviewOut, ReviewSummaryOut


class ApplicationSubmit(BaseModel):
    amount: Decimal = Field(gt=0)
    purpose: str = Field(min_length=1, max_length=500)
    duration_months: int = Field(gt=0, le=60)
    monthly_income: Decimal = Field(gt=0)
    employment_status: EmploymentStatus
    employer_name: str | None = Field(default=None, max_length=255)
    work_experience: int | None = Field(default=None, ge=0)
    phone_number: str = Field(min_length=1, max_length=50)
    address: str = Field(min_length=1, max_length=500)

    @field_validator("purpose", "phone_number", "address", mode="before")
    @classmethod
    def _strip_required(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("employer_name", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ApplicationUpdate(BaseModel):
    status: LoanApplicationStatus | None = None
    expected_status: LoanApplicationStatus | None = None
    additional_info_requested: str | None = Field(default=None, max_length=5000)
    additional_info_provided: str | None = Field(default=None, max_length=5000)
    assigned_officer_id: UUID | None = None
    note: str | None = Field(default=None, max_length=2000)


class AccountDetailsUpdate(BaseModel):
    account_number: str = Field(pattern=r"^\d{10}$")
    bank_name: str = Field(min_length=1, max_length=120)
    bvn: str | None = Field(default=None, pattern=r"^\d{11}$")
    nin: str | None = Field(default=None, pattern=r"^\d{11}$")


class DisburseRequest(BaseModel):
    expected_status: LoanApplicationStatus = LoanApplicationStatus.APPROVED
    bank_account: str | None = Field(default=None, pattern=r"^\d{10}$")
    bank_name: str | None = Field(default=None, max_length=120)


class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    email: str
    role: Role


class ApplicationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    applicant_id: UUID
    assigned_officer_id: UUID | None = None
    status: LoanApplicationStatus
    version: int
    amount: Decimal
    purpose: str
    duration_months: int
    interest_rate: Decimal
    monthly_income: Decimal
    employment_status: EmploymentStatus
    submitted_at: datetime | None = None
    updated_at: datetime | None = None


class ApplicationDetail(ApplicationSummary):
    employer_name: str | None = None
    work_experience: int | None = None
    phone_number: str
    address: str
    account_number: str | None = None
    bank_name: str | None = None
    bvn_masked: str | None = None
    nin_masked: str | None = None
    additional_info_requested: str | None = None
    additional_info_provided: str | None = None
    applicant: UserBrief | None = None
    assigned_officer: UserBrief | None = None
    documents: list[DocumentOut] = []
    reviews: list[ReviewOut] = []
    loan: LoanOut | None = None
    review_summary: ReviewSummaryOut | None = None
    eligible_for_disbursement: bool = False


class ApplicationListResponse(BaseModel):
    applications: list[ApplicationSummary]
    pagination: Pagination


class SubmitResponse(BaseModel):
    application_id: UUID
    documents_uploaded: int
    assigned_officer_id: UUID | None = None
    interest_rate: Decimal
