from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from loandesk.core.permissions import Role
from loandesk.schemas.common import LoanApplicationStatus, ReviewStatus


class ReviewCreate(BaseModel):
    status: ReviewStatus
    comments: str | None = Field(default=None, max_length=5000)
    recommendation: str | None = Field(default=None, max_length=5000)
    expected_status: LoanApplicationStatus | None = None


class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    reviewer_id: UUID
    reviewer_role: Role
    status: ReviewStatus
    comments: str | None = None
    recommendation: str | None = None
    reviewed_at: datetime | None = None


class ReviewSummaryOut(BaseModel):
    latest_advisory: ReviewStatus | None = None
    latest_decision: ReviewStatus | None = None
    recommended_status: LoanApplicationStatus | None = None
    review_count: int = 0


class ReviewResult(BaseModel):
    review: ReviewOut
    application_status: LoanApplicationStatus
