"""Two-tier review engine.

Loan officers record advisory reviews; approvers (and super admins) record
the authoritative decision. A review and the status change it implies are
written in the same unit of work so the two never disagree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loandesk.api import deps
from loandesk.core.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from loandesk.core.permissions import Role
from loandesk.models.loan import Loan
from loandesk.models.loan_application import LoanApplication
from loandesk.models.loan_review import LoanReview
from loandesk.schemas.common import (
    DocumentStatus,
    LoanApplicationStatus as Status,
    NotificationType,
    ReviewStatus,
)
from loandesk.services import notifications, workflow
from loandesk.services.audit import model_snapshot, record_audit_log


logger = logging.getLogger(__name__)

REVIEWER_ROLES = frozenset({Role.LOAN_OFFICER, Role.APPROVER, Role.SUPER_ADMIN})
AUTHORITATIVE_ROLES = frozenset({Role.APPROVER, Role.SUPER_ADMIN})

DECISION_TARGETS: dict[ReviewStatus, Status] = {
    ReviewStatus.APPROVED: Status.APPROVED,
    ReviewStatus.REJECTED: Status.REJECTED,
    ReviewStatus.REQUEST_INFO: Status.ADDITIONAL_INFO_REQUESTED,
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ReviewSummary:
    latest_advisory: ReviewStatus | None
    latest_decision: ReviewStatus | None
    recommended_status: Status | None
    review_count: int


def _reviewed_at(review: LoanReview) -> datetime:
    value = review.reviewed_at
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _is_authoritative(review: LoanReview) -> bool:
    return Role.normalize(review.reviewer_role) in AUTHORITATIVE_ROLES


def summarize_reviews(reviews: Iterable[LoanReview]) -> ReviewSummary:
    ordered = sorted(reviews, key=_reviewed_at, reverse=True)
    advisory = next((r for r in ordered if not _is_authoritative(r)), None)
    decision = next((r for r in ordered if _is_authoritative(r)), None)

    recommended: Status | None = None
    if decision is not None:
        recommended = DECISION_TARGETS[ReviewStatus(decision.status)]
    elif advisory is not None:
        if advisory.status == ReviewStatus.REQUEST_INFO.value:
            recommended = Status.ADDITIONAL_INFO_REQUESTED
        else:
            # Officer recommendations wait for an approver.
            recommended = Status.UNDER_REVIEW

    return ReviewSummary(
        latest_advisory=ReviewStatus(advisory.status) if advisory else None,
        latest_decision=ReviewStatus(decision.status) if decision else None,
        recommended_status=recommended,
        review_count=len(ordered),
    )


def is_eligible_for_disbursement(
    application: LoanApplication,
    reviews: Iterable[LoanReview],
    loan: Loan | None,
) -> bool:
    if application.status_enum is not Status.APPROVED or loan is not None:
        return False
    return summarize_reviews(reviews).latest_decision is ReviewStatus.APPROVED


async def _load_for_review(db: AsyncSession, application_id: UUID) -> LoanApplication:
    stmt = (
        select(LoanApplication)
        .options(selectinload(LoanApplication.documents))
        .where(LoanApplication.id == application_id)
    )
    application = (await db.execute(stmt)).scalar_one_or_none()
    if application is None:
        raise NotFound(message="Loan application not found", details={"application_id": str(application_id)})
    return application


def _plan_edges(principal: deps.Principal, application: LoanApplication, status: ReviewStatus) -> list[Status]:
    current = application.status_enum
    if principal.role is Role.LOAN_OFFICER:
        if current not in (Status.PENDING, Status.UNDER_REVIEW):
            raise InvalidTransition(
                message="Officer reviews are only accepted while an application is pending or under review",
                details={"status": current.value},
            )
        edges = [Status.UNDER_REVIEW] if current is Status.PENDING else []
        if status is ReviewStatus.REQUEST_INFO:
            edges.append(Status.ADDITIONAL_INFO_REQUESTED)
        return edges

    if current is not Status.UNDER_REVIEW:
        raise InvalidTransition(
            message="A decision can only be recorded while an application is under review",
            details={"status": current.value, "allowed": [Status.UNDER_REVIEW.value]},
        )
    return [DECISION_TARGETS[status]]


async def record_review(
    db: AsyncSession,
    principal: deps.Principal,
    application_id: UUID,
    *,
    status: ReviewStatus,
    comments: str | None = None,
    recommendation: str | None = None,
    expected_status: Status | None = None,
) -> tuple[LoanReview, LoanApplication]:
    """Append a review and apply the status change it implies."""
    if principal.role not in REVIEWER_ROLES:
        raise Forbidden(
            message="Only staff reviewers may review applications",
            details={"role": principal.role.value},
        )

    application = await _load_for_review(db, application_id)
    workflow.ensure_expected_status(application, expected_status)

    if principal.role is Role.LOAN_OFFICER:
        if application.assigned_officer_id != principal.user_id:
            raise Forbidden(
                message="This application is not assigned to you",
                details={"application_id": str(application.id)},
            )
        if status is ReviewStatus.APPROVED:
            pending = [doc for doc in application.documents or [] if doc.status == DocumentStatus.PENDING.value]
            if pending:
                raise ValidationError.for_field(
                    "documents",
                    "All documents must be reviewed before recommending approval",
                )

    edges = _plan_edges(principal, application, status)
    if edges:
        workflow.authorize_transition(principal, application, edges[0])

    review = LoanReview(
        application_id=application.id,
        reviewer_id=principal.user_id,
        reviewer_role=principal.role.value,
        status=status.value,
        comments=comments,
        recommendation=recommendation,
        reviewed_at=datetime.now(timezone.utc),
    )
    db.add(review)
    await db.flush()

    for target in edges:
        values = None
        note = None
        if target is Status.ADDITIONAL_INFO_REQUESTED:
            values = {"additional_info_requested": comments or recommendation}
            note = comments
        await workflow.change_status(db, principal, application, target, values=values, note=note)

    if principal.role is Role.LOAN_OFFICER and status is not ReviewStatus.REQUEST_INFO:
        approver_ids = await notifications.recipients_for_role(db, Role.APPROVER)
        await notifications.notify_users(
            db,
            approver_ids,
            type=NotificationType.REVIEW_RECORDED,
            title="Officer Review Recorded",
            message=f"A loan officer recommended {status.value} for an application awaiting your decision.",
            application_id=application.id,
        )

    await record_audit_log(
        db,
        principal,
        action="loan_review.created",
        resource_type="loan_review",
        resource_id=review.id,
        new_value=model_snapshot(review),
    )
    return review, application
