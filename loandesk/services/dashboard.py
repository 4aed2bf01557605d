from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.models.loan import Loan
from loandesk.models.loan_application import LoanApplication
from loandesk.models.user import User
from loandesk.schemas.common import LoanApplicationStatus as Status
from loandesk.schemas.dashboard import (
    AdminDashboard,
    ApproverDashboard,
    OfficerDashboard,
    PendingApplication,
    StatusCount,
)


HIGH_RISK_THRESHOLD = Decimal("500000")
MEDIUM_RISK_THRESHOLD = Decimal("200000")
TOP_PENDING_LIMIT = 5

_APPROVED_OUTCOMES = (Status.APPROVED, Status.DISBURSED, Status.CLOSED)


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def risk_band(amount) -> str:
    value = _as_decimal(amount)
    if value > HIGH_RISK_THRESHOLD:
        return "High"
    if value > MEDIUM_RISK_THRESHOLD:
        return "Medium"
    return "Low"


def approval_rate(counts: dict[str, int]) -> float:
    approved = sum(counts.get(status.value, 0) for status in _APPROVED_OUTCOMES)
    decided = approved + counts.get(Status.REJECTED.value, 0)
    if not decided:
        return 0.0
    return round(approved * 100 / decided, 1)


def _status_counts(counts: dict[str, int]) -> list[StatusCount]:
    return [StatusCount(status=status, count=counts.get(status.value, 0)) for status in Status]


async def _count_by_status(db: AsyncSession, *conditions) -> dict[str, int]:
    stmt = (
        select(LoanApplication.status, func.count())
        .where(*conditions)
        .group_by(LoanApplication.status)
    )
    return {row[0]: int(row[1]) for row in (await db.execute(stmt)).all()}


async def _top_pending(db: AsyncSession, *conditions) -> list[PendingApplication]:
    stmt = (
        select(LoanApplication, User.full_name)
        .outerjoin(User, User.id == LoanApplication.applicant_id)
        .where(*conditions)
        .order_by(LoanApplication.amount.desc(), LoanApplication.submitted_at.asc())
        .limit(TOP_PENDING_LIMIT)
    )
    items = []
    for application, applicant_name in (await db.execute(stmt)).all():
        items.append(
            PendingApplication(
                id=application.id,
                applicant_name=applicant_name,
                amount=application.amount,
                duration_months=application.duration_months,
                status=application.status,
                submitted_at=application.submitted_at,
                risk=risk_band(application.amount),
            )
        )
    return items


async def build_admin_dashboard(db: AsyncSession) -> AdminDashboard:
    user_stmt = select(func.count(), func.count().filter(User.is_active.is_(True))).select_from(User)
    total_users, active_users = (await db.execute(user_stmt)).first()

    counts = await _count_by_status(db)

    loan_stmt = select(
        func.coalesce(func.sum(Loan.disbursement_amount), 0),
        func.coalesce(func.sum(Loan.total_repaid), 0),
        func.count().filter(Loan.is_fully_paid.is_(False)),
        func.count().filter(Loan.is_fully_paid.is_(True)),
    )
    disbursed, repaid, active_loans, fully_paid = (await db.execute(loan_stmt)).first()

    return AdminDashboard(
        total_users=int(total_users or 0),
        active_users=int(active_users or 0),
        total_applications=sum(counts.values()),
        status_counts=_status_counts(counts),
        approval_rate=approval_rate(counts),
        total_disbursed=_as_decimal(disbursed or 0),
        total_repaid=_as_decimal(repaid or 0),
        active_loans=int(active_loans or 0),
        fully_paid_loans=int(fully_paid or 0),
    )


async def build_officer_dashboard(db: AsyncSession, principal: deps.Principal) -> OfficerDashboard:
    assigned = LoanApplication.assigned_officer_id == principal.user_id
    counts = await _count_by_status(db, assigned)
    awaiting = counts.get(Status.PENDING.value, 0) + counts.get(Status.UNDER_REVIEW.value, 0)
    top_pending = await _top_pending(
        db,
        assigned,
        LoanApplication.status.in_([Status.PENDING.value, Status.UNDER_REVIEW.value]),
    )
    return OfficerDashboard(
        assigned_total=sum(counts.values()),
        status_counts=_status_counts(counts),
        awaiting_action=awaiting,
        top_pending=top_pending,
    )


async def build_approver_dashboard(db: AsyncSession) -> ApproverDashboard:
    counts = await _count_by_status(db)
    top_pending = await _top_pending(db, LoanApplication.status == Status.UNDER_REVIEW.value)
    return ApproverDashboard(
        awaiting_decision=counts.get(Status.UNDER_REVIEW.value, 0),
        awaiting_disbursement=counts.get(Status.APPROVED.value, 0),
        approved_total=sum(counts.get(status.value, 0) for status in _APPROVED_OUTCOMES),
        rejected_total=counts.get(Status.REJECTED.value, 0),
        approval_rate=approval_rate(counts),
        top_pending=top_pending,
    )
