from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, true
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loandesk.api import deps
from loandesk.core.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from loandesk.core.permissions import Role
from loandesk.models.loan import ActiveLoan, FullyPaidLoan, Loan
from loandesk.models.loan_application import LoanApplication
from loandesk.models.loan_repayment import LoanRepayment
from loandesk.schemas.common import LoanApplicationStatus as Status, NotificationType
from loandesk.services import notifications, workflow
from loandesk.services.audit import model_snapshot, record_audit_log
from loandesk.services.interest import (
    STORAGE_PLACES,
    add_months,
    as_decimal,
    compute_schedule,
    quantize_money,
)
from loandesk.services.loan_reviews import is_eligible_for_disbursement


logger = logging.getLogger(__name__)


async def _get_application(db: AsyncSession, application_id: UUID) -> LoanApplication:
    stmt = (
        select(LoanApplication)
        .options(selectinload(LoanApplication.reviews), selectinload(LoanApplication.loan))
        .where(LoanApplication.id == application_id)
    )
    application = (await db.execute(stmt)).scalar_one_or_none()
    if application is None:
        raise NotFound(message="Loan application not found", details={"application_id": str(application_id)})
    return application


async def disburse(
    db: AsyncSession,
    principal: deps.Principal,
    application_id: UUID,
    *,
    expected_status: Status | None = Status.APPROVED,
    bank_account: str | None = None,
    bank_name: str | None = None,
) -> tuple[LoanApplication, Loan]:
    """Move an APPROVED application to DISBURSED and open its loan."""
    application = await _get_application(db, application_id)
    workflow.ensure_expected_status(application, expected_status)
    current = workflow.authorize_transition(principal, application, Status.DISBURSED)

    if application.loan is not None:
        raise InvalidTransition(
            message="A loan already exists for this application",
            code="already_disbursed",
            details={"application_id": str(application.id), "loan_id": str(application.loan.id)},
        )
    if not is_eligible_for_disbursement(application, application.reviews or [], application.loan):
        raise InvalidTransition(
            message="The application has no approving decision on record",
            code="not_eligible_for_disbursement",
            details={"application_id": str(application.id)},
        )

    account = bank_account or application.account_number
    bank = bank_name or application.bank_name
    if not account or not bank:
        raise ValidationError.for_fields(
            [
                {"field": "bank_account", "message": "Account number is required before disbursement"},
                {"field": "bank_name", "message": "Bank name is required before disbursement"},
            ],
            message="Account details are required before disbursement",
        )

    schedule = compute_schedule(application.amount, application.interest_rate, application.duration_months)

    await workflow.apply_transition(db, application, Status.DISBURSED, expected_status=current)

    now = datetime.now(timezone.utc)
    loan = Loan(
        application_id=application.id,
        approved_amount=schedule.principal,
        disbursement_amount=schedule.principal,
        interest_rate=schedule.annual_rate_percent,
        duration_months=schedule.months,
        monthly_payment=schedule.monthly_payment.quantize(STORAGE_PLACES),
        total_repayment=schedule.total_repayment.quantize(STORAGE_PLACES),
        total_repaid=Decimal("0"),
        disbursement_date=now,
        bank_account=account,
        bank_name=bank,
        created_by_id=principal.user_id,
    )
    loan.apply_lifecycle(ActiveLoan(next_payment_due=add_months(now.date(), 1)))
    db.add(loan)
    await db.flush()
    application.loan = loan

    await notifications.notify_status_change(db, application, Status.DISBURSED)
    await record_audit_log(
        db,
        principal,
        action="loan.disbursed",
        resource_type="loan",
        resource_id=loan.id,
        old_value={"application_status": current.value},
        new_value=model_snapshot(loan),
    )
    logger.info("Disbursed loan %s for application %s", loan.id, application.id)
    return application, loan


async def record_repayment(
    db: AsyncSession,
    loan_id: UUID,
    amount,
    *,
    recorded_by: UUID | None = None,
    reference: str | None = None,
) -> tuple[Loan, LoanRepayment]:
    """Trusted repayment path. Not reachable from any HTTP route.

    The loan row is locked for the duration of the transaction so concurrent
    repayments serialize. Repaying a fully paid loan is rejected.
    """
    value = quantize_money(as_decimal(amount, "amount"))
    if value <= 0:
        raise ValidationError.for_field("amount", "Repayment amount must be greater than zero")

    stmt = select(Loan).where(Loan.id == loan_id).with_for_update()
    loan = (await db.execute(stmt)).scalar_one_or_none()
    if loan is None:
        raise NotFound(message="Loan not found", details={"loan_id": str(loan_id)})

    lifecycle = loan.lifecycle
    if isinstance(lifecycle, FullyPaidLoan):
        raise InvalidTransition(
            message="This loan is already fully paid",
            code="loan_fully_paid",
            details={"loan_id": str(loan.id), "closed_at": str(lifecycle.closed_at)},
        )

    old_snapshot = model_snapshot(loan)
    repayment = LoanRepayment(loan_id=loan.id, amount=value, reference=reference, recorded_by_id=recorded_by)
    db.add(repayment)

    loan.total_repaid = as_decimal(loan.total_repaid or 0, "total_repaid") + value
    now = datetime.now(timezone.utc)
    if loan.total_repaid >= as_decimal(loan.disbursement_amount, "disbursement_amount"):
        loan.apply_lifecycle(FullyPaidLoan(closed_at=now))
    else:
        loan.apply_lifecycle(ActiveLoan(next_payment_due=add_months(lifecycle.next_payment_due, 1)))
    db.add(loan)
    await db.flush()

    application = await db.get(LoanApplication, loan.application_id)
    if application is not None:
        await notifications.notify_users(
            db,
            [application.applicant_id],
            type=NotificationType.REPAYMENT_RECORDED,
            title="Repayment Recorded",
            message=f"A repayment of ₦{value:,} has been recorded against your loan.",
            application_id=application.id,
        )
        if loan.is_fully_paid and application.status_enum is Status.DISBURSED:
            await workflow.apply_transition(db, application, Status.CLOSED, expected_status=Status.DISBURSED)
            await notifications.notify_status_change(db, application, Status.CLOSED)

    await record_audit_log(
        db,
        None,
        actor_id=recorded_by,
        action="loan.repayment_recorded",
        resource_type="loan",
        resource_id=loan.id,
        old_value=old_snapshot,
        new_value=model_snapshot(loan),
    )
    return loan, repayment


def _loan_scope(principal: deps.Principal):
    if principal.role is Role.APPLICANT:
        return LoanApplication.applicant_id == principal.user_id
    if principal.role is Role.LOAN_OFFICER:
        return LoanApplication.assigned_officer_id == principal.user_id
    return true()


async def list_loans(
    db: AsyncSession,
    principal: deps.Principal,
    *,
    page: int = 1,
    limit: int = 20,
    is_fully_paid: bool | None = None,
) -> tuple[list[Loan], int]:
    conditions = [_loan_scope(principal)]
    if is_fully_paid is not None:
        conditions.append(Loan.is_fully_paid.is_(is_fully_paid))

    count_stmt = (
        select(func.count())
        .select_from(Loan)
        .join(LoanApplication, LoanApplication.id == Loan.application_id)
        .where(*conditions)
    )
    total = int((await db.execute(count_stmt)).scalar_one() or 0)

    stmt = (
        select(Loan)
        .join(LoanApplication, LoanApplication.id == Loan.application_id)
        .where(*conditions)
        .order_by(Loan.disbursement_date.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all()), total


async def get_loan(db: AsyncSession, principal: deps.Principal, loan_id: UUID) -> Loan:
    stmt = (
        select(Loan, LoanApplication)
        .join(LoanApplication, LoanApplication.id == Loan.application_id)
        .where(Loan.id == loan_id)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFound(message="Loan not found", details={"loan_id": str(loan_id)})
    loan, application = row
    if principal.role is Role.APPLICANT and application.applicant_id != principal.user_id:
        raise Forbidden(message="You do not have access to this loan", details={"loan_id": str(loan_id)})
    if principal.role is Role.LOAN_OFFICER and application.assigned_officer_id != principal.user_id:
        raise Forbidden(message="You do not have access to this loan", details={"loan_id": str(loan_id)})
    return loan


async def list_repayments(db: AsyncSession, principal: deps.Principal, loan_id: UUID) -> list[LoanRepayment]:
    loan = await get_loan(db, principal, loan_id)
    stmt = select(LoanRepayment).where(LoanRepayment.loan_id == loan.id).order_by(LoanRepayment.paid_at.desc())
    return list((await db.execute(stmt)).scalars().all())
