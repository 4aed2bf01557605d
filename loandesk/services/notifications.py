from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.core.permissions import Role
from loandesk.models.loan_application import LoanApplication
from loandesk.models.notification import Notification
from loandesk.models.user import User
from loandesk.schemas.common import LoanApplicationStatus, NotificationType


logger = logging.getLogger(__name__)


_STATUS_MESSAGES: dict[LoanApplicationStatus, tuple[NotificationType, str, str]] = {
    LoanApplicationStatus.UNDER_REVIEW: (
        NotificationType.APPLICATION_UNDER_REVIEW,
        "Application Under Review",
        "Your loan application is now under review.",
    ),
    LoanApplicationStatus.ADDITIONAL_INFO_REQUESTED: (
        NotificationType.ADDITIONAL_INFO_REQUESTED,
        "Additional Information Requested",
        "More information is needed to continue reviewing your loan application.",
    ),
    LoanApplicationStatus.APPROVED: (
        NotificationType.APPLICATION_APPROVED,
        "Loan Application Approved",
        "Your loan application has been approved.",
    ),
    LoanApplicationStatus.REJECTED: (
        NotificationType.APPLICATION_REJECTED,
        "Loan Application Rejected",
        "Your loan application has been rejected.",
    ),
    LoanApplicationStatus.DISBURSED: (
        NotificationType.LOAN_DISBURSED,
        "Loan Disbursed",
        "Your loan has been disbursed to your account.",
    ),
    LoanApplicationStatus.CLOSED: (
        NotificationType.LOAN_CLOSED,
        "Loan Fully Repaid",
        "Your loan has been fully repaid and is now closed.",
    ),
}


async def notify_users(
    db: AsyncSession,
    user_ids: Iterable[UUID],
    *,
    type: NotificationType,
    title: str,
    message: str,
    application_id: UUID | None = None,
) -> int:
    """Create one notification per recipient; returns how many were stored.

    Failures are logged and swallowed so the caller's transaction survives.
    """
    recipients = list(dict.fromkeys(user_ids))
    if not recipients:
        return 0
    try:
        async with db.begin_nested():
            for user_id in recipients:
                db.add(
                    Notification(
                        user_id=user_id,
                        application_id=application_id,
                        type=type.value,
                        title=title,
                        message=message,
                        is_read=False,
                    )
                )
    except SQLAlchemyError:
        logger.warning(
            "Notification %s for application %s was not stored",
            type.value,
            application_id,
            exc_info=True,
        )
        return 0
    return len(recipients)


async def active_user_ids(db: AsyncSession, role: Role) -> list[UUID]:
    stmt = select(User.id).where(User.role == role.value, User.is_active.is_(True))
    return list((await db.execute(stmt)).scalars().all())


async def recipients_for_role(db: AsyncSession, role: Role) -> list[UUID]:
    """Active users holding ``role``, or no one when the lookup fails.

    The query runs in a SAVEPOINT so a failure leaves the outer transaction usable.
    """
    try:
        async with db.begin_nested():
            return await active_user_ids(db, role)
    except SQLAlchemyError:
        logger.warning("Could not resolve %s recipients", role.value, exc_info=True)
        return []


async def notify_submission(db: AsyncSession, application: LoanApplication) -> int:
    """Tell the assigned officer, or every active officer when none is assigned."""
    if application.assigned_officer_id:
        recipients = [application.assigned_officer_id]
    else:
        recipients = await recipients_for_role(db, Role.LOAN_OFFICER)
    return await notify_users(
        db,
        recipients,
        type=NotificationType.APPLICATION_SUBMITTED,
        title="New Loan Application",
        message=f"A new loan application for ₦{application.amount:,} has been submitted.",
        application_id=application.id,
    )


async def notify_status_change(
    db: AsyncSession,
    application: LoanApplication,
    new_status: LoanApplicationStatus,
    *,
    note: str | None = None,
) -> int:
    template = _STATUS_MESSAGES.get(new_status)
    if template is None:
        return 0
    notification_type, title, message = template
    if note:
        message = f"{message} {note}"
    return await notify_users(
        db,
        [application.applicant_id],
        type=notification_type,
        title=title,
        message=message,
        application_id=application.id,
    )
