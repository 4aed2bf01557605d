"""Loan application state machine.

Owns the legal status edges, which roles may drive each edge, and the
conditional update that applies an edge. Everything that changes
``LoanApplication.status`` goes through :func:`apply_transition`.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import false, true, update
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.errors import ConcurrentModification, Forbidden, InvalidTransition
from loandesk.core.permissions import Role
from loandesk.models.loan_application import LoanApplication
from loandesk.schemas.common import LoanApplicationStatus as Status
from loandesk.services import notifications
from loandesk.services.audit import record_audit_log


logger = logging.getLogger(__name__)


Edge = tuple[Status, Status]

TRANSITIONS: dict[Status, frozenset[Status]] = {
    Status.PENDING: frozenset({Status.UNDER_REVIEW}),
    Status.UNDER_REVIEW: frozenset(
        {Status.ADDITIONAL_INFO_REQUESTED, Status.APPROVED, Status.REJECTED}
    ),
    Status.ADDITIONAL_INFO_REQUESTED: frozenset({Status.UNDER_REVIEW}),
    Status.APPROVED: frozenset({Status.DISBURSED}),
    Status.REJECTED: frozenset(),
    Status.DISBURSED: frozenset({Status.CLOSED}),
    Status.CLOSED: frozenset(),
}

# DISBURSED -> CLOSED has no roles: only the repayment path closes a loan.
EDGE_ROLES: dict[Edge, frozenset[Role]] = {
    (Status.PENDING, Status.UNDER_REVIEW): frozenset({Role.LOAN_OFFICER, Role.SUPER_ADMIN}),
    (Status.UNDER_REVIEW, Status.ADDITIONAL_INFO_REQUESTED): frozenset(
        {Role.LOAN_OFFICER, Role.APPROVER, Role.SUPER_ADMIN}
    ),
    (Status.ADDITIONAL_INFO_REQUESTED, Status.UNDER_REVIEW): frozenset(
        {Role.APPLICANT, Role.LOAN_OFFICER, Role.SUPER_ADMIN}
    ),
    (Status.UNDER_REVIEW, Status.APPROVED): frozenset({Role.APPROVER, Role.SUPER_ADMIN}),
    (Status.UNDER_REVIEW, Status.REJECTED): frozenset({Role.APPROVER, Role.SUPER_ADMIN}),
    (Status.APPROVED, Status.DISBURSED): frozenset({Role.APPROVER, Role.SUPER_ADMIN}),
    (Status.DISBURSED, Status.CLOSED): frozenset(),
}

APPROVER_VISIBLE_STATUSES = frozenset({Status.UNDER_REVIEW, Status.ADDITIONAL_INFO_REQUESTED})
TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)


def is_legal_edge(current: Status, target: Status) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def roles_for_edge(current: Status, target: Status) -> frozenset[Role]:
    return EDGE_ROLES.get((current, target), frozenset())


def ensure_legal_edge(current: Status, target: Status) -> None:
    if not is_legal_edge(current, target):
        raise InvalidTransition(
            message=f"Cannot move an application from {current.value} to {target.value}",
            details={
                "from": current.value,
                "to": target.value,
                "allowed": sorted(status.value for status in TRANSITIONS.get(current, ())),
            },
        )


def _owns(principal: deps.Principal, application: LoanApplication) -> bool:
    if principal.role is Role.APPLICANT:
        return application.applicant_id == principal.user_id
    if principal.role is Role.LOAN_OFFICER:
        return application.assigned_officer_id == principal.user_id
    return True


def authorize_transition(
    principal: deps.Principal,
    application: LoanApplication,
    target: Status,
) -> Status:
    """Check edge legality and the capability table; returns the current status."""
    current = application.status_enum
    ensure_legal_edge(current, target)
    if principal.role not in roles_for_edge(current, target):
        raise Forbidden(
            message=f"{principal.role.value} may not move an application to {target.value}",
            details={"from": current.value, "to": target.value, "role": principal.role.value},
        )
    if not _owns(principal, application):
        raise Forbidden(
            message="This application is not assigned to you",
            details={"application_id": str(application.id)},
        )
    return current


async def apply_transition(
    db: AsyncSession,
    application: LoanApplication,
    target: Status,
    *,
    expected_status: Status,
    values: dict[str, Any] | None = None,
) -> LoanApplication:
    """Conditionally move ``application`` from ``expected_status`` to ``target``.

    Issues ``UPDATE ... WHERE id = :id AND status = :expected``. If another
    request changed the status first no row matches and
    :class:`ConcurrentModification` is raised. On success the in-memory
    instance is brought in line with the row.
    """
    ensure_legal_edge(expected_status, target)
    extra = dict(values or {})
    stmt = (
        update(LoanApplication)
        .where(
            LoanApplication.id == application.id,
            LoanApplication.status == expected_status.value,
        )
        .values(status=target.value, version=LoanApplication.version + 1, **extra)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        logger.info(
            "Lost status race on application %s: expected %s, wanted %s",
            application.id,
            expected_status.value,
            target.value,
        )
        raise ConcurrentModification(
            message="The application was changed by someone else; reload and try again",
            details={"application_id": str(application.id), "expected_status": expected_status.value},
        )
    application.status = target.value
    application.version = (application.version or 1) + 1
    for key, value in extra.items():
        setattr(application, key, value)
    return application


def ensure_expected_status(application: LoanApplication, expected_status: Status | None) -> Status:
    """Fail fast when the caller acted on a stale view of the application."""
    current = application.status_enum
    if expected_status is not None and expected_status != current:
        raise ConcurrentModification(
            message="The application status has changed; reload and try again",
            details={
                "application_id": str(application.id),
                "expected_status": expected_status.value,
                "current_status": current.value,
            },
        )
    return current


async def change_status(
    db: AsyncSession,
    principal: deps.Principal,
    application: LoanApplication,
    target: Status,
    *,
    expected_status: Status | None = None,
    values: dict[str, Any] | None = None,
    note: str | None = None,
) -> LoanApplication:
    """Authorize and apply one edge, then emit the notification and audit entry."""
    ensure_expected_status(application, expected_status)
    current = authorize_transition(principal, application, target)
    old_value = {"status": current.value, "version": application.version}

    await apply_transition(db, application, target, expected_status=current, values=values)

    await notifications.notify_status_change(db, application, target, note=note)
    new_value: dict[str, Any] = {"status": target.value, "version": application.version}
    new_value.update(values or {})
    if note:
        new_value["note"] = note
    await record_audit_log(
        db,
        principal,
        action="loan_application.status_changed",
        resource_type="loan_application",
        resource_id=application.id,
        old_value=old_value,
        new_value=new_value,
    )
    logger.info("Application %s moved %s -> %s", application.id, current.value, target.value)
    return application


def visibility_clause(principal: deps.Principal):
    """SQL filter restricting applications to those ``principal`` may read."""
    if principal.role is Role.SUPER_ADMIN:
        return true()
    if principal.role is Role.APPLICANT:
        return LoanApplication.applicant_id == principal.user_id
    if principal.role is Role.LOAN_OFFICER:
        return LoanApplication.assigned_officer_id == principal.user_id
    if principal.role is Role.APPROVER:
        return LoanApplication.status.in_([status.value for status in APPROVER_VISIBLE_STATUSES])
    return false()


def can_view(principal: deps.Principal, application: LoanApplication) -> bool:
    if principal.role is Role.SUPER_ADMIN:
        return True
    if principal.role is Role.APPLICANT:
        return application.applicant_id == principal.user_id
    if principal.role is Role.LOAN_OFFICER:
        return application.assigned_officer_id == principal.user_id
    if principal.role is Role.APPROVER:
        return application.status_enum in APPROVER_VISIBLE_STATUSES
    return False


def ensure_can_view(principal: deps.Principal, application: LoanApplication) -> None:
    if not can_view(principal, application):
        raise Forbidden(
            message="You do not have access to this application",
            details={"application_id": str(application.id)},
        )


__all__ = [
    "APPROVER_VISIBLE_STATUSES",
    "EDGE_ROLES",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "apply_transition",
    "change_status",
    "authorize_transition",
    "can_view",
    "ensure_can_view",
    "ensure_expected_status",
    "ensure_legal_edge",
    "is_legal_edge",
    "roles_for_edge",
    "visibility_clause",
]
