from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    LOAN_OFFICER = "LOAN_OFFICER"
    APPROVER = "APPROVER"
    APPLICANT = "APPLICANT"

    @classmethod
    def list_all(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def normalize(cls, value: "Role | str") -> "Role":
        if isinstance(value, Role):
            return value
        return cls(str(value).strip().upper())


STAFF_ROLES = frozenset({Role.SUPER_ADMIN, Role.LOAN_OFFICER, Role.APPROVER})


class Capability(str, Enum):
    APPLICATION_SUBMIT = "application.submit"
    APPLICATION_REVIEW = "application.review"
    APPLICATION_ASSIGN = "application.assign"
    DOCUMENT_REVIEW = "document.review"
    INTEREST_RATE_MANAGE = "interest_rate.manage"
    USER_MANAGE = "user.manage"
    AUDIT_LOG_VIEW = "audit_log.view"
    DASHBOARD_ADMIN = "dashboard.admin"
    DASHBOARD_OFFICER = "dashboard.officer"
    DASHBOARD_APPROVER = "dashboard.approver"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.SUPER_ADMIN: frozenset(Capability),
    Role.LOAN_OFFICER: frozenset(
        {
            Capability.APPLICATION_REVIEW,
            Capability.DOCUMENT_REVIEW,
            Capability.DASHBOARD_OFFICER,
        }
    ),
    Role.APPROVER: frozenset(
        {
            Capability.APPLICATION_REVIEW,
            Capability.DOCUMENT_REVIEW,
            Capability.DASHBOARD_APPROVER,
        }
    ),
    Role.APPLICANT: frozenset({Capability.APPLICATION_SUBMIT}),
}


def has_capability(role: Role | str, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(Role.normalize(role), frozenset())
