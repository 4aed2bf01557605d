from __future__ import annotations

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel

from loandesk.core.permissions import Role


T = TypeVar("T")


class LoanApplicationStatus(str, Enum):
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    ADDITIONAL_INFO_REQUESTED = "ADDITIONAL_INFO_REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DISBURSED = "DISBURSED"
    CLOSED = "CLOSED"


class EmploymentStatus(str, Enum):
    EMPLOYED = "EMPLOYED"
    SELF_EMPLOYED = "SELF_EMPLOYED"
    UNEMPLOYED = "UNEMPLOYED"
    RETIRED = "RETIRED"
    STUDENT = "STUDENT"


class DocumentType(str, Enum):
    ID_CARD = "ID_CARD"
    PROOF_OF_FUNDS = "PROOF_OF_FUNDS"
    BANK_STATEMENT = "BANK_STATEMENT"
    PASSPORT = "PASSPORT"
    PAY_SLIP = "PAY_SLIP"
    UTILITY_BILL = "UTILITY_BILL"
    BUSINESS_REGISTRATION = "BUSINESS_REGISTRATION"
    EMPLOYMENT_VERIFICATION = "EMPLOYMENT_VERIFICATION"
    INCOME_STATEMENT = "INCOME_STATEMENT"
    PROOF_OF_ADDRESS = "PROOF_OF_ADDRESS"
    COLLATERAL_DOCUMENT = "COLLATERAL_DOCUMENT"
    OTHER = "OTHER"


# One of each per application; checked before insert.
UNIQUE_DOCUMENT_TYPES = frozenset({DocumentType.ID_CARD, DocumentType.PROOF_OF_FUNDS})


class IdCardType(str, Enum):
    NATIONAL_ID = "NATIONAL_ID"
    DRIVERS_LICENSE = "DRIVERS_LICENSE"
    INTERNATIONAL_PASSPORT = "INTERNATIONAL_PASSPORT"
    VOTERS_CARD = "VOTERS_CARD"


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ReviewStatus(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REQUEST_INFO = "REQUEST_INFO"


class NotificationType(str, Enum):
    APPLICATION_SUBMITTED = "APPLICATION_SUBMITTED"
    APPLICATION_UNDER_REVIEW = "APPLICATION_UNDER_REVIEW"
    ADDITIONAL_INFO_REQUESTED = "ADDITIONAL_INFO_REQUESTED"
    ADDITIONAL_INFO_PROVIDED = "ADDITIONAL_INFO_PROVIDED"
    APPLICATION_APPROVED = "APPLICATION_APPROVED"
    APPLICATION_REJECTED = "APPLICATION_REJECTED"
    LOAN_DISBURSED = "LOAN_DISBURSED"
    LOAN_CLOSED = "LOAN_CLOSED"
    REVIEW_RECORDED = "REVIEW_RECORDED"
    DOCUMENT_REVIEWED = "DOCUMENT_REVIEWED"
    REPAYMENT_RECORDED = "REPAYMENT_RECORDED"


def sql_in(column: str, enum_cls: type[Enum]) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        pages = (total + limit - 1) // limit if limit else 0
        return cls(page=page, limit=limit, total=total, pages=pages)


class Page(BaseModel, Generic[T]):
    items: list[T]
    pagination: Pagination


__all__ = [
    "DocumentStatus",
    "DocumentType",
    "EmploymentStatus",
    "IdCardType",
    "LoanApplicationStatus",
    "NotificationType",
    "Page",
    "Pagination",
    "ReviewStatus",
    "Role",
    "UNIQUE_DOCUMENT_TYPES",
    "sql_in",
]
