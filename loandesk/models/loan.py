import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Union

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loandesk.db.base import Base


@dataclass(frozen=True, slots=True)
class ActiveLoan:
    next_payment_due: date


@dataclass(frozen=True, slots=True)
class FullyPaidLoan:
    closed_at: datetime


LoanLifecycle = Union[ActiveLoan, FullyPaidLoan]


class Loan(Base):
    __tablename__ = "loans"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("approved_amount > 0", name="ck_loan_approved_positive"),
        CheckConstraint("disbursement_amount > 0", name="ck_loan_disbursement_positive"),
        CheckConstraint("total_repaid >= 0", name="ck_loan_total_repaid_nonneg"),
        CheckConstraint("duration_months > 0", name="ck_loan_duration_positive"),
        CheckConstraint(
            "(is_fully_paid AND closed_at IS NOT NULL AND next_payment_due IS NULL)"
            " OR (NOT is_fully_paid AND closed_at IS NULL AND next_payment_due IS NOT NULL)",
            name="ck_loan_lifecycle",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    approved_amount = Column(Numeric(18, 2), nullable=False)
    disbursement_amount = Column(Numeric(18, 2), nullable=False)
    interest_rate = Column(Numeric(6, 2), nullable=False)
    duration_months = Column(Integer, nullable=False)
    monthly_payment = Column(Numeric(18, 6), nullable=False)
    total_repayment = Column(Numeric(18, 6), nullable=False)
    total_repaid = Column(Numeric(18, 2), nullable=False, default=0)
    next_payment_due = Column(Date, nullable=True)
    is_fully_paid = Column(Boolean, nullable=False, default=False)
    disbursement_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    closed_at = Column(DateTime(timezone=True), nullable=True)
    bank_account = Column(String(20), nullable=True)
    bank_name = Column(String(120), nullable=True)
    created_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    application = relationship("LoanApplication", back_populates="loan")
    repayments = relationship(
        "LoanRepayment",
        back_populates="loan",
        order_by="LoanRepayment.paid_at",
    )

    @property
    def lifecycle(self) -> LoanLifecycle:
        if self.is_fully_paid:
            return FullyPaidLoan(closed_at=self.closed_at)
        return ActiveLoan(next_payment_due=self.next_payment_due)

    def apply_lifecycle(self, state: LoanLifecycle) -> None:
        if isinstance(state, FullyPaidLoan):
            self.is_fully_paid = True
            self.closed_at = state.closed_at
            self.next_payment_due = None
        else:
            self.is_fully_paid = False
            self.closed_at = None
            self.next_payment_due = state.next_payment_due
