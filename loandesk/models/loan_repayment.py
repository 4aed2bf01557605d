import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loandesk.db.base import Base


class LoanRepayment(Base):
    __tablename__ = "loan_repayments"
    __allow_unmapped__ = True
    __table_args__ = (CheckConstraint("amount > 0", name="ck_loan_repayment_amount_positive"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    reference = Column(String(120), nullable=True)
    recorded_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    loan = relationship("Loan", back_populates="repayments")
