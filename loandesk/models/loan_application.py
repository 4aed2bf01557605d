import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loandesk.db.base import Base
from loandesk.models.types import EncryptedString
from loandesk.schemas.common import EmploymentStatus, LoanApplicationStatus, sql_in


class LoanApplication(Base):
    __tablename__ = "loan_applications"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_loan_app_amount_positive"),
        CheckConstraint("duration_months > 0", name="ck_loan_app_duration_positive"),
        CheckConstraint("monthly_income > 0", name="ck_loan_app_income_positive"),
        CheckConstraint("interest_rate >= 0", name="ck_loan_app_rate_nonneg"),
        CheckConstraint("version >= 1", name="ck_loan_app_version_positive"),
        CheckConstraint(sql_in("status", LoanApplicationStatus), name="ck_loan_app_status"),
        CheckConstraint(
            sql_in("employment_status", EmploymentStatus),
            name="ck_loan_app_employment_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    applicant_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    assigned_officer_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status = Column(String(40), nullable=False, default=LoanApplicationStatus.PENDING.value, index=True)
    version = Column(Integer, nullable=False, default=1)

    amount = Column(Numeric(18, 2), nullable=False)
    purpose = Column(String(500), nullable=False)
    duration_months = Column(Integer, nullable=False)
    interest_rate = Column(Numeric(6, 2), nullable=False)
    monthly_income = Column(Numeric(18, 2), nullable=False)
    employment_status = Column(String(30), nullable=False)
    employer_name = Column(String(255), nullable=True)
    work_experience = Column(Integer, nullable=True)
    phone_number = Column(String(50), nullable=False)
    address = Column(String(500), nullable=False)

    account_number = Column(String(20), nullable=True)
    bank_name = Column(String(120), nullable=True)
    bvn = Column(EncryptedString(), nullable=True)
    nin = Column(EncryptedString(), nullable=True)

    additional_info_requested = Column(Text, nullable=True)
    additional_info_provided = Column(Text, nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    applicant = relationship("User", foreign_keys=[applicant_id])
    assigned_officer = relationship("User", foreign_keys=[assigned_officer_id])
    documents = relationship(
        "Document",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="Document.uploaded_at",
    )
    reviews = relationship(
        "LoanReview",
        back_populates="application",
        order_by="desc(LoanReview.reviewed_at)",
    )
    loan = relationship("Loan", back_populates="application", uselist=False)

    @property
    def status_enum(self) -> LoanApplicationStatus:
        return LoanApplicationStatus(self.status)
