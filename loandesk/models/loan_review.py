import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loandesk.core.permissions import Role
from loandesk.db.base import Base
from loandesk.schemas.common import ReviewStatus, sql_in


class LoanReview(Base):
    """A reviewer's decision on an application. Rows are never updated."""

    __tablename__ = "loan_reviews"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(sql_in("status", ReviewStatus), name="ck_loan_review_status"),
        CheckConstraint(sql_in("reviewer_role", Role), name="ck_loan_review_reviewer_role"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reviewer_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    reviewer_role = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)
    comments = Column(Text, nullable=True)
    recommendation = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("LoanApplication", back_populates="reviews")
