import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, func, text
from sqlalchemy.dialects.postgresql import UUID

from loandesk.db.base import Base


class InterestRate(Base):
    __tablename__ = "interest_rates"
    __table_args__ = (
        CheckConstraint("months BETWEEN 1 AND 60", name="ck_interest_rate_months_range"),
        CheckConstraint("rate >= 0 AND rate <= 100", name="ck_interest_rate_rate_range"),
        # One active rate per duration.
        Index(
            "uq_interest_rates_active_months",
            "months",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    months = Column(Integer, nullable=False)
    rate = Column(Numeric(6, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
