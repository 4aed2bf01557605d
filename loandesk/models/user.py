import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from loandesk.core.permissions import Role
from loandesk.db.base import Base
from loandesk.schemas.common import sql_in


class User(Base):
    __tablename__ = "users"
    __table_args__ = (CheckConstraint(sql_in("role", Role), name="ck_users_role"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False)
    phone_number = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=Role.APPLICANT.value, index=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    email_verified = Column(Boolean, nullable=False, default=False, server_default="false")
    token_version = Column(Integer, nullable=False, default=0, server_default="0")
    last_active_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def role_enum(self) -> Role:
        return Role.normalize(self.role)
