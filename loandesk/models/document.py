import uuid

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loandesk.db.base import Base
from loandesk.schemas.common import DocumentStatus, DocumentType, IdCardType, sql_in


class Document(Base):
    __tablename__ = "documents"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(sql_in("document_type", DocumentType), name="ck_document_type"),
        CheckConstraint(sql_in("status", DocumentStatus), name="ck_document_status"),
        CheckConstraint(
            f"id_card_type IS NULL OR {sql_in('id_card_type', IdCardType)}",
            name="ck_document_id_card_type",
        ),
        CheckConstraint("size_bytes IS NULL OR size_bytes >= 0", name="ck_document_size_nonneg"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_type = Column(String(50), nullable=False)
    id_card_type = Column(String(40), nullable=True)
    file_name = Column(String(255), nullable=False)
    file_url = Column(String(1024), nullable=False)
    storage_provider = Column(String(32), nullable=False)
    storage_object_key = Column(String(1024), nullable=False)
    content_type = Column(String(100), nullable=True)
    size_bytes = Column(BigInteger, nullable=True)
    status = Column(String(20), nullable=False, default=DocumentStatus.PENDING.value)
    notes = Column(Text, nullable=True)
    uploaded_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("LoanApplication", back_populates="documents")
