from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from loandesk.schemas.common import DocumentStatus, DocumentType, IdCardType


class DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: UUID
    document_type: DocumentType
    id_card_type: IdCardType | None = None
    file_name: str
    file_url: str
    content_type: str | None = None
    size_bytes: int | None = None
    status: DocumentStatus
    notes: str | None = None
    uploaded_by_id: UUID | None = None
    reviewed_by_id: UUID | None = None
    reviewed_at: datetime | None = None
    uploaded_at: datetime | None = None


class DocumentListResponse(BaseModel):
    items: list[DocumentOut]
    total: int


class DocumentReviewRequest(BaseModel):
    status: DocumentStatus
    notes: str | None = Field(default=None, max_length=2000)


class DocumentDownloadResponse(BaseModel):
    download_url: str
