from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.errors import Forbidden, InvalidTransition, NotFound, UpstreamFailure, ValidationError
from loandesk.core.permissions import Capability, Role
from loandesk.core.settings import settings
from loandesk.models.document import Document
from loandesk.models.loan_application import LoanApplication
from loandesk.schemas.common import (
    UNIQUE_DOCUMENT_TYPES,
    DocumentStatus,
    DocumentType,
    IdCardType,
    LoanApplicationStatus,
    NotificationType,
)
from loandesk.services import notifications, workflow
from loandesk.services.audit import model_snapshot, record_audit_log
from loandesk.services.storage.adapter import StorageAdapter, StorageError
from loandesk.services.storage.service import get_storage_adapter
from loandesk.services.storage.uploads import document_object_key, read_upload


logger = logging.getLogger(__name__)

FROZEN_APPLICATION_STATUSES = frozenset(
    {LoanApplicationStatus.REJECTED, LoanApplicationStatus.DISBURSED, LoanApplicationStatus.CLOSED}
)
REVIEWABLE_TARGETS = frozenset({DocumentStatus.APPROVED, DocumentStatus.REJECTED})


async def _application_or_404(db: AsyncSession, application_id: UUID) -> LoanApplication:
    application = await db.get(LoanApplication, application_id)
    if application is None:
        raise NotFound(message="Loan application not found", details={"application_id": str(application_id)})
    return application


async def _document_with_application(db: AsyncSession, document_id: UUID) -> tuple[Document, LoanApplication]:
    stmt = (
        select(Document, LoanApplication)
        .join(LoanApplication, LoanApplication.id == Document.application_id)
        .where(Document.id == document_id)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFound(message="Document not found", details={"document_id": str(document_id)})
    return row[0], row[1]


def _ensure_can_modify(principal: deps.Principal, application: LoanApplication) -> None:
    if principal.role is Role.SUPER_ADMIN:
        return
    if principal.role is Role.APPLICANT and application.applicant_id == principal.user_id:
        return
    if principal.role is Role.LOAN_OFFICER and application.assigned_officer_id == principal.user_id:
        return
    raise Forbidden(
        message="You cannot change documents on this application",
        details={"application_id": str(application.id)},
    )


def _ensure_not_frozen(application: LoanApplication) -> None:
    if application.status_enum in FROZEN_APPLICATION_STATUSES:
        raise InvalidTransition(
            message="Documents can no longer change for this application",
            code="application_finalized",
            details={"status": application.status},
        )


async def list_documents(
    db: AsyncSession,
    principal: deps.Principal,
    *,
    application_id: UUID | None = None,
) -> list[Document]:
    stmt = select(Document).join(LoanApplication, LoanApplication.id == Document.application_id)
    if application_id is not None:
        application = await _application_or_404(db, application_id)
        workflow.ensure_can_view(principal, application)
        stmt = stmt.where(Document.application_id == application_id)
    else:
        stmt = stmt.where(workflow.visibility_clause(principal))
    stmt = stmt.order_by(Document.uploaded_at.desc())
    return list((await db.execute(stmt)).scalars().all())


async def get_document(db: AsyncSession, principal: deps.Principal, document_id: UUID) -> Document:
    document, application = await _document_with_application(db, document_id)
    workflow.ensure_can_view(principal, application)
    return document


async def get_document_by_key(db: AsyncSession, principal: deps.Principal, object_key: str) -> Document:
    stmt = (
        select(Document, LoanApplication)
        .join(LoanApplication, LoanApplication.id == Document.application_id)
        .where(Document.storage_object_key == object_key)
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFound(message="Document not found", details={"key": object_key})
    workflow.ensure_can_view(principal, row[1])
    return row[0]


async def upload_document(
    db: AsyncSession,
    principal: deps.Principal,
    application_id: UUID,
    *,
    document_type: DocumentType,
    file: UploadFile | None,
    id_card_type: IdCardType | None = None,
    adapter: StorageAdapter | None = None,
) -> Document:
    application = await _application_or_404(db, application_id)
    _ensure_can_modify(principal, application)
    _ensure_not_frozen(application)

    if document_type is DocumentType.ID_CARD and id_card_type is None:
        raise ValidationError.for_field("id_card_type", "ID card type is required for ID card uploads")
    if document_type in UNIQUE_DOCUMENT_TYPES:
        existing_stmt = select(Document.id).where(
            Document.application_id == application.id,
            Document.document_type == document_type.value,
        )
        if (await db.execute(existing_stmt)).first() is not None:
            raise ValidationError.for_field(
                "document_type",
                f"A {document_type.value} document already exists for this application",
            )

    upload = await read_upload(file, field_name="file", max_size_bytes=settings.max_upload_size_bytes)
    adapter = adapter or get_storage_adapter()
    key = document_object_key(application.id, document_type.value, upload.extension)
    try:
        url = adapter.put_object(key, upload.content, upload.content_type)
    except StorageError as exc:
        logger.error(
            "Upload of %s for application %s failed", document_type.value, application.id, exc_info=True
        )
        raise UpstreamFailure(message="Document upload failed", details={"stage": "document_upload"}) from exc

    document = Document(
        application_id=application.id,
        document_type=document_type.value,
        id_card_type=id_card_type.value if id_card_type and document_type is DocumentType.ID_CARD else None,
        file_name=upload.file_name,
        file_url=url,
        storage_provider=adapter.provider,
        storage_object_key=key,
        content_type=upload.content_type,
        size_bytes=upload.size_bytes,
        status=DocumentStatus.PENDING.value,
        uploaded_by_id=principal.user_id,
    )
    db.add(document)
    await db.flush()
    await record_audit_log(
        db,
        principal,
        action="document.uploaded",
        resource_type="document",
        resource_id=document.id,
        new_value=model_snapshot(document),
    )
    return document


async def review_document(
    db: AsyncSession,
    principal: deps.Principal,
    document_id: UUID,
    *,
    status: DocumentStatus,
    notes: str | None = None,
) -> Document:
    if not principal.can(Capability.DOCUMENT_REVIEW):
        raise Forbidden(message="Only staff can review documents", details={"role": principal.role.value})
    if status not in REVIEWABLE_TARGETS:
        raise ValidationError.for_field("status", "Documents can only be approved or rejected")

    document, application = await _document_with_application(db, document_id)
    if principal.role is Role.LOAN_OFFICER and application.assigned_officer_id != principal.user_id:
        raise Forbidden(
            message="This application is not assigned to you",
            details={"application_id": str(application.id)},
        )
    if document.status != DocumentStatus.PENDING.value:
        raise InvalidTransition(
            message=f"Document is already {document.status}",
            details={"from": document.status, "to": status.value, "allowed": []},
        )

    old_snapshot = model_snapshot(document)
    document.status = status.value
    document.notes = notes
    document.reviewed_by_id = principal.user_id
    document.reviewed_at = datetime.now(timezone.utc)
    db.add(document)
    await db.flush()

    await notifications.notify_users(
        db,
        [application.applicant_id],
        type=NotificationType.DOCUMENT_REVIEWED,
        title="Document Reviewed",
        message=f"Your {document.document_type.replace('_', ' ').lower()} was {status.value.lower()}.",
        application_id=application.id,
    )
    await record_audit_log(
        db,
        principal,
        action="document.reviewed",
        resource_type="document",
        resource_id=document.id,
        old_value=old_snapshot,
        new_value=model_snapshot(document),
    )
    return document


async def delete_document(
    db: AsyncSession,
    principal: deps.Principal,
    document_id: UUID,
    *,
    adapter: StorageAdapter | None = None,
) -> None:
    document, application = await _document_with_application(db, document_id)
    _ensure_can_modify(principal, application)
    _ensure_not_frozen(application)
    if principal.role is not Role.SUPER_ADMIN and document.status != DocumentStatus.PENDING.value:
        raise InvalidTransition(
            message="Reviewed documents cannot be deleted",
            code="document_reviewed",
            details={"status": document.status},
        )

    old_snapshot = model_snapshot(document)
    await db.delete(document)
    await db.flush()

    try:
        (adapter or get_storage_adapter(document.storage_provider)).delete_object(document.storage_object_key)
    except (StorageError, ValueError):
        logger.warning("Stored object for document %s was not removed", document_id, exc_info=True)

    await record_audit_log(
        db,
        principal,
        action="document.deleted",
        resource_type="document",
        resource_id=document_id,
        old_value=old_snapshot,
    )


def download_url(document: Document, *, adapter: StorageAdapter | None = None) -> str:
    try:
        adapter = adapter or get_storage_adapter(document.storage_provider)
        return adapter.generate_download_url(document.storage_object_key)
    except StorageError as exc:
        logger.error("Download link for document %s failed", document.id, exc_info=True)
        raise UpstreamFailure(message="Document link unavailable", details={"stage": "download_url"}) from exc
