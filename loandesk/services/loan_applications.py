from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping
from uuid import UUID

from fastapi import UploadFile
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loandesk.api import deps
from loandesk.core.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    UpstreamFailure,
    ValidationError,
)
from loandesk.core.permissions import Capability, Role
from loandesk.core.settings import settings
from loandesk.models.document import Document
from loandesk.models.loan_application import LoanApplication
from loandesk.models.user import User
from loandesk.schemas.applications import AccountDetailsUpdate, ApplicationSubmit
from loandesk.schemas.common import (
    DocumentStatus,
    DocumentType,
    IdCardType,
    LoanApplicationStatus as Status,
    NotificationType,
    ReviewStatus,
)
from loandesk.services import interest_rates, loan_reviews, loans, notifications, workflow
from loandesk.services.audit import model_snapshot, record_audit_log
from loandesk.services.storage.adapter import StorageAdapter, StorageError
from loandesk.services.storage.service import get_storage_adapter
from loandesk.services.storage.uploads import PreparedUpload, document_object_key, read_upload


logger = logging.getLogger(__name__)

# Targets that carry a reviewer decision; these are recorded through the
# review engine so the review log and the status always agree.
_DECISION_REVIEWS: dict[Status, ReviewStatus] = {
    Status.APPROVED: ReviewStatus.APPROVED,
    Status.REJECTED: ReviewStatus.REJECTED,
    Status.ADDITIONAL_INFO_REQUESTED: ReviewStatus.REQUEST_INFO,
}

ACCOUNT_LOCKED_STATUSES = frozenset({Status.REJECTED, Status.DISBURSED, Status.CLOSED})


def parse_submission(raw: Mapping[str, Any]) -> ApplicationSubmit:
    try:
        return ApplicationSubmit.model_validate(dict(raw))
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


def _missing_document_errors(
    id_card: UploadFile | None,
    proof_of_funds: UploadFile | None,
    id_card_type: IdCardType | None,
) -> list[dict[str, str]]:
    errors = []
    if id_card is None or not (id_card.filename or "").strip():
        errors.append({"field": "id_card", "message": "ID card document is required"})
    if proof_of_funds is None or not (proof_of_funds.filename or "").strip():
        errors.append({"field": "proof_of_funds", "message": "Proof of funds document is required"})
    if id_card_type is None:
        errors.append({"field": "id_card_type", "message": "ID card type is required"})
    return errors


async def pick_loan_officer(db: AsyncSession) -> UUID | None:
    """Random active loan officer, or ``None`` when there are none."""
    stmt = (
        select(User.id)
        .where(User.role == Role.LOAN_OFFICER.value, User.is_active.is_(True))
        .order_by(func.random())
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def _discard_application(
    db: AsyncSession,
    application: LoanApplication,
    documents: list[Document],
    adapter: StorageAdapter,
    stored_keys: list[str],
) -> None:
    for document in documents:
        db.expunge(document)
    await db.execute(
        delete(Document)
        .where(Document.application_id == application.id)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(LoanApplication)
        .where(LoanApplication.id == application.id)
        .execution_options(synchronize_session=False)
    )
    db.expunge(application)
    for key in stored_keys:
        try:
            adapter.delete_object(key)
        except (StorageError, ValueError):
            logger.warning("Orphaned upload %s left in storage", key, exc_info=True)


async def submit(
    db: AsyncSession,
    principal: deps.Principal,
    payload: ApplicationSubmit,
    *,
    id_card: UploadFile | None,
    proof_of_funds: UploadFile | None,
    id_card_type: IdCardType | None,
    adapter: StorageAdapter | None = None,
) -> tuple[LoanApplication, int]:
    """Create a PENDING application together with its two required documents.

    Nothing is written unless both documents are present and valid. When the
    document store fails after the application row exists, the documents and
    the application are deleted again and :class:`UpstreamFailure` is raised.
    """
    if not principal.can(Capability.APPLICATION_SUBMIT):
        raise Forbidden(
            message="Your role cannot submit loan applications",
            details={"role": principal.role.value},
        )

    errors = _missing_document_errors(id_card, proof_of_funds, id_card_type)
    if errors:
        raise ValidationError.for_fields(
            errors, message="Both ID card and proof of funds documents are required"
        )

    max_bytes = settings.max_upload_size_bytes
    uploads: list[tuple[DocumentType, PreparedUpload, IdCardType | None]] = [
        (
            DocumentType.ID_CARD,
            await read_upload(id_card, field_name="id_card", max_size_bytes=max_bytes),
            id_card_type,
        ),
        (
            DocumentType.PROOF_OF_FUNDS,
            await read_upload(proof_of_funds, field_name="proof_of_funds", max_size_bytes=max_bytes),
            None,
        ),
    ]

    adapter = adapter or get_storage_adapter()
    rate = await interest_rates.rate_for_duration(db, payload.duration_months)
    officer_id = await pick_loan_officer(db)
    if officer_id is None:
        logger.info("No active loan officer available; application left unassigned")

    application = LoanApplication(
        applicant_id=principal.user_id,
        assigned_officer_id=officer_id,
        status=Status.PENDING.value,
        version=1,
        amount=payload.amount,
        purpose=payload.purpose,
        duration_months=payload.duration_months,
        interest_rate=rate,
        monthly_income=payload.monthly_income,
        employment_status=payload.employment_status.value,
        employer_name=payload.employer_name,
        work_experience=payload.work_experience,
        phone_number=payload.phone_number,
        address=payload.address,
        submitted_at=datetime.now(timezone.utc),
    )
    db.add(application)
    await db.flush()

    stored_keys: list[str] = []
    documents: list[Document] = []
    try:
        for document_type, upload, card_type in uploads:
            key = document_object_key(application.id, document_type.value, upload.extension)
            url = adapter.put_object(key, upload.content, upload.content_type)
            stored_keys.append(key)
            document = Document(
                application_id=application.id,
                document_type=document_type.value,
                id_card_type=card_type.value if card_type else None,
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
            documents.append(document)
        await db.flush()
    except StorageError as exc:
        logger.error("Document upload failed for application %s; discarding it", application.id, exc_info=True)
        await _discard_application(db, application, documents, adapter, stored_keys)
        raise UpstreamFailure(
            message="Document upload failed; the application was not submitted",
            details={"stage": "document_upload"},
        ) from exc
    except SQLAlchemyError:
        logger.error("Document metadata write failed; orphaned uploads %s", stored_keys)
        raise

    await notifications.notify_submission(db, application)
    await record_audit_log(
        db,
        principal,
        action="loan_application.submitted",
        resource_type="loan_application",
        resource_id=application.id,
        new_value=model_snapshot(application),
    )
    logger.info("Application %s submitted with %s documents", application.id, len(documents))
    return application, len(documents)


async def get_application_with_related(db: AsyncSession, application_id: UUID) -> LoanApplication | None:
    stmt = (
        select(LoanApplication)
        .options(
            selectinload(LoanApplication.applicant),
            selectinload(LoanApplication.assigned_officer),
            selectinload(LoanApplication.documents),
            selectinload(LoanApplication.reviews),
            selectinload(LoanApplication.loan),
        )
        .where(LoanApplication.id == application_id)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_application_for(
    db: AsyncSession,
    principal: deps.Principal,
    application_id: UUID,
) -> LoanApplication:
    application = await get_application_with_related(db, application_id)
    if application is None:
        raise NotFound(message="Loan application not found", details={"application_id": str(application_id)})
    workflow.ensure_can_view(principal, application)
    return application


async def list_applications(
    db: AsyncSession,
    principal: deps.Principal,
    *,
    status: Status | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[LoanApplication], int]:
    conditions = [workflow.visibility_clause(principal)]
    if status is not None:
        conditions.append(LoanApplication.status == status.value)

    count_stmt = select(func.count()).select_from(LoanApplication).where(*conditions)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)

    stmt = (
        select(LoanApplication)
        .where(*conditions)
        .order_by(LoanApplication.submitted_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all()), total


async def _get_application_or_404(db: AsyncSession, application_id: UUID) -> LoanApplication:
    application = await db.get(LoanApplication, application_id)
    if application is None:
        raise NotFound(message="Loan application not found", details={"application_id": str(application_id)})
    return application


async def transition(
    db: AsyncSession,
    principal: deps.Principal,
    application_id: UUID,
    target: Status,
    *,
    expected_status: Status | None = None,
    note: str | None = None,
    additional_info_requested: str | None = None,
    additional_info_provided: str | None = None,
) -> LoanApplication:
    """Move an application along one edge of the lifecycle."""
    if target is Status.DISBURSED:
        application, _ = await loans.disburse(db, principal, application_id, expected_status=expected_status)
        return application

    application = await _get_application_or_404(db, application_id)
    workflow.ensure_expected_status(application, expected_status)
    workflow.authorize_transition(principal, application, target)

    review_status = _DECISION_REVIEWS.get(target)
    if review_status is not None:
        comments = note
        if target is Status.ADDITIONAL_INFO_REQUESTED:
            comments = additional_info_requested or note
        _, application = await loan_reviews.record_review(
            db,
            principal,
            application_id,
            status=review_status,
            comments=comments,
            expected_status=expected_status,
        )
        return application

    values: dict[str, Any] = {}
    current = application.status_enum
    if current is Status.ADDITIONAL_INFO_REQUESTED and target is Status.UNDER_REVIEW:
        provided = (additional_info_provided or "").strip()
        if principal.role is Role.APPLICANT and not provided:
            raise ValidationError.for_field(
                "additional_info_provided", "Describe the information you are providing"
            )
        if provided:
            values["additional_info_provided"] = provided

    await workflow.change_status(
        db,
        principal,
        application,
        target,
        expected_status=expected_status,
        values=values or None,
        note=note,
    )

    if values.get("additional_info_provided") and application.assigned_officer_id:
        await notifications.notify_users(
            db,
            [application.assigned_officer_id],
            type=NotificationType.ADDITIONAL_INFO_PROVIDED,
            title="Additional Information Provided",
            message="The applicant has provided the requested information.",
            application_id=application.id,
        )
    return application


async def update_account_details(
    db: AsyncSession,
    principal: deps.Principal,
    application_id: UUID,
    payload: AccountDetailsUpdate,
) -> LoanApplication:
    application = await _get_application_or_404(db, application_id)
    if principal.role is not Role.APPLICANT or application.applicant_id != principal.user_id:
        raise Forbidden(
            message="Only the applicant can change account details",
            details={"application_id": str(application.id)},
        )
    if application.status_enum in ACCOUNT_LOCKED_STATUSES:
        raise InvalidTransition(
            message="Account details can no longer be changed for this application",
            code="account_locked",
            details={"status": application.status},
        )

    old_snapshot = model_snapshot(application)
    application.account_number = payload.account_number
    application.bank_name = payload.bank_name
    if payload.bvn is not None:
        application.bvn = payload.bvn
    if payload.nin is not None:
        application.nin = payload.nin
    db.add(application)
    await db.flush()
    await record_audit_log(
        db,
        principal,
        action="loan_application.account_updated",
        resource_type="loan_application",
        resource_id=application.id,
        old_value=old_snapshot,
        new_value=model_snapshot(application),
    )
    return application


async def assign_officer(
    db: AsyncSession,
    principal: deps.Principal,
    application_id: UUID,
    officer_id: UUID,
) -> LoanApplication:
    if not principal.can(Capability.APPLICATION_ASSIGN):
        raise Forbidden(
            message="Only super admins can reassign applications",
            details={"role": principal.role.value},
        )

    application = await _get_application_or_404(db, application_id)
    if application.status_enum in workflow.TERMINAL_STATUSES:
        raise InvalidTransition(
            message="Closed or rejected applications cannot be reassigned",
            code="application_finalized",
            details={"status": application.status},
        )
    officer = await db.get(User, officer_id)
    if officer is None or not officer.is_active or officer.role != Role.LOAN_OFFICER.value:
        raise ValidationError.for_field("assigned_officer_id", "Must reference an active loan officer")

    previous = application.assigned_officer_id
    application.assigned_officer_id = officer.id
    db.add(application)
    await db.flush()

    await notifications.notify_users(
        db,
        [officer.id],
        type=NotificationType.APPLICATION_SUBMITTED,
        title="Application Assigned",
        message="A loan application has been assigned to you for review.",
        application_id=application.id,
    )
    await record_audit_log(
        db,
        principal,
        action="loan_application.assigned",
        resource_type="loan_application",
        resource_id=application.id,
        old_value={"assigned_officer_id": previous},
        new_value={"assigned_officer_id": officer.id},
    )
    return application
