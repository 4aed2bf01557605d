from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from loandesk.api import deps
from loandesk.core.crypto import mask_identifier
from loandesk.core.errors import ValidationError
from loandesk.core.limiter import limiter, upload_limit
from loandesk.core.permissions import Role
from loandesk.db.session import get_db
from loandesk.models.loan_application import LoanApplication
from loandesk.schemas.applications import (
    AccountDetailsUpdate,
    ApplicationDetail,
    ApplicationListResponse,
    ApplicationSummary,
    ApplicationUpdate,
    DisburseRequest,
    SubmitResponse,
)
from loandesk.schemas.common import IdCardType, LoanApplicationStatus, Pagination
from loandesk.schemas.loans import LoanOut
from loandesk.schemas.reviews import ReviewCreate, ReviewOut, ReviewResult, ReviewSummaryOut
from loandesk.services import loan_applications, loan_reviews, loans

router = APIRouter(prefix="/applications", tags=["applications"])

_SUBMITTERS = (Role.APPLICANT, Role.SUPER_ADMIN)
_REVIEWERS = (Role.LOAN_OFFICER, Role.APPROVER, Role.SUPER_ADMIN)
_DISBURSERS = (Role.APPROVER, Role.SUPER_ADMIN)


def _build_detail(application: LoanApplication) -> ApplicationDetail:
    reviews = list(application.reviews or [])
    summary = loan_reviews.summarize_reviews(reviews)
    return ApplicationDetail.model_validate(application).model_copy(
        update={
            "bvn_masked": mask_identifier(application.bvn),
            "nin_masked": mask_identifier(application.nin),
            "review_summary": ReviewSummaryOut(
                latest_advisory=summary.latest_advisory,
                latest_decision=summary.latest_decision,
                recommended_status=summary.recommended_status,
                review_count=summary.review_count,
            ),
            "eligible_for_disbursement": loan_reviews.is_eligible_for_disbursement(
                application, reviews, application.loan
            ),
        }
    )


@router.post("", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(upload_limit)
async def submit_application(
    request: Request,
    amount: str | None = Form(default=None),
    purpose: str | None = Form(default=None),
    duration_months: str | None = Form(default=None),
    monthly_income: str | None = Form(default=None),
    employment_status: str | None = Form(default=None),
    employer_name: str | None = Form(default=None),
    work_experience: str | None = Form(default=None),
    phone_number: str | None = Form(default=None),
    address: str | None = Form(default=None),
    id_card_type: str | None = Form(default=None),
    id_card: UploadFile | None = File(default=None),
    proof_of_funds: UploadFile | None = File(default=None),
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.require_roles(*_SUBMITTERS)),
) -> SubmitResponse:
    raw = {
        "amount": amount,
        "purpose": purpose,
        "duration_months": duration_months,
        "monthly_income": monthly_income,
        "employment_status": employment_status,
        "employer_name": employer_name,
        "work_experience": work_experience or None,
        "phone_number": phone_number,
        "address": address,
    }
    payload = loan_applications.parse_submission(raw)
    card_type = None
    if id_card_type:
        try:
            card_type = IdCardType(id_card_type.strip().upper())
        except ValueError as exc:
            raise ValidationError.for_field("id_card_type", "Unknown ID card type") from exc

    application, uploaded = await loan_applications.submit(
        db,
        principal,
        payload,
        id_card=id_card,
        proof_of_funds=proof_of_funds,
        id_card_type=card_type,
    )
    await db.commit()
    return SubmitResponse(
        application_id=application.id,
        documents_uploaded=uploaded,
        assigned_officer_id=application.assigned_officer_id,
        interest_rate=application.interest_rate,
    )


@router.get("", response_model=ApplicationListResponse)
async def list_applications(
    status_filter: LoanApplicationStatus | None = Query(default=None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> ApplicationListResponse:
    items, total = await loan_applications.list_applications(
        db, principal, status=status_filter, page=page, limit=limit
    )
    return ApplicationListResponse(
        applications=[ApplicationSummary.model_validate(item) for item in items],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.get("/{application_id}", response_model=ApplicationDetail)
async def get_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> ApplicationDetail:
    application = await loan_applications.get_application_for(db, principal, application_id)
    return _build_detail(application)


@router.patch("/{application_id}", response_model=ApplicationSummary)
async def update_application(
    application_id: UUID,
    payload: ApplicationUpdate,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.get_principal),
) -> ApplicationSummary:
    if payload.status is None and payload.assigned_officer_id is None:
        raise ValidationError.for_field("status", "Provide a status or an assigned_officer_id")

    application = None
    if payload.assigned_officer_id is not None:
        application = await loan_applications.assign_officer(
            db, principal, application_id, payload.assigned_officer_id
        )
    if payload.status is not None:
        application = await loan_applications.transition(
            db,
            principal,
            application_id,
            payload.status,
            expected_status=payload.expected_status,
            note=payload.note,
            additional_info_requested=payload.additional_info_requested,
            additional_info_provided=payload.additional_info_provided,
        )
    await db.commit()
    await db.refresh(application)
    return ApplicationSummary.model_validate(application)


@router.put("/{application_id}/account", response_model=ApplicationDetail)
async def update_account_details(
    application_id: UUID,
    payload: AccountDetailsUpdate,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.require_roles(Role.APPLICANT)),
) -> ApplicationDetail:
    await loan_applications.update_account_details(db, principal, application_id, payload)
    await db.commit()
    application = await loan_applications.get_application_for(db, principal, application_id)
    return _build_detail(application)


@router.post("/{application_id}/review", response_model=ReviewResult, status_code=status.HTTP_201_CREATED)
async def review_application(
    application_id: UUID,
    payload: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.require_roles(*_REVIEWERS)),
) -> ReviewResult:
    review, application = await loan_reviews.record_review(
        db,
        principal,
        application_id,
        status=payload.status,
        comments=payload.comments,
        recommendation=payload.recommendation,
        expected_status=payload.expected_status,
    )
    await db.commit()
    await db.refresh(review)
    return ReviewResult(
        review=ReviewOut.model_validate(review),
        application_status=application.status_enum,
    )


@router.post("/{application_id}/disburse", response_model=LoanOut, status_code=status.HTTP_201_CREATED)
async def disburse_application(
    application_id: UUID,
    payload: DisburseRequest | None = None,
    db: AsyncSession = Depends(get_db),
    principal: deps.Principal = Depends(deps.require_roles(*_DISBURSERS)),
) -> LoanOut:
    payload = payload or DisburseRequest()
    _, loan = await loans.disburse(
        db,
        principal,
        application_id,
        expected_status=payload.expected_status,
        bank_account=payload.bank_account,
        bank_name=payload.bank_name,
    )
    await db.commit()
    await db.refresh(loan)
    return LoanOut.model_validate(loan)
