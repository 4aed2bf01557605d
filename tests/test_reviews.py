from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from loandesk.core.errors import ConcurrentModification, Forbidden, InvalidTransition, ValidationError
from loandesk.core.permissions import Role
from loandesk.models.loan_application import LoanApplication
from loandesk.models.loan_review import LoanReview
from loandesk.models.notification import Notification
from loandesk.models.user import User
from loandesk.schemas.common import DocumentStatus, LoanApplicationStatus as Status, ReviewStatus
from loandesk.services import loan_reviews

from tests.conftest import (
    FakeResult,
    entity_handler,
    make_application,
    make_document,
    make_loan,
    make_principal,
    make_review,
)

T0 = datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)


def _install(fake_db, application):
    fake_db.on_execute(entity_handler(LoanApplication, FakeResult(scalar=application)))


def test_summary_of_no_reviews_is_empty():
    summary = loan_reviews.summarize_reviews([])
    assert summary.latest_advisory is None
    assert summary.latest_decision is None
    assert summary.recommended_status is None
    assert summary.review_count == 0


def test_officer_approval_waits_for_an_approver():
    app = make_application(status=Status.UNDER_REVIEW)
    reviews = [
        make_review(application_id=app.id, reviewer_role=Role.LOAN_OFFICER, status="APPROVED", reviewed_at=T0)
    ]

    summary = loan_reviews.summarize_reviews(reviews)

    assert summary.latest_advisory is ReviewStatus.APPROVED
    assert summary.recommended_status is Status.UNDER_REVIEW


def test_authoritative_decision_outranks_a_later_advisory():
    app = make_application(status=Status.UNDER_REVIEW)
    reviews = [
        make_review(application_id=app.id, reviewer_role=Role.APPROVER, status="REJECTED", reviewed_at=T0),
        make_review(
            application_id=app.id,
            reviewer_role=Role.LOAN_OFFICER,
            status="APPROVED",
            reviewed_at=T0 + timedelta(hours=2),
        ),
    ]

    summary = loan_reviews.summarize_reviews(reviews)

    assert summary.latest_decision is ReviewStatus.REJECTED
    assert summary.recommended_status is Status.REJECTED
    assert summary.review_count == 2


def test_latest_authoritative_decision_wins():
    app = make_application()
    reviews = [
        make_review(application_id=app.id, reviewer_role=Role.APPROVER, status="REQUEST_INFO", reviewed_at=T0),
        make_review(
            application_id=app.id,
            reviewer_role=Role.SUPER_ADMIN,
            status="APPROVED",
            reviewed_at=T0 + timedelta(days=1),
        ),
    ]

    assert loan_reviews.summarize_reviews(reviews).recommended_status is Status.APPROVED


def test_disbursement_eligibility_requires_approved_decision_and_no_loan():
    app = make_application(status=Status.APPROVED)
    approved = [make_review(application_id=app.id, reviewer_role=Role.APPROVER, status="APPROVED", reviewed_at=T0)]
    advisory_only = [
        make_review(application_id=app.id, reviewer_role=Role.LOAN_OFFICER, status="APPROVED", reviewed_at=T0)
    ]

    assert loan_reviews.is_eligible_for_disbursement(app, approved, None)
    assert not loan_reviews.is_eligible_for_disbursement(app, advisory_only, None)
    assert not loan_reviews.is_eligible_for_disbursement(app, approved, make_loan(application_id=app.id))
    pending = make_application(status=Status.UNDER_REVIEW)
    assert not loan_reviews.is_eligible_for_disbursement(pending, approved, None)


@pytest.mark.asyncio
async def test_officer_review_moves_pending_application_under_review(fake_db):
    officer = make_principal(Role.LOAN_OFFICER)
    application = make_application(assigned_officer_id=officer.user_id)
    _install(fake_db, application)

    review, updated = await loan_reviews.record_review(
        fake_db, officer, application.id, status=ReviewStatus.APPROVED, comments="Looks fine"
    )

    assert review.reviewer_role == "LOAN_OFFICER"
    assert updated.status == Status.UNDER_REVIEW.value
    assert fake_db.added_of(LoanReview) == [review]


@pytest.mark.asyncio
async def test_officer_request_info_walks_both_edges(fake_db):
    officer = make_principal(Role.LOAN_OFFICER)
    application = make_application(assigned_officer_id=officer.user_id)
    _install(fake_db, application)

    _, updated = await loan_reviews.record_review(
        fake_db, officer, application.id, status=ReviewStatus.REQUEST_INFO, comments="Send a recent payslip"
    )

    assert updated.status == Status.ADDITIONAL_INFO_REQUESTED.value
    assert updated.additional_info_requested == "Send a recent payslip"
    assert updated.version == 3
    types = [n.type for n in fake_db.added_of(Notification)]
    assert types == ["APPLICATION_UNDER_REVIEW", "ADDITIONAL_INFO_REQUESTED"]


@pytest.mark.asyncio
async def test_officer_cannot_recommend_approval_with_pending_documents(fake_db):
    officer = make_principal(Role.LOAN_OFFICER)
    application = make_application(assigned_officer_id=officer.user_id, status=Status.UNDER_REVIEW)
    application.documents = [make_document(application_id=application.id)]
    _install(fake_db, application)

    with pytest.raises(ValidationError) as excinfo:
        await loan_reviews.record_review(fake_db, officer, application.id, status=ReviewStatus.APPROVED)

    assert [e["field"] for e in excinfo.value.details["errors"]] == ["documents"]
    assert fake_db.added_of(LoanReview) == []


@pytest.mark.asyncio
async def test_officer_can_recommend_once_documents_are_reviewed(fake_db):
    officer = make_principal(Role.LOAN_OFFICER)
    application = make_application(assigned_officer_id=officer.user_id, status=Status.UNDER_REVIEW)
    application.documents = [make_document(application_id=application.id, status=DocumentStatus.APPROVED)]
    _install(fake_db, application)

    _, updated = await loan_reviews.record_review(fake_db, officer, application.id, status=ReviewStatus.APPROVED)

    assert updated.status == Status.UNDER_REVIEW.value


@pytest.mark.asyncio
async def test_unassigned_officer_is_forbidden(fake_db):
    officer = make_principal(Role.LOAN_OFFICER)
    application = make_application(status=Status.UNDER_REVIEW)
    _install(fake_db, application)

    with pytest.raises(Forbidden):
        await loan_reviews.record_review(fake_db, officer, application.id, status=ReviewStatus.REJECTED)


@pytest.mark.asyncio
async def test_approver_decision_applies_status(fake_db):
    approver = make_principal(Role.APPROVER)
    application = make_application(status=Status.UNDER_REVIEW)
    _install(fake_db, application)

    review, updated = await loan_reviews.record_review(
        fake_db,
        approver,
        application.id,
        status=ReviewStatus.APPROVED,
        expected_status=Status.UNDER_REVIEW,
    )

    assert review.reviewer_role == "APPROVER"
    assert updated.status == Status.APPROVED.value


@pytest.mark.asyncio
async def test_approver_cannot_decide_a_pending_application(fake_db):
    approver = make_principal(Role.APPROVER)
    application = make_application(status=Status.PENDING)
    _install(fake_db, application)

    with pytest.raises(InvalidTransition):
        await loan_reviews.record_review(fake_db, approver, application.id, status=ReviewStatus.APPROVED)


@pytest.mark.asyncio
async def test_applicant_cannot_review(fake_db):
    with pytest.raises(Forbidden):
        await loan_reviews.record_review(
            fake_db, make_principal(Role.APPLICANT), make_application().id, status=ReviewStatus.APPROVED
        )
    assert fake_db.executed == []


@pytest.mark.asyncio
async def test_stale_expected_status_is_rejected(fake_db):
    approver = make_principal(Role.APPROVER)
    application = make_application(status=Status.APPROVED)
    _install(fake_db, application)

    with pytest.raises(ConcurrentModification):
        await loan_reviews.record_review(
            fake_db,
            approver,
            application.id,
            status=ReviewStatus.REJECTED,
            expected_status=Status.UNDER_REVIEW,
        )


@pytest.mark.asyncio
async def test_officer_recommendation_notifies_active_approvers(fake_db):
    officer = make_principal(Role.LOAN_OFFICER)
    approver_ids = [uuid4(), uuid4()]
    application = make_application(assigned_officer_id=officer.user_id, status=Status.UNDER_REVIEW)
    application.documents = [make_document(application_id=application.id, status=DocumentStatus.APPROVED)]
    _install(fake_db, application)
    fake_db.on_execute(entity_handler(User, FakeResult(items=approver_ids)))

    await loan_reviews.record_review(fake_db, officer, application.id, status=ReviewStatus.REJECTED)

    notices = [n for n in fake_db.added_of(Notification) if n.type == "REVIEW_RECORDED"]
    assert sorted(n.user_id for n in notices) == sorted(approver_ids)


@pytest.mark.asyncio
async def test_failed_approver_lookup_is_contained_in_a_savepoint(fake_db):
    officer = make_principal(Role.LOAN_OFFICER)
    application = make_application(assigned_officer_id=officer.user_id, status=Status.UNDER_REVIEW)
    _install(fake_db, application)

    def broken_user_lookup(stmt):
        descriptions = getattr(stmt, "column_descriptions", None) or []
        if descriptions and descriptions[0].get("entity") is User:
            raise OperationalError("SELECT users", {}, Exception("connection reset"))
        return None

    fake_db.on_execute(broken_user_lookup)
    savepoints_before = fake_db.savepoints

    review, updated = await loan_reviews.record_review(
        fake_db, officer, application.id, status=ReviewStatus.REJECTED, comments="Income too low"
    )

    assert review in fake_db.added_of(LoanReview)
    assert updated.status == Status.UNDER_REVIEW.value
    assert not [n for n in fake_db.added_of(Notification) if n.type == "REVIEW_RECORDED"]
    assert fake_db.savepoints > savepoints_before
