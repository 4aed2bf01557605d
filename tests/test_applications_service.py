from decimal import Decimal

import pytest

from loandesk.core.errors import Forbidden, InvalidTransition, UpstreamFailure, ValidationError
from loandesk.core.permissions import Role
from loandesk.models.audit_log import AuditLog
from loandesk.models.document import Document
from loandesk.models.interest_rate import InterestRate
from loandesk.models.loan_application import LoanApplication
from loandesk.models.loan_review import LoanReview
from loandesk.models.notification import Notification
from loandesk.models.user import User
from loandesk.schemas.applications import AccountDetailsUpdate
from loandesk.schemas.common import IdCardType, LoanApplicationStatus as Status
from loandesk.services import loan_applications

from tests.conftest import (
    PNG_BYTES,
    FakeResult,
    MemoryStorageAdapter,
    entity_handler,
    make_application,
    make_principal,
    make_upload,
    make_user,
)

RAW_SUBMISSION = {
    "amount": "150000",
    "purpose": "  Expand shop inventory ",
    "duration_months": "12",
    "monthly_income": "300000",
    "employment_status": "SELF_EMPLOYED",
    "employer_name": "",
    "work_experience": "3",
    "phone_number": "08031234567",
    "address": "12 Allen Avenue, Ikeja",
}


def _field_names(exc: ValidationError) -> list[str]:
    return [error["field"] for error in exc.details["errors"]]


def test_parse_submission_coerces_form_strings():
    payload = loan_applications.parse_submission(RAW_SUBMISSION)

    assert payload.amount == Decimal("150000")
    assert payload.duration_months == 12
    assert payload.purpose == "Expand shop inventory"
    assert payload.employer_name is None


@pytest.mark.parametrize(
    ("field", "value"),
    [("amount", "-10"), ("duration_months", "0"), ("employment_status", "PIRATE"), ("address", "   ")],
)
def test_parse_submission_reports_the_bad_field(field, value):
    with pytest.raises(ValidationError) as excinfo:
        loan_applications.parse_submission({**RAW_SUBMISSION, field: value})

    assert _field_names(excinfo.value) == [field]


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_submit_creates_pending_application_with_two_documents(fake_db, storage):
    applicant = make_principal(Role.APPLICANT)
    officer_id = make_user(role=Role.LOAN_OFFICER).id
    fake_db.on_execute(entity_handler(User, FakeResult(scalar=officer_id)))
    fake_db.on_execute(
        entity_handler(
            InterestRate,
            FakeResult(scalar=InterestRate(months=12, rate=Decimal("18.00"), is_active=True)),
        )
    )
    payload = loan_applications.parse_submission(RAW_SUBMISSION)

    application, uploaded = await loan_applications.submit(
        fake_db,
        applicant,
        payload,
        id_card=make_upload("id.png", PNG_BYTES, "image/png"),
        proof_of_funds=make_upload("statement.pdf"),
        id_card_type=IdCardType.NATIONAL_ID,
        adapter=storage,
    )

    assert uploaded == 2
    assert application.status == Status.PENDING.value
    assert application.version == 1
    assert application.applicant_id == applicant.user_id
    assert application.assigned_officer_id == officer_id
    assert application.interest_rate == Decimal("18.00")
    documents = fake_db.added_of(Document)
    assert [d.document_type for d in documents] == ["ID_CARD", "PROOF_OF_FUNDS"]
    assert documents[0].id_card_type == "NATIONAL_ID"
    assert documents[1].id_card_type is None
    assert len(storage.objects) == 2
    assert [n.user_id for n in fake_db.added_of(Notification)] == [officer_id]
    assert fake_db.added_of(AuditLog)[0].action == "loan_application.submitted"


@pytest.mark.asyncio
async def test_submit_uses_default_rate_and_leaves_unassigned(fake_db, storage):
    payload = loan_applications.parse_submission(RAW_SUBMISSION)

    application, _ = await loan_applications.submit(
        fake_db,
        make_principal(Role.APPLICANT),
        payload,
        id_card=make_upload(),
        proof_of_funds=make_upload("funds.pdf"),
        id_card_type=IdCardType.DRIVERS_LICENSE,
        adapter=storage,
    )

    assert application.assigned_officer_id is None
    assert application.interest_rate == Decimal("15.5")


@pytest.mark.asyncio
async def test_submit_requires_both_documents_and_card_type(fake_db, storage):
    payload = loan_applications.parse_submission(RAW_SUBMISSION)

    with pytest.raises(ValidationError) as excinfo:
        await loan_applications.submit(
            fake_db,
            make_principal(Role.APPLICANT),
            payload,
            id_card=None,
            proof_of_funds=make_upload("funds.pdf"),
            id_card_type=None,
            adapter=storage,
        )

    assert _field_names(excinfo.value) == ["id_card", "id_card_type"]
    assert fake_db.added == []
    assert storage.objects == {}


@pytest.mark.asyncio
async def test_submit_rejects_disallowed_file_type(fake_db, storage):
    payload = loan_applications.parse_submission(RAW_SUBMISSION)

    with pytest.raises(ValidationError) as excinfo:
        await loan_applications.submit(
            fake_db,
            make_principal(Role.APPLICANT),
            payload,
            id_card=make_upload("id.exe", b"MZ\x90\x00", "application/octet-stream"),
            proof_of_funds=make_upload("funds.pdf"),
            id_card_type=IdCardType.NATIONAL_ID,
            adapter=storage,
        )

    assert _field_names(excinfo.value) == ["id_card"]
    assert fake_db.added == []


@pytest.mark.asyncio
async def test_staff_other_than_admin_cannot_submit(fake_db, storage):
    payload = loan_applications.parse_submission(RAW_SUBMISSION)

    with pytest.raises(Forbidden):
        await loan_applications.submit(
            fake_db,
            make_principal(Role.LOAN_OFFICER),
            payload,
            id_card=make_upload(),
            proof_of_funds=make_upload("funds.pdf"),
            id_card_type=IdCardType.NATIONAL_ID,
            adapter=storage,
        )


@pytest.mark.asyncio
async def test_storage_failure_discards_application_and_uploaded_blobs(fake_db):
    adapter = MemoryStorageAdapter(fail_on_put=2)
    payload = loan_applications.parse_submission(RAW_SUBMISSION)

    with pytest.raises(UpstreamFailure) as excinfo:
        await loan_applications.submit(
            fake_db,
            make_principal(Role.APPLICANT),
            payload,
            id_card=make_upload(),
            proof_of_funds=make_upload("funds.pdf"),
            id_card_type=IdCardType.NATIONAL_ID,
            adapter=adapter,
        )

    assert excinfo.value.details == {"stage": "document_upload"}
    assert adapter.objects == {}
    assert len(adapter.deleted) == 1
    application = fake_db.added_of(LoanApplication)[0]
    assert application in fake_db.expunged
    assert all(doc in fake_db.expunged for doc in fake_db.added_of(Document))
    assert fake_db.added_of(Notification) == []


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_applicant_answers_information_request(fake_db):
    applicant = make_principal(Role.APPLICANT)
    officer_id = make_user(role=Role.LOAN_OFFICER).id
    application = make_application(
        applicant_id=applicant.user_id,
        assigned_officer_id=officer_id,
        status=Status.ADDITIONAL_INFO_REQUESTED,
    )
    fake_db.on_get(LoanApplication, application.id, application)

    updated = await loan_applications.transition(
        fake_db,
        applicant,
        application.id,
        Status.UNDER_REVIEW,
        additional_info_provided="Payslip for March attached",
    )

    assert updated.status == Status.UNDER_REVIEW.value
    assert updated.additional_info_provided == "Payslip for March attached"
    officer_notices = [n for n in fake_db.added_of(Notification) if n.user_id == officer_id]
    assert [n.type for n in officer_notices] == ["ADDITIONAL_INFO_PROVIDED"]


@pytest.mark.asyncio
async def test_applicant_must_describe_the_information_provided(fake_db):
    applicant = make_principal(Role.APPLICANT)
    application = make_application(applicant_id=applicant.user_id, status=Status.ADDITIONAL_INFO_REQUESTED)
    fake_db.on_get(LoanApplication, application.id, application)

    with pytest.raises(ValidationError) as excinfo:
        await loan_applications.transition(fake_db, applicant, application.id, Status.UNDER_REVIEW)

    assert _field_names(excinfo.value) == ["additional_info_provided"]


@pytest.mark.asyncio
async def test_decision_transition_is_recorded_as_a_review(fake_db):
    approver = make_principal(Role.APPROVER)
    application = make_application(status=Status.UNDER_REVIEW)
    fake_db.on_get(LoanApplication, application.id, application)
    fake_db.on_execute(entity_handler(LoanApplication, FakeResult(scalar=application)))

    updated = await loan_applications.transition(
        fake_db, approver, application.id, Status.REJECTED, note="Income too low"
    )

    assert updated.status == Status.REJECTED.value
    reviews = fake_db.added_of(LoanReview)
    assert len(reviews) == 1
    assert reviews[0].status == "REJECTED"
    assert reviews[0].comments == "Income too low"


@pytest.mark.asyncio
async def test_officer_cannot_approve_directly(fake_db):
    officer = make_principal(Role.LOAN_OFFICER)
    application = make_application(assigned_officer_id=officer.user_id, status=Status.UNDER_REVIEW)
    fake_db.on_get(LoanApplication, application.id, application)

    with pytest.raises(Forbidden):
        await loan_applications.transition(fake_db, officer, application.id, Status.APPROVED)


@pytest.mark.asyncio
async def test_illegal_jump_is_rejected(fake_db):
    admin = make_principal(Role.SUPER_ADMIN)
    application = make_application(status=Status.PENDING)
    fake_db.on_get(LoanApplication, application.id, application)

    with pytest.raises(InvalidTransition):
        await loan_applications.transition(fake_db, admin, application.id, Status.APPROVED)
    assert fake_db.executed == []


# ---------------------------------------------------------------------------
# Account details and assignment
# ---------------------------------------------------------------------------

ACCOUNT = AccountDetailsUpdate(account_number="0123456789", bank_name="GTBank", bvn="12345678901")


@pytest.mark.asyncio
async def test_applicant_updates_account_details(fake_db):
    applicant = make_principal(Role.APPLICANT)
    application = make_application(applicant_id=applicant.user_id, status=Status.APPROVED)
    fake_db.on_get(LoanApplication, application.id, application)

    updated = await loan_applications.update_account_details(fake_db, applicant, application.id, ACCOUNT)

    assert updated.account_number == "0123456789"
    assert updated.bvn == "12345678901"
    audit = fake_db.added_of(AuditLog)[0]
    assert "bvn" not in audit.new_value


@pytest.mark.asyncio
async def test_account_details_lock_after_disbursement(fake_db):
    applicant = make_principal(Role.APPLICANT)
    application = make_application(applicant_id=applicant.user_id, status=Status.DISBURSED)
    fake_db.on_get(LoanApplication, application.id, application)

    with pytest.raises(InvalidTransition) as excinfo:
        await loan_applications.update_account_details(fake_db, applicant, application.id, ACCOUNT)

    assert excinfo.value.code == "account_locked"


@pytest.mark.asyncio
async def test_other_applicant_cannot_update_account(fake_db):
    application = make_application()
    fake_db.on_get(LoanApplication, application.id, application)

    with pytest.raises(Forbidden):
        await loan_applications.update_account_details(
            fake_db, make_principal(Role.APPLICANT), application.id, ACCOUNT
        )


@pytest.mark.asyncio
async def test_admin_assigns_active_officer(fake_db):
    officer = make_user(role=Role.LOAN_OFFICER)
    application = make_application()
    fake_db.on_get(LoanApplication, application.id, application)
    fake_db.on_get(User, officer.id, officer)

    updated = await loan_applications.assign_officer(
        fake_db, make_principal(Role.SUPER_ADMIN), application.id, officer.id
    )

    assert updated.assigned_officer_id == officer.id
    assert [n.user_id for n in fake_db.added_of(Notification)] == [officer.id]


@pytest.mark.asyncio
async def test_assignment_requires_an_active_officer(fake_db):
    approver = make_user(role=Role.APPROVER)
    application = make_application()
    fake_db.on_get(LoanApplication, application.id, application)
    fake_db.on_get(User, approver.id, approver)

    with pytest.raises(ValidationError):
        await loan_applications.assign_officer(
            fake_db, make_principal(Role.SUPER_ADMIN), application.id, approver.id
        )


@pytest.mark.asyncio
async def test_only_admin_assigns(fake_db):
    with pytest.raises(Forbidden):
        await loan_applications.assign_officer(
            fake_db, make_principal(Role.LOAN_OFFICER), make_application().id, make_user().id
        )
