from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from loandesk.core.permissions import Role
from loandesk.models.audit_log import AuditLog
from loandesk.services import audit

from tests.conftest import FakeResult, make_application, make_principal, make_user, sequence_handler


def _entry(**overrides) -> AuditLog:
    defaults = dict(
        id=uuid4(),
        actor_id=None,
        action="loan_application.status_changed",
        resource_type="loan_application",
        resource_id=str(uuid4()),
        old_value={"status": "PENDING"},
        new_value={"status": "UNDER_REVIEW"},
        changes={"status": {"from": "PENDING", "to": "UNDER_REVIEW"}},
        summary="loan_application.status_changed: status",
        ip_address="127.0.0.1",
        created_at=datetime(2026, 3, 2, tzinfo=timezone.utc),
    )
    defaults.update(overrides)
    return AuditLog(**defaults)


def test_snapshot_drops_identifiers_and_stringifies_money():
    application = make_application(bvn="12345678901", nin="98765432109", amount=Decimal("100000.00"))

    snapshot = audit.model_snapshot(application)

    assert "bvn" not in snapshot and "nin" not in snapshot
    assert snapshot["amount"] == "100000.00"
    assert snapshot["id"] == str(application.id)


@pytest.mark.asyncio
async def test_audit_entry_records_changes_and_actor(fake_db):
    principal = make_principal(Role.LOAN_OFFICER)

    entry = await audit.record_audit_log(
        fake_db,
        principal,
        action="loan_application.status_changed",
        resource_type="loan_application",
        resource_id=uuid4(),
        old_value={"status": "PENDING", "version": 1},
        new_value={"status": "UNDER_REVIEW", "version": 2},
    )

    assert entry is fake_db.added_of(AuditLog)[0]
    assert entry.actor_id == principal.user_id
    assert entry.changes == {
        "status": {"from": "PENDING", "to": "UNDER_REVIEW"},
        "version": {"from": 1, "to": 2},
    }
    assert entry.summary == "loan_application.status_changed: status, version"


@pytest.mark.asyncio
async def test_failed_audit_savepoint_does_not_raise(fake_db):
    fake_db.fail_savepoints = True

    entry = await audit.record_audit_log(
        fake_db,
        None,
        action="user.created",
        resource_type="user",
        resource_id=uuid4(),
        new_value={"email": "a@example.com"},
    )

    assert entry is None


@pytest.mark.asyncio
async def test_audit_listing_pairs_rows_with_actors(fake_db):
    actor = make_user(role=Role.APPROVER)
    rows = [(_entry(actor_id=actor.id), actor), (_entry(), None)]
    fake_db.on_execute(sequence_handler([FakeResult(scalar=7), FakeResult(rows=rows)]))

    items, total = await audit.list_audit_logs(fake_db, page=2, limit=2, action_prefix="loan_application.")

    assert total == 7
    assert [actor_ for _, actor_ in items] == [actor, None]
    assert len(fake_db.executed) == 2


def test_audit_route_is_super_admin_only(as_user, applicant, admin, fake_db):
    client = as_user(applicant)
    assert client.get("/api/v1/admin/audit-logs").status_code == 403

    fake_db.on_execute(
        sequence_handler([FakeResult(scalar=1), FakeResult(rows=[(_entry(actor_id=admin.id), admin)])])
    )
    client = as_user(admin)
    response = client.get("/api/v1/admin/audit-logs", params={"limit": 10})

    assert response.status_code == 200
    body = response.json()["data"]
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}
    assert body["items"][0]["actor"]["email"] == admin.email
    assert body["items"][0]["changes"]["status"]["to"] == "UNDER_REVIEW"
