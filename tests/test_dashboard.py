from datetime import datetime, timezone
from decimal import Decimal

import pytest

from loandesk.core.permissions import Role
from loandesk.schemas.common import LoanApplicationStatus as Status
from loandesk.services import dashboard

from tests.conftest import FakeResult, make_application, make_principal, sequence_handler


@pytest.mark.parametrize(
    ("amount", "band"),
    [
        ("500001", "High"),
        ("500000", "Medium"),
        ("200001", "Medium"),
        ("200000", "Low"),
        (Decimal("1000"), "Low"),
    ],
)
def test_risk_band_thresholds(amount, band):
    assert dashboard.risk_band(amount) == band


def test_approval_rate_counts_downstream_outcomes_as_approved():
    counts = {"APPROVED": 1, "DISBURSED": 2, "CLOSED": 1, "REJECTED": 4, "PENDING": 9}

    assert dashboard.approval_rate(counts) == 50.0


def test_approval_rate_without_decisions_is_zero():
    assert dashboard.approval_rate({"PENDING": 3}) == 0.0


@pytest.mark.asyncio
async def test_admin_dashboard_aggregates(fake_db):
    fake_db.on_execute(
        sequence_handler(
            [
                FakeResult(rows=[(10, 8)]),
                FakeResult(rows=[("PENDING", 3), ("APPROVED", 1), ("REJECTED", 1)]),
                FakeResult(rows=[(Decimal("250000"), Decimal("50000"), 2, 1)]),
            ]
        )
    )

    result = await dashboard.build_admin_dashboard(fake_db)

    assert result.total_users == 10
    assert result.active_users == 8
    assert result.total_applications == 5
    assert result.approval_rate == 50.0
    assert result.total_disbursed == Decimal("250000")
    assert {c.status: c.count for c in result.status_counts}[Status.PENDING] == 3
    assert len(result.status_counts) == len(Status)


@pytest.mark.asyncio
async def test_officer_dashboard_lists_largest_pending_first(fake_db):
    officer = make_principal(Role.LOAN_OFFICER)
    big = make_application(
        assigned_officer_id=officer.user_id,
        amount=Decimal("750000"),
        submitted_at=datetime(2026, 3, 2, tzinfo=timezone.utc),
    )
    fake_db.on_execute(
        sequence_handler(
            [
                FakeResult(rows=[("PENDING", 1), ("UNDER_REVIEW", 2), ("APPROVED", 4)]),
                FakeResult(rows=[(big, "Chidi Okeke")]),
            ]
        )
    )

    result = await dashboard.build_officer_dashboard(fake_db, officer)

    assert result.assigned_total == 7
    assert result.awaiting_action == 3
    assert result.top_pending[0].applicant_name == "Chidi Okeke"
    assert result.top_pending[0].risk == "High"
