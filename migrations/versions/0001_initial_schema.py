"""users, loan applications, documents, reviews, loans, repayments, rates, notifications, audit logs

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

ROLES = "'APPLICANT', 'LOAN_OFFICER', 'APPROVER', 'SUPER_ADMIN'"
APPLICATION_STATUSES = (
    "'PENDING', 'UNDER_REVIEW', 'ADDITIONAL_INFO_REQUESTED', 'APPROVED', 'REJECTED', 'DISBURSED', 'CLOSED'"
)
EMPLOYMENT_STATUSES = "'EMPLOYED', 'SELF_EMPLOYED', 'UNEMPLOYED', 'RETIRED', 'STUDENT'"
DOCUMENT_TYPES = (
    "'ID_CARD', 'PROOF_OF_FUNDS', 'BANK_STATEMENT', 'PASSPORT', 'PAY_SLIP', 'UTILITY_BILL', "
    "'BUSINESS_REGISTRATION', 'EMPLOYMENT_VERIFICATION', 'INCOME_STATEMENT', 'PROOF_OF_ADDRESS', "
    "'COLLATERAL_DOCUMENT', 'OTHER'"
)
ID_CARD_TYPES = "'NATIONAL_ID', 'DRIVERS_LICENSE', 'INTERNATIONAL_PASSPORT', 'VOTERS_CARD'"
DOCUMENT_STATUSES = "'PENDING', 'APPROVED', 'REJECTED'"
REVIEW_STATUSES = "'APPROVED', 'REJECTED', 'REQUEST_INFO'"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=50), nullable=True),
        sa.Column("address", sa.String(length=500), nullable=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(f"role IN ({ROLES})", name="ck_users_role"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "loan_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("assigned_officer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("purpose", sa.String(length=500), nullable=False),
        sa.Column("duration_months", sa.Integer(), nullable=False),
        sa.Column("interest_rate", sa.Numeric(6, 2), nullable=False),
        sa.Column("monthly_income", sa.Numeric(18, 2), nullable=False),
        sa.Column("employment_status", sa.String(length=30), nullable=False),
        sa.Column("employer_name", sa.String(length=255), nullable=True),
        sa.Column("work_experience", sa.Integer(), nullable=True),
        sa.Column("phone_number", sa.String(length=50), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=False),
        sa.Column("account_number", sa.String(length=20), nullable=True),
        sa.Column("bank_name", sa.String(length=120), nullable=True),
        sa.Column("bvn", sa.LargeBinary(), nullable=True),
        sa.Column("nin", sa.LargeBinary(), nullable=True),
        sa.Column("additional_info_requested", sa.Text(), nullable=True),
        sa.Column("additional_info_provided", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_loan_app_amount_positive"),
        sa.CheckConstraint("duration_months > 0", name="ck_loan_app_duration_positive"),
        sa.CheckConstraint("monthly_income > 0", name="ck_loan_app_income_positive"),
        sa.CheckConstraint("interest_rate >= 0", name="ck_loan_app_rate_nonneg"),
        sa.CheckConstraint("version >= 1", name="ck_loan_app_version_positive"),
        sa.CheckConstraint(f"status IN ({APPLICATION_STATUSES})", name="ck_loan_app_status"),
        sa.CheckConstraint(
            f"employment_status IN ({EMPLOYMENT_STATUSES})", name="ck_loan_app_employment_status"
        ),
        sa.ForeignKeyConstraint(["applicant_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["assigned_officer_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_loan_applications_applicant_id", "loan_applications", ["applicant_id"])
    op.create_index(
        "ix_loan_applications_assigned_officer_id", "loan_applications", ["assigned_officer_id"]
    )
    op.create_index("ix_loan_applications_status", "loan_applications", ["status"])

    op.create_table(
        "documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("document_type", sa.String(length=50), nullable=False),
        sa.Column("id_card_type", sa.String(length=40), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_url", sa.String(length=1024), nullable=False),
        sa.Column("storage_provider", sa.String(length=32), nullable=False),
        sa.Column("storage_object_key", sa.String(length=1024), nullable=False),
        sa.Column("content_type", sa.String(length=100), nullable=True),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("uploaded_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reviewed_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(f"document_type IN ({DOCUMENT_TYPES})", name="ck_document_type"),
        sa.CheckConstraint(f"status IN ({DOCUMENT_STATUSES})", name="ck_document_status"),
        sa.CheckConstraint(
            f"id_card_type IS NULL OR id_card_type IN ({ID_CARD_TYPES})", name="ck_document_id_card_type"
        ),
        sa.CheckConstraint("size_bytes IS NULL OR size_bytes >= 0", name="ck_document_size_nonneg"),
        sa.ForeignKeyConstraint(["application_id"], ["loan_applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["reviewed_by_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_documents_application_id", "documents", ["application_id"])

    op.create_table(
        "loan_reviews",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reviewer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reviewer_role", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("recommendation", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(f"status IN ({REVIEW_STATUSES})", name="ck_loan_review_status"),
        sa.CheckConstraint(f"reviewer_role IN ({ROLES})", name="ck_loan_review_reviewer_role"),
        sa.ForeignKeyConstraint(["application_id"], ["loan_applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewer_id"], ["users.id"], ondelete="RESTRICT"),
    )
    op.create_index("ix_loan_reviews_application_id", "loan_reviews", ["application_id"])

    op.create_table(
        "loans",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("approved_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("disbursement_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("interest_rate", sa.Numeric(6, 2), nullable=False),
        sa.Column("duration_months", sa.Integer(), nullable=False),
        sa.Column("monthly_payment", sa.Numeric(18, 6), nullable=False),
        sa.Column("total_repayment", sa.Numeric(18, 6), nullable=False),
        sa.Column("total_repaid", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("next_payment_due", sa.Date(), nullable=True),
        sa.Column("is_fully_paid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "disbursement_date", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("bank_account", sa.String(length=20), nullable=True),
        sa.Column("bank_name", sa.String(length=120), nullable=True),
        sa.Column("created_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("approved_amount > 0", name="ck_loan_approved_positive"),
        sa.CheckConstraint("disbursement_amount > 0", name="ck_loan_disbursement_positive"),
        sa.CheckConstraint("total_repaid >= 0", name="ck_loan_total_repaid_nonneg"),
        sa.CheckConstraint("duration_months > 0", name="ck_loan_duration_positive"),
        sa.CheckConstraint(
            "(is_fully_paid AND closed_at IS NOT NULL AND next_payment_due IS NULL)"
            " OR (NOT is_fully_paid AND closed_at IS NULL AND next_payment_due IS NOT NULL)",
            name="ck_loan_lifecycle",
        ),
        sa.ForeignKeyConstraint(["application_id"], ["loan_applications.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("application_id", name="uq_loans_application_id"),
    )

    op.create_table(
        "loan_repayments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("loan_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("reference", sa.String(length=120), nullable=True),
        sa.Column("recorded_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_loan_repayment_amount_positive"),
        sa.ForeignKeyConstraint(["loan_id"], ["loans.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recorded_by_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_loan_repayments_loan_id", "loan_repayments", ["loan_id"])

    op.create_table(
        "interest_rates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("months", sa.Integer(), nullable=False),
        sa.Column("rate", sa.Numeric(6, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("admin_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("months BETWEEN 1 AND 60", name="ck_interest_rate_months_range"),
        sa.CheckConstraint("rate >= 0 AND rate <= 100", name="ck_interest_rate_rate_range"),
        sa.ForeignKeyConstraint(["admin_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "uq_interest_rates_active_months",
        "interest_rates",
        ["months"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["application_id"], ["loan_applications.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_application_id", "notifications", ["application_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("resource_type", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("summary", sa.String(length=500), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_notifications_application_id", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("uq_interest_rates_active_months", table_name="interest_rates")
    op.drop_table("interest_rates")
    op.drop_index("ix_loan_repayments_loan_id", table_name="loan_repayments")
    op.drop_table("loan_repayments")
    op.drop_table("loans")
    op.drop_index("ix_loan_reviews_application_id", table_name="loan_reviews")
    op.drop_table("loan_reviews")
    op.drop_index("ix_documents_application_id", table_name="documents")
    op.drop_table("documents")
    op.drop_index("ix_loan_applications_status", table_name="loan_applications")
    op.drop_index("ix_loan_applications_assigned_officer_id", table_name="loan_applications")
    op.drop_index("ix_loan_applications_applicant_id", table_name="loan_applications")
    op.drop_table("loan_applications")
    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
