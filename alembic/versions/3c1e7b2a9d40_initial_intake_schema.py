"""initial intake schema

Revision ID: 3c1e7b2a9d40
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3c1e7b2a9d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _job_cost_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "job_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("ledger_job.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "reviewer_account",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("display_name", sa.String(length=200), nullable=True),
        sa.Column("password_hash", sa.String(length=200), nullable=False),
        sa.Column("role", sa.String(length=8), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_reviewer_account_email", "reviewer_account", ["email"], unique=True)

    op.create_table(
        "ledger_job",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("job_address", sa.String(length=300), nullable=False),
        sa.Column("client_name", sa.String(length=200), nullable=True),
        sa.Column("project_name", sa.String(length=200), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
    )
    op.create_index("ix_ledger_job_job_address", "ledger_job", ["job_address"])
    op.create_index("ix_ledger_job_is_deleted", "ledger_job", ["is_deleted"])

    op.create_table(
        "ledger_material",
        *_job_cost_columns(),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("supplier", sa.String(length=200), nullable=False),
        sa.Column("invoice_date", sa.String(length=10), nullable=True),
    )
    op.create_table(
        "ledger_sub_trade",
        *_job_cost_columns(),
        sa.Column("trade", sa.String(length=200), nullable=False),
        sa.Column("contractor", sa.String(length=200), nullable=False),
        sa.Column("invoice_date", sa.String(length=10), nullable=True),
    )
    op.create_table(
        "ledger_other_cost",
        *_job_cost_columns(),
        sa.Column("description", sa.Text(), nullable=False),
    )
    op.create_table(
        "ledger_tip_fee",
        *_job_cost_columns(),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("cartage_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
    )
    for table in ("ledger_material", "ledger_sub_trade", "ledger_other_cost", "ledger_tip_fee"):
        op.create_index(f"ix_{table}_job_id", table, ["job_id"])

    op.create_table(
        "intake_processing_log",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("message_id", sa.String(length=998), nullable=False),
        sa.Column("from_address", sa.String(length=320), nullable=False),
        sa.Column("to_address", sa.String(length=320), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("attachment_count", sa.Integer(), nullable=False),
        sa.Column("processed_count", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column(
            "matched_job_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("ledger_job.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_intake_processing_log_message_id", "intake_processing_log", ["message_id"]
    )
    op.create_index("ix_intake_processing_log_status", "intake_processing_log", ["status"])
    op.create_index(
        "uq_intake_processing_log_completed_message",
        "intake_processing_log",
        ["message_id"],
        unique=True,
        sqlite_where=sa.text("status = 'COMPLETED'"),
        postgresql_where=sa.text("status = 'COMPLETED'"),
    )

    op.create_table(
        "review_pending_document",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column(
            "processing_log_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("intake_processing_log.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("filename", sa.String(length=512), nullable=False),
        sa.Column("mime_type", sa.String(length=200), nullable=False),
        sa.Column("raw_attachment", sa.LargeBinary(), nullable=False),
        sa.Column("vendor", sa.String(length=200), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("category", sa.String(length=11), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("raw_extracted_fields", sa.JSON(), nullable=False),
        sa.Column("source_subject", sa.Text(), nullable=False),
        sa.Column("source_from_address", sa.String(length=320), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column(
            "resolved_job_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("ledger_job.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("resolution_score", sa.Float(), nullable=True),
        sa.Column(
            "committed_job_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("ledger_job.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("committed_category", sa.String(length=11), nullable=True),
        sa.Column("committed_record_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "decided_by_reviewer_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("reviewer_account.id"),
            nullable=True,
        ),
        sa.Column("archive_key", sa.String(length=1024), nullable=True),
    )
    op.create_index(
        "ix_review_pending_document_processing_log_id",
        "review_pending_document",
        ["processing_log_id"],
    )
    op.create_index("ix_review_pending_document_status", "review_pending_document", ["status"])

    op.create_table(
        "audit_event",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "document_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("review_pending_document.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "actor_reviewer_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("reviewer_account.id"),
            nullable=True,
        ),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_event_document_id", "audit_event", ["document_id"])
    op.create_index("ix_audit_event_actor_reviewer_id", "audit_event", ["actor_reviewer_id"])
    op.create_index("ix_audit_event_event_type", "audit_event", ["event_type"])


def downgrade() -> None:
    op.drop_table("audit_event")
    op.drop_table("review_pending_document")
    op.drop_index(
        "uq_intake_processing_log_completed_message", table_name="intake_processing_log"
    )
    op.drop_table("intake_processing_log")
    for table in ("ledger_tip_fee", "ledger_other_cost", "ledger_sub_trade", "ledger_material"):
        op.drop_table(table)
    op.drop_table("ledger_job")
    op.drop_table("reviewer_account")
