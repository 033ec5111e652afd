"""Initial database schema

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # State portals with sealed credentials
    op.create_table(
        "state_portal_configs",
        sa.Column("portal_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("state_code", sa.String(2), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("channel_type", sa.String(20), nullable=False),
        sa.Column("portal_url", sa.Text, nullable=True),
        sa.Column("encrypted_credentials", sa.Text, nullable=True),
        sa.Column("mfa_type", sa.String(10), nullable=False, server_default="none"),
        sa.Column("encrypted_mfa_secret", sa.Text, nullable=True),
        sa.Column("encrypted_backup_codes", sa.Text, nullable=True),
        sa.Column("encrypted_challenge_questions", sa.Text, nullable=True),
        sa.Column("rotation_frequency_days", sa.Integer, nullable=False, server_default="90"),
        sa.Column("last_rotated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_rotation_due", sa.DateTime(timezone=True), nullable=True),
        sa.Column("credential_expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rotation_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("disabled_reason", sa.Text, nullable=True),
        sa.Column("channel_config", postgresql.JSONB, nullable=False, server_default="{}"),
        *_timestamps(),
    )
    op.create_index("idx_portal_next_rotation", "state_portal_configs", ["next_rotation_due"])

    # Append-only rotation history (hashes only)
    op.create_table(
        "credential_rotation_history",
        sa.Column("history_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "portal_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("state_portal_configs.portal_id"),
            nullable=False,
        ),
        sa.Column("rotated_by", sa.String(255), nullable=False),
        sa.Column("rotation_type", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("old_credential_hash", sa.String(64), nullable=True),
        sa.Column("new_credential_hash", sa.String(64), nullable=False),
        sa.Column("mfa_changed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "rotated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "idx_rotation_portal", "credential_rotation_history", ["portal_id", "rotated_at"]
    )

    # Submission jobs
    op.create_table(
        "submission_jobs",
        sa.Column("job_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("employer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("state_code", sa.String(2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("record_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("attempt_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("error_kind", sa.String(20), nullable=True),
        sa.Column("confirmation_number", sa.String(255), nullable=True),
        sa.Column("payload_digest", sa.String(64), nullable=True),
        sa.Column("screening_ids", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "idx_job_pair_status", "submission_jobs", ["employer_id", "state_code", "status"]
    )
    op.create_index("idx_job_status_next_attempt", "submission_jobs", ["status", "next_attempt_at"])
    op.create_index(
        "uq_job_pair_processing",
        "submission_jobs",
        ["employer_id", "state_code"],
        unique=True,
        postgresql_where=sa.text("status = 'processing'"),
    )

    # Agency determinations
    op.create_table(
        "determination_records",
        sa.Column("determination_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("employee_id", sa.String(64), nullable=False),
        sa.Column("screening_id", sa.String(64), nullable=True),
        sa.Column("ssn_last4", sa.String(4), nullable=True),
        sa.Column("state_code", sa.String(2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("certification_number", sa.String(100), nullable=True),
        sa.Column("credit_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="capture"),
        sa.Column(
            "captured_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "idx_determination_employee_state",
        "determination_records",
        ["employee_id", "state_code", "captured_at"],
    )

    # Audit log
    op.create_table(
        "audit_events",
        sa.Column("audit_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False, server_default="info"),
        sa.Column("actor", sa.String(255), nullable=False, server_default="system"),
        sa.Column("correlation_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("resource_id", sa.String(255), nullable=True),
        sa.Column("event_data", postgresql.JSONB, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_audit_event_type", "audit_events", ["event_type"])
    op.create_index("idx_audit_resource", "audit_events", ["resource_type", "resource_id"])
    op.create_index("idx_audit_created", "audit_events", ["created_at"])
    op.create_index("idx_audit_correlation", "audit_events", ["correlation_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("determination_records")
    op.drop_table("submission_jobs")
    op.drop_table("credential_rotation_history")
    op.drop_table("state_portal_configs")
