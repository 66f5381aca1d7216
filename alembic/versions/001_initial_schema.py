"""Initial schema - users, trainings, records, assessments, audit, signatures, governance.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
TS = sa.TIMESTAMP(timezone=True)


def _id() -> sa.Column:
    return sa.Column("id", sa.String(36), primary_key=True)


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("department", sa.Text(), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="Employee"),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("api_key_hash", sa.String(255), unique=True, nullable=True),
        sa.Column("created_at", TS, nullable=False),
    )

    op.create_table(
        "training_masters",
        _id(),
        sa.Column("training_code", sa.String(64), unique=True, nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("training_type", sa.String(40), nullable=False),
        sa.Column("mandatory", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("validity_period", sa.Integer(), nullable=True),
        sa.Column("validity_unit", sa.String(10), nullable=False, server_default="days"),
        sa.Column("status", sa.String(10), nullable=False, server_default="ACTIVE"),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", TS, nullable=False),
    )

    op.create_table(
        "trainings",
        _id(),
        sa.Column("master_id", sa.String(36), sa.ForeignKey("training_masters.id"), nullable=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("revision", sa.String(20), nullable=False, server_default="1.0"),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("document_url", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.UniqueConstraint("code", "revision", name="uq_trainings_code_revision"),
    )

    op.create_table(
        "training_records",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("training_id", sa.String(36), sa.ForeignKey("trainings.id"), nullable=False),
        sa.Column(
            "training_master_id", sa.String(36), sa.ForeignKey("training_masters.id"), nullable=True
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("assigned_date", TS, nullable=False),
        sa.Column("due_date", TS, nullable=False),
        sa.Column("started_date", TS, nullable=True),
        sa.Column("completed_date", TS, nullable=True),
        sa.Column("document_viewed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("document_viewed_at", TS, nullable=True),
        sa.Column("document_acknowledged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("acknowledged_at", TS, nullable=True),
        sa.Column("assessment_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_attempt_date", TS, nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("passed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("result_grade", sa.String(10), nullable=True),
        sa.Column("completed_late", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expiry_date", TS, nullable=True),
        sa.Column("certificate_id", sa.String(80), unique=True, nullable=True),
        sa.Column("certificate_url", sa.String(500), nullable=True),
        sa.Column("assignment_source", sa.String(10), nullable=False, server_default="MANUAL"),
        sa.Column("assigned_by", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("user_id", "training_id", name="uq_training_records_user_training"),
    )
    op.create_index("ix_training_records_status_due", "training_records", ["status", "due_date"])
    op.create_index(
        "ix_training_records_status_expiry", "training_records", ["status", "expiry_date"]
    )

    op.create_table(
        "assessments",
        _id(),
        sa.Column("training_id", sa.String(36), sa.ForeignKey("trainings.id"), unique=True, nullable=False),
        sa.Column("pass_percentage", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )

    op.create_table(
        "assessment_questions",
        _id(),
        sa.Column("assessment_id", sa.String(36), sa.ForeignKey("assessments.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("options", JSON, nullable=False),
        sa.Column("correct_answer", sa.Text(), nullable=False),
    )

    op.create_table(
        "assessment_attempts",
        _id(),
        sa.Column("record_id", sa.String(36), sa.ForeignKey("training_records.id"), nullable=False),
        sa.Column("training_id", sa.String(36), sa.ForeignKey("trainings.id"), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assessment_id", sa.String(36), sa.ForeignKey("assessments.id"), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("answers", JSON, nullable=False),
        sa.Column("correct_count", sa.Integer(), nullable=False),
        sa.Column("total_questions", sa.Integer(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("result", sa.String(4), nullable=False),
        sa.Column("grade", sa.String(10), nullable=True),
        sa.Column("attempted_at", TS, nullable=False),
        sa.UniqueConstraint("record_id", "attempt_number", name="uq_attempts_record_number"),
    )

    op.create_table(
        "audit_log_entries",
        _id(),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("actor_id", sa.String(36), nullable=True),
        sa.Column("user_id", sa.String(36), nullable=True),
        sa.Column("training_id", sa.String(36), nullable=True),
        sa.Column("training_record_id", sa.String(36), nullable=True),
        sa.Column("assessment_id", sa.String(36), nullable=True),
        sa.Column("previous_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=True),
        sa.Column("source", sa.String(10), nullable=False),
        sa.Column("metadata", JSON, nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("timestamp", TS, nullable=False),
    )
    op.create_index("ix_audit_timestamp", "audit_log_entries", ["timestamp"])
    op.create_index("ix_audit_user_timestamp", "audit_log_entries", ["user_id", "timestamp"])
    op.create_index("ix_audit_training_timestamp", "audit_log_entries", ["training_id", "timestamp"])
    op.create_index("ix_audit_event_timestamp", "audit_log_entries", ["event_type", "timestamp"])

    op.create_table(
        "electronic_signatures",
        _id(),
        sa.Column("signer_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action_type", sa.String(60), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("signed_at", TS, nullable=False),
    )

    op.create_table(
        "governance_configs",
        _id(),
        sa.Column("version", sa.Integer(), unique=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("config", JSON, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rolled_back_from", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "signature_id",
            sa.String(36),
            sa.ForeignKey("electronic_signatures.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column("created_at", TS, nullable=False),
    )
    # At most one active version.
    op.create_index(
        "uq_governance_single_active",
        "governance_configs",
        ["is_active"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "training_certificates",
        _id(),
        sa.Column("certificate_id", sa.String(80), unique=True, nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("training_id", sa.String(36), sa.ForeignKey("trainings.id"), nullable=False),
        sa.Column("record_id", sa.String(36), sa.ForeignKey("training_records.id"), nullable=False),
        sa.Column("issue_date", TS, nullable=False),
        sa.Column("expiry_date", TS, nullable=True),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("result_grade", sa.String(10), nullable=False),
        sa.Column("certificate_url", sa.String(500), nullable=False),
        sa.UniqueConstraint("user_id", "training_id", name="uq_certificates_user_training"),
    )

    op.create_table(
        "notifications",
        _id(),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("context", JSON, nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", TS, nullable=False),
    )

    op.create_table(
        "reminder_markers",
        _id(),
        sa.Column("record_id", sa.String(36), sa.ForeignKey("training_records.id"), nullable=False),
        sa.Column("reminder_type", sa.String(40), nullable=False),
        sa.Column("target_date", sa.String(10), nullable=False),
        sa.Column("sent_at", TS, nullable=False),
        sa.UniqueConstraint(
            "record_id", "reminder_type", "target_date", name="uq_reminder_markers_once"
        ),
    )


def downgrade() -> None:
    op.drop_table("reminder_markers")
    op.drop_table("notifications")
    op.drop_table("training_certificates")
    op.drop_index("uq_governance_single_active", table_name="governance_configs")
    op.drop_table("governance_configs")
    op.drop_table("electronic_signatures")
    op.drop_index("ix_audit_event_timestamp", table_name="audit_log_entries")
    op.drop_index("ix_audit_training_timestamp", table_name="audit_log_entries")
    op.drop_index("ix_audit_user_timestamp", table_name="audit_log_entries")
    op.drop_index("ix_audit_timestamp", table_name="audit_log_entries")
    op.drop_table("audit_log_entries")
    op.drop_table("assessment_attempts")
    op.drop_table("assessment_questions")
    op.drop_table("assessments")
    op.drop_index("ix_training_records_status_expiry", table_name="training_records")
    op.drop_index("ix_training_records_status_due", table_name="training_records")
    op.drop_table("training_records")
    op.drop_table("trainings")
    op.drop_table("training_masters")
    op.drop_table("users")
