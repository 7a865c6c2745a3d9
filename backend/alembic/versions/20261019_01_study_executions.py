"""Introduce study execution tracking tables."""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: str | Sequence[str] | None = None
branch_labels = None
depends_on = None


def _now():
    return sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    op.create_table(
        "study_executions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("study_id", sa.String(), nullable=True),
        sa.Column("study_name", sa.String(), nullable=False),
        sa.Column("protocol_id", sa.String(), nullable=True),
        sa.Column("protocol_name", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("operator_id", sa.String(), nullable=False),
        sa.Column("operator_name", sa.String(), nullable=True),
        sa.Column("operator_position", sa.String(), nullable=True),
        sa.Column("created_by_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="NOT_STARTED"),
        sa.Column("progress", sa.Float(), nullable=False, server_default="0"),
        sa.Column("current_step", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_steps", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("paused_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("estimated_duration", sa.String(), nullable=True),
        sa.Column("actual_duration", sa.String(), nullable=True),
        sa.Column("environment", sa.JSON(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("test_conditions", sa.JSON(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("overall_status", sa.String(length=32), nullable=False, server_default="PENDING"),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("recommendations", sa.Text(), nullable=True),
        sa.Column("passed_samples", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_samples", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completion_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=_now()),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_study_executions_study_id", "study_executions", ["study_id"])
    op.create_index("ix_study_executions_operator_id", "study_executions", ["operator_id"])
    op.create_index("ix_study_executions_status", "study_executions", ["status"])

    op.create_table(
        "study_execution_samples",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("execution_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("study_executions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sample_number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("material", sa.String(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="PENDING"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quality", sa.String(length=32), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("estimated_time", sa.String(), nullable=True),
        sa.Column("actual_time", sa.String(), nullable=True),
        sa.Column("operator_id", sa.String(), nullable=True),
        sa.Column("operator_name", sa.String(), nullable=True),
        sa.Column("anomalies", sa.JSON(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("properties", sa.JSON(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("conditions", sa.JSON(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("batch_number", sa.String(), nullable=True),
        sa.Column("lot_number", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=_now()),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("execution_id", "sample_number", name="uq_study_execution_samples_number"),
    )
    op.create_index("ix_study_execution_samples_execution_id", "study_execution_samples", ["execution_id"])

    op.create_table(
        "study_measurements",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("execution_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("study_executions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sample_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("study_execution_samples.id", ondelete="CASCADE"), nullable=False),
        sa.Column("step_id", sa.String(), nullable=False),
        sa.Column("measurement_id", sa.String(), nullable=False),
        sa.Column("value", sa.Float(), nullable=True),
        sa.Column("text_value", sa.Text(), nullable=True),
        sa.Column("unit", sa.String(), nullable=True),
        sa.Column("is_valid", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("quality", sa.String(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("uncertainty", sa.Float(), nullable=True),
        sa.Column("operator", sa.String(), nullable=False),
        sa.Column("equipment", sa.String(), nullable=True),
        sa.Column("method", sa.String(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=False), nullable=False, server_default=_now()),
        sa.Column("duration", sa.String(), nullable=True),
        sa.Column("conditions", sa.JSON(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("flags", sa.JSON(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("raw_data", sa.JSON(), nullable=True),
        sa.Column("calculated_data", sa.JSON(), nullable=True),
        sa.Column("idempotency_key", sa.String(), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sample_id", "idempotency_key", name="uq_study_measurements_idempotency"),
    )
    op.create_index("ix_study_measurements_execution_id", "study_measurements", ["execution_id"])
    op.create_index("ix_study_measurements_sample_id", "study_measurements", ["sample_id"])

    op.create_table(
        "study_exports",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("execution_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("study_executions.id", ondelete="SET NULL"), nullable=True),
        sa.Column("study_id", sa.String(), nullable=True),
        sa.Column("format", sa.String(length=32), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("filename", sa.String(), nullable=False),
        sa.Column("filepath", sa.String(), nullable=True),
        sa.Column("size", sa.Integer(), nullable=True),
        sa.Column("include_charts", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("include_samples", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("include_raw_data", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("template", sa.String(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="PENDING"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("requested_at", sa.DateTime(timezone=False), nullable=False, server_default=_now()),
        sa.Column("started_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("requested_by_id", sa.String(), nullable=False),
        sa.Column("requested_by", sa.String(), nullable=True),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_download_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("errors", sa.JSON(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_study_exports_execution_id", "study_exports", ["execution_id"])
    op.create_index("ix_study_exports_status", "study_exports", ["status"])

    op.create_table(
        "study_execution_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("execution_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("study_executions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_study_execution_events_execution_id", "study_execution_events", ["execution_id"])


def downgrade() -> None:
    op.drop_index("ix_study_execution_events_execution_id", table_name="study_execution_events")
    op.drop_table("study_execution_events")
    op.drop_index("ix_study_exports_status", table_name="study_exports")
    op.drop_index("ix_study_exports_execution_id", table_name="study_exports")
    op.drop_table("study_exports")
    op.drop_index("ix_study_measurements_sample_id", table_name="study_measurements")
    op.drop_index("ix_study_measurements_execution_id", table_name="study_measurements")
    op.drop_table("study_measurements")
    op.drop_index("ix_study_execution_samples_execution_id", table_name="study_execution_samples")
    op.drop_table("study_execution_samples")
    op.drop_index("ix_study_executions_status", table_name="study_executions")
    op.drop_index("ix_study_executions_operator_id", table_name="study_executions")
    op.drop_index("ix_study_executions_study_id", table_name="study_executions")
    op.drop_table("study_executions")
