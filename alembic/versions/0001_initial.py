"""Initial LogForge schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list[sa.Column]:
    """Return fresh audit timestamp columns."""
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create tenant, raw, canonical, dead-letter, metric, and run tables."""
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column("external_api_base_url", sa.String(length=500), nullable=False),
        sa.Column("api_key", sa.String(length=200), nullable=False),
        *_audit_columns(),
    )
    op.create_table(
        "raw_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("ingested_at", sa.DateTime(timezone=True), nullable=False),
        *_audit_columns(),
    )
    op.create_index("ix_raw_logs_tenant_occurred", "raw_logs", ["tenant_id", "occurred_at"])
    op.create_table(
        "normalized_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "raw_log_id", sa.Integer(), sa.ForeignKey("raw_logs.id"), nullable=False, unique=True
        ),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("event_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.String(length=100), nullable=True),
        sa.Column("session_id", sa.String(length=150), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        *_audit_columns(),
        sa.CheckConstraint("length(event_type) > 0", name="ck_normalized_events_event_type"),
    )
    op.create_index(
        "ix_normalized_events_tenant_time", "normalized_events", ["tenant_id", "event_time"]
    )
    op.create_index("ix_normalized_events_event_type", "normalized_events", ["event_type"])
    op.create_table(
        "failed_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("raw_log_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.String(length=500), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=True),
        *_audit_columns(),
    )
    op.create_table(
        "tenant_daily_metrics",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("event_date", sa.Date(), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("event_count", sa.Integer(), nullable=False),
        sa.Column("amount_sum", sa.Numeric(18, 2), nullable=False),
        *_audit_columns(),
        sa.UniqueConstraint(
            "tenant_id", "event_date", "event_type", name="uq_tenant_daily_metrics_key"
        ),
        sa.CheckConstraint("event_count >= 0", name="ck_tenant_daily_metrics_count"),
    )
    op.create_table(
        "pipeline_runs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("window_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_to", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_audit_columns(),
    )
    op.create_table(
        "pipeline_stage_runs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("run_id", sa.Uuid(), sa.ForeignKey("pipeline_runs.id"), nullable=False),
        sa.Column("stage", sa.String(length=9), nullable=False),
        sa.Column("status", sa.String(length=7), nullable=False),
        sa.Column("read_count", sa.Integer(), nullable=False),
        sa.Column("write_count", sa.Integer(), nullable=False),
        sa.Column("skip_count", sa.Integer(), nullable=False),
        sa.Column("failure_count", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        *_audit_columns(),
    )


def downgrade() -> None:
    """Drop all LogForge tables."""
    op.drop_table("pipeline_stage_runs")
    op.drop_table("pipeline_runs")
    op.drop_table("tenant_daily_metrics")
    op.drop_table("failed_logs")
    op.drop_index("ix_normalized_events_event_type", table_name="normalized_events")
    op.drop_index("ix_normalized_events_tenant_time", table_name="normalized_events")
    op.drop_table("normalized_events")
    op.drop_index("ix_raw_logs_tenant_occurred", table_name="raw_logs")
    op.drop_table("raw_logs")
    op.drop_table("tenants")
