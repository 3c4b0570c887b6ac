"""Data models for the LogForge ingest pipeline."""

from datetime import datetime
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Session, declarative_base

from time_utils import ensure_aware, to_utc, utc_now

# SQLAlchemy base
Base = declarative_base()

TenantStatusEnum = Enum(
    "active",
    "inactive",
    name="tenant_status",
    native_enum=False,
)
PipelineRunStatusEnum = Enum(
    "running",
    "completed",
    "completed_with_skips",
    "failed",
    name="pipeline_run_status",
    native_enum=False,
)
PipelineStageEnum = Enum(
    "fetch",
    "normalize",
    "aggregate",
    name="pipeline_stage",
    native_enum=False,
)
StageRunStatusEnum = Enum(
    "running",
    "success",
    "failed",
    name="stage_run_status",
    native_enum=False,
)

# Money columns share one precision.
MONEY = Numeric(18, 2)


class AuditMixin:
    """Creation and last-update timestamps maintained by the session listener."""

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class Tenant(AuditMixin, Base):
    """Tenant connection metadata; read-only to the pipeline."""

    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    status = Column(TenantStatusEnum, nullable=False, default="active")
    external_api_base_url = Column(String(500), nullable=False)
    api_key = Column(String(200), nullable=False)


class RawLog(AuditMixin, Base):
    """Source payload persisted verbatim alongside its ingestion timestamp."""

    __tablename__ = "raw_logs"
    __table_args__ = (Index("ix_raw_logs_tenant_occurred", "tenant_id", "occurred_at"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    payload_json = Column(Text, nullable=False)
    ingested_at = Column(DateTime(timezone=True), nullable=False)


class NormalizedEvent(AuditMixin, Base):
    """Canonical event derived from exactly one raw log."""

    __tablename__ = "normalized_events"
    __table_args__ = (
        Index("ix_normalized_events_tenant_time", "tenant_id", "event_time"),
        Index("ix_normalized_events_event_type", "event_type"),
        CheckConstraint("length(event_type) > 0", name="ck_normalized_events_event_type"),
    )

    id = Column(Integer, primary_key=True)
    raw_log_id = Column(Integer, ForeignKey("raw_logs.id"), nullable=False, unique=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    event_type = Column(String(50), nullable=False)
    event_time = Column(DateTime(timezone=True), nullable=False)
    user_id = Column(String(100), nullable=True)
    session_id = Column(String(150), nullable=True)
    amount = Column(MONEY, nullable=True)
    metadata_json = Column(Text, nullable=True)


class FailedLog(AuditMixin, Base):
    """Dead-lettered raw item with the reason it was rejected."""

    __tablename__ = "failed_logs"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, nullable=False)
    raw_log_id = Column(Integer, nullable=True)
    reason = Column(String(500), nullable=False)
    payload_json = Column(Text, nullable=True)


class TenantDailyMetric(AuditMixin, Base):
    """Per-tenant, per-day, per-event-type aggregate."""

    __tablename__ = "tenant_daily_metrics"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "event_date", "event_type", name="uq_tenant_daily_metrics_key"
        ),
        CheckConstraint("event_count >= 0", name="ck_tenant_daily_metrics_count"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    event_date = Column(Date, nullable=False)
    event_type = Column(String(50), nullable=False)
    event_count = Column(Integer, nullable=False, default=0)
    amount_sum = Column(MONEY, nullable=False, default=0)


class PipelineRun(AuditMixin, Base):
    """One invocation of the pipeline over a time window."""

    __tablename__ = "pipeline_runs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    window_from = Column(DateTime(timezone=True), nullable=False)
    window_to = Column(DateTime(timezone=True), nullable=False)
    status = Column(PipelineRunStatusEnum, nullable=False)
    last_error = Column(Text, nullable=True)


class PipelineStageRun(AuditMixin, Base):
    """Counters and outcome for one stage within a pipeline run."""

    __tablename__ = "pipeline_stage_runs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(Uuid(as_uuid=True), ForeignKey("pipeline_runs.id"), nullable=False)
    stage = Column(PipelineStageEnum, nullable=False)
    status = Column(StageRunStatusEnum, nullable=False)
    read_count = Column(Integer, nullable=False, default=0)
    write_count = Column(Integer, nullable=False, default=0)
    skip_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    error = Column(Text, nullable=True)


_TIMESTAMP_COLUMNS: dict[type, tuple[str, ...]] = {
    Tenant: ("created_at", "updated_at"),
    RawLog: ("created_at", "updated_at", "occurred_at", "ingested_at"),
    NormalizedEvent: ("created_at", "updated_at", "event_time"),
    FailedLog: ("created_at", "updated_at"),
    TenantDailyMetric: ("created_at", "updated_at"),
    PipelineRun: ("created_at", "updated_at", "window_from", "window_to"),
    PipelineStageRun: ("created_at", "updated_at", "started_at", "finished_at"),
}


@event.listens_for(Session, "before_flush")
def _stamp_audit_columns(session: Session, _context: object, _instances: object) -> None:
    """Set audit timestamps and normalize datetimes to UTC before writing."""
    now = utc_now()
    for instance in session.new:
        if isinstance(instance, AuditMixin):
            instance.created_at = now
            instance.updated_at = now
            _normalize_timestamps(instance)
    for instance in session.dirty:
        if isinstance(instance, AuditMixin) and session.is_modified(instance):
            instance.updated_at = now
            _normalize_timestamps(instance)


def _normalize_timestamps(instance: object) -> None:
    """Convert every known timestamp column on an instance to UTC."""
    for name in _TIMESTAMP_COLUMNS.get(type(instance), ()):
        value = getattr(instance, name, None)
        if isinstance(value, datetime):
            setattr(instance, name, to_utc(value))


def _restore_awareness(target: object, _context: object) -> None:
    """Ensure loaded timestamps retain timezone awareness on SQLite."""
    for name in _TIMESTAMP_COLUMNS.get(type(target), ()):
        value = getattr(target, name, None)
        if isinstance(value, datetime) and value.tzinfo is None:
            target.__dict__[name] = ensure_aware(value)


for _model in _TIMESTAMP_COLUMNS:
    event.listen(_model, "load", _restore_awareness)
