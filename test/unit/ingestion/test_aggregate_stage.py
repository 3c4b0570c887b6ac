"""Tests for daily aggregation and the idempotent metric upsert."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ingestion.aggregation import DailyMetricGroup, fetch_group_page
from ingestion.stages.aggregate import AggregateStage
from ingestion.upsert import DailyMetricUpsertWriter
from ingestion.window import validate_run_window
from models import NormalizedEvent, RawLog, TenantDailyMetric

WINDOW = validate_run_window("2025-01-01T00:00:00Z", "2025-01-03T00:00:00Z")


def _add_event(
    session_factory,
    tenant_id: str,
    event_type: str,
    when: datetime,
    amount: str | None = None,
) -> None:
    """Insert a raw log and its canonical event."""
    with session_factory() as session:
        raw = RawLog(
            tenant_id=int(tenant_id),
            occurred_at=when,
            payload_json="{}",
            ingested_at=when,
        )
        session.add(raw)
        session.flush()
        session.add(
            NormalizedEvent(
                raw_log_id=raw.id,
                tenant_id=int(tenant_id),
                event_type=event_type,
                event_time=when,
                amount=Decimal(amount) if amount is not None else None,
            )
        )
        session.commit()


def _metrics(session_factory) -> dict[tuple[int, date, str], tuple[int, Decimal]]:
    with session_factory() as session:
        rows = session.scalars(select(TenantDailyMetric)).all()
        return {
            (row.tenant_id, row.event_date, row.event_type): (row.event_count, row.amount_sum)
            for row in rows
        }


def _at(day: int, hour: int) -> datetime:
    return datetime(2025, 1, day, hour, 0, tzinfo=timezone.utc)


def test_groups_by_tenant_day_and_type(sqlite_session_factory, make_tenant):
    """Counts and sums land on the right (tenant, date, type) keys."""
    t1 = int(make_tenant("acme"))
    t2 = int(make_tenant("globex"))
    _add_event(sqlite_session_factory, str(t1), "LOGIN", _at(1, 9))
    _add_event(sqlite_session_factory, str(t1), "LOGIN", _at(1, 10))
    _add_event(sqlite_session_factory, str(t1), "PURCHASE", _at(1, 11), "100.00")
    _add_event(sqlite_session_factory, str(t1), "PURCHASE", _at(2, 8), "5.50")
    _add_event(sqlite_session_factory, str(t2), "LOGIN", _at(2, 12))

    counters = AggregateStage(sqlite_session_factory, chunk_size=10).run(WINDOW)

    assert counters.read == 4
    assert counters.written == 4
    assert _metrics(sqlite_session_factory) == {
        (t1, date(2025, 1, 1), "LOGIN"): (2, Decimal("0.00")),
        (t1, date(2025, 1, 1), "PURCHASE"): (1, Decimal("100.00")),
        (t1, date(2025, 1, 2), "PURCHASE"): (1, Decimal("5.50")),
        (t2, date(2025, 1, 2), "LOGIN"): (1, Decimal("0.00")),
    }


def test_rerun_overwrites_instead_of_accumulating(sqlite_session_factory, make_tenant):
    """Re-aggregating after new events replaces counts rather than adding."""
    t1 = int(make_tenant("acme"))
    _add_event(sqlite_session_factory, str(t1), "LOGIN", _at(1, 9))
    _add_event(sqlite_session_factory, str(t1), "LOGIN", _at(1, 10))
    _add_event(sqlite_session_factory, str(t1), "PURCHASE", _at(1, 11), "100.00")
    stage = AggregateStage(sqlite_session_factory, chunk_size=10)

    stage.run(WINDOW)
    _add_event(sqlite_session_factory, str(t1), "PURCHASE", _at(1, 15), "20.00")
    stage.run(WINDOW)
    stage.run(WINDOW)

    metrics = _metrics(sqlite_session_factory)
    assert metrics[(t1, date(2025, 1, 1), "LOGIN")] == (2, Decimal("0.00"))
    assert metrics[(t1, date(2025, 1, 1), "PURCHASE")] == (2, Decimal("120.00"))
    assert len(metrics) == 2


def test_window_end_is_exclusive(sqlite_session_factory, make_tenant):
    """Events at exactly the window end are left out."""
    t1 = int(make_tenant("acme"))
    _add_event(sqlite_session_factory, str(t1), "LOGIN", _at(1, 0))
    _add_event(sqlite_session_factory, str(t1), "LOGIN", _at(3, 0))

    AggregateStage(sqlite_session_factory, chunk_size=10).run(WINDOW)

    assert _metrics(sqlite_session_factory) == {
        (t1, date(2025, 1, 1), "LOGIN"): (1, Decimal("0.00")),
    }


def test_small_chunks_page_through_every_group(sqlite_session_factory, make_tenant):
    """Keyset paging visits each group exactly once."""
    t1 = make_tenant("acme")
    t2 = make_tenant("globex")
    for tenant in (t1, t2):
        for day in (1, 2):
            for event_type in ("A", "B", "C"):
                _add_event(sqlite_session_factory, tenant, event_type, _at(day, 6))

    with sqlite_session_factory() as session:
        pages = []
        after = None
        while True:
            page = fetch_group_page(session, WINDOW, after, 5)
            if not page:
                break
            pages.append(page)
            after = page[-1].key

    keys = [group.key for page in pages for group in page]
    assert len(keys) == 12
    assert keys == sorted(keys)
    assert len(set(keys)) == 12

    counters = AggregateStage(sqlite_session_factory, chunk_size=5).run(WINDOW)
    assert counters.read == 12
    assert len(_metrics(sqlite_session_factory)) == 12


def test_upsert_reports_created_and_updated(sqlite_session_factory, make_tenant):
    """The writer creates missing rows and updates existing ones."""
    t1 = int(make_tenant("acme"))
    writer = DailyMetricUpsertWriter(sqlite_session_factory)
    first = DailyMetricGroup(t1, date(2025, 1, 1), "LOGIN", 3, Decimal("0"))

    created = writer.write([first])
    updated = writer.write(
        [
            DailyMetricGroup(t1, date(2025, 1, 1), "LOGIN", 4, Decimal("0")),
            DailyMetricGroup(t1, date(2025, 1, 2), "LOGIN", 1, Decimal("0")),
        ]
    )

    assert (created.created, created.updated) == (1, 0)
    assert (updated.created, updated.updated) == (1, 1)
    assert updated.written == 2
    assert _metrics(sqlite_session_factory)[(t1, date(2025, 1, 1), "LOGIN")][0] == 4


def test_empty_batch_is_a_noop(sqlite_session_factory):
    """An empty batch writes nothing."""
    result = DailyMetricUpsertWriter(sqlite_session_factory).write([])
    assert result.written == 0


def test_metric_key_is_unique(sqlite_session_factory, make_tenant):
    """The store rejects a second row for the same key."""
    t1 = int(make_tenant("acme"))
    with sqlite_session_factory() as session:
        for _ in range(2):
            session.add(
                TenantDailyMetric(
                    tenant_id=t1,
                    event_date=date(2025, 1, 1),
                    event_type="LOGIN",
                    event_count=1,
                    amount_sum=Decimal("0"),
                )
            )
        with pytest.raises(IntegrityError):
            session.commit()
