"""Tests for the partitioned fetch stage."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from external.errors import FetchError
from external.log_client import ExternalLogRecord
from ingestion.chunks import StageCounters
from ingestion.partitioner import TenantPartitioner
from ingestion.raw_store import RawIngestWriter
from ingestion.stages.fetch import FetchStage
from ingestion.window import validate_run_window
from models import RawLog
from tenants.directory import TenantDirectory

WINDOW = validate_run_window("2025-01-01T00:00:00Z", "2025-01-02T00:00:00Z")


def _records(count: int) -> list[ExternalLogRecord]:
    return [
        ExternalLogRecord(
            occurred_at=datetime(2025, 1, 1, index, 0, tzinfo=timezone.utc),
            payload='{"eventType":"LOGIN"}',
        )
        for index in range(count)
    ]


class StubClient:
    """Log client stub returning canned records per tenant."""

    def __init__(self, records: dict[str, int], failing: set[str] | None = None) -> None:
        self.records = records
        self.failing = failing or set()
        self.calls: list[tuple[str, datetime, datetime]] = []
        self.in_flight = 0
        self.peak = 0

    async def fetch(self, tenant_id, from_time, to_time):
        self.calls.append((tenant_id, from_time, to_time))
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if tenant_id in self.failing:
                raise FetchError(tenant_id, "retries exhausted", attempts=3)
            return _records(self.records.get(tenant_id, 0))
        finally:
            self.in_flight -= 1


def _stage(session_factory, client, *, grid_size: int = 4) -> FetchStage:
    return FetchStage(
        partitioner=TenantPartitioner(TenantDirectory(session_factory)),
        client=client,
        writer=RawIngestWriter(session_factory),
        grid_size=grid_size,
    )


def _raw_counts(session_factory) -> dict[int, int]:
    with session_factory() as session:
        rows = session.execute(
            select(RawLog.tenant_id, func.count()).group_by(RawLog.tenant_id)
        ).all()
        return {tenant_id: count for tenant_id, count in rows}


@pytest.mark.asyncio
async def test_every_active_tenant_is_fetched(sqlite_session_factory, make_tenant):
    """Each active tenant gets one fetch over the run window."""
    t1 = make_tenant("acme")
    t2 = make_tenant("globex")
    make_tenant("dormant", status="inactive")
    client = StubClient({t1: 3, t2: 2})
    counters = StageCounters()

    outcome = await _stage(sqlite_session_factory, client).run(WINDOW, counters)

    assert sorted(call[0] for call in client.calls) == [t1, t2]
    assert all(call[1:] == (WINDOW.start, WINDOW.end) for call in client.calls)
    assert outcome.fetched == {t1: 3, t2: 2}
    assert outcome.failed_tenants == {}
    assert (counters.read, counters.written, counters.failures) == (5, 5, 0)
    assert _raw_counts(sqlite_session_factory) == {int(t1): 3, int(t2): 2}


@pytest.mark.asyncio
async def test_failing_partition_is_isolated(sqlite_session_factory, make_tenant):
    """One tenant failing does not stop or roll back the others."""
    t1 = make_tenant("acme")
    t2 = make_tenant("globex")
    t3 = make_tenant("initech")
    client = StubClient({t1: 2, t2: 4, t3: 1}, failing={t2})
    counters = StageCounters()

    outcome = await _stage(sqlite_session_factory, client).run(WINDOW, counters)

    assert outcome.fetched == {t1: 2, t3: 1}
    assert list(outcome.failed_tenants) == [t2]
    assert "retries exhausted" in outcome.failed_tenants[t2]
    assert counters.failures == 1
    assert counters.written == 3
    assert _raw_counts(sqlite_session_factory) == {int(t1): 2, int(t3): 1}


@pytest.mark.asyncio
async def test_grid_size_bounds_parallel_partitions(sqlite_session_factory, make_tenant):
    """No more than grid_size partitions run at once."""
    tenants = [make_tenant(f"tenant-{index}") for index in range(5)]
    client = StubClient({tenant: 1 for tenant in tenants})

    await _stage(sqlite_session_factory, client, grid_size=2).run(WINDOW)

    assert len(client.calls) == 5
    assert client.peak <= 2


@pytest.mark.asyncio
async def test_no_active_tenants_is_a_noop(sqlite_session_factory, make_tenant):
    """Without active tenants nothing is fetched."""
    make_tenant("dormant", status="inactive")
    client = StubClient({})
    counters = StageCounters()

    outcome = await _stage(sqlite_session_factory, client).run(WINDOW, counters)

    assert client.calls == []
    assert outcome.fetched == {}
    assert counters == StageCounters()


@pytest.mark.asyncio
async def test_empty_tenant_result_writes_nothing(sqlite_session_factory, make_tenant):
    """A tenant with no logs in the window succeeds with zero rows."""
    t1 = make_tenant("acme")
    client = StubClient({t1: 0})

    outcome = await _stage(sqlite_session_factory, client).run(WINDOW)

    assert outcome.fetched == {t1: 0}
    assert _raw_counts(sqlite_session_factory) == {}


def test_grid_size_must_be_positive(sqlite_session_factory):
    """A zero grid size is rejected up front."""
    with pytest.raises(ValueError, match="grid_size"):
        _stage(sqlite_session_factory, StubClient({}), grid_size=0)
