"""Fetch stage: pull raw logs for every active tenant in parallel partitions."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from external.errors import FetchError
from external.log_client import ExternalLogClient
from ingestion.chunks import StageCounters
from ingestion.partitioner import TenantPartition, TenantPartitioner
from ingestion.raw_store import RawIngestWriter
from ingestion.window import RunWindow
from logging_config import log_context
from tenants.errors import InvalidTenantIdentifier, TenantInactive, TenantNotFound

logger = logging.getLogger(__name__)

# Errors isolated to a single partition; anything else fails the stage.
PARTITION_ERRORS = (FetchError, TenantNotFound, TenantInactive, InvalidTenantIdentifier)


@dataclass
class FetchOutcome:
    """Per-partition results of a fetch stage execution."""

    fetched: dict[str, int] = field(default_factory=dict)
    failed_tenants: dict[str, str] = field(default_factory=dict)


class FetchStage:
    """Run one worker per tenant partition, bounded by the grid size."""

    def __init__(
        self,
        *,
        partitioner: TenantPartitioner,
        client: ExternalLogClient,
        writer: RawIngestWriter,
        grid_size: int,
    ) -> None:
        """Initialize the stage with its collaborators."""
        if grid_size < 1:
            raise ValueError("grid_size must be >= 1")
        self._partitioner = partitioner
        self._client = client
        self._writer = writer
        self._grid_size = grid_size

    async def run(self, window: RunWindow, counters: StageCounters | None = None) -> FetchOutcome:
        """Fetch and store raw logs for every partition.

        A failing partition is counted and recorded in ``failed_tenants``;
        the remaining partitions still run and commit.
        """
        counters = counters if counters is not None else StageCounters()
        outcome = FetchOutcome()
        partitions = await asyncio.to_thread(self._partitioner.partition)
        if not partitions:
            return outcome

        grid = asyncio.Semaphore(self._grid_size)

        async def worker(key: str, partition: TenantPartition) -> None:
            async with grid:
                with log_context({"partition": key, "tenant_id": partition.tenant_id}):
                    await self._run_partition(key, partition, window, counters, outcome)

        await asyncio.gather(*(worker(key, partition) for key, partition in partitions.items()))
        if outcome.failed_tenants:
            logger.error(
                "fetch failed for %d tenant(s): %s",
                len(outcome.failed_tenants),
                ", ".join(sorted(outcome.failed_tenants)),
            )
        return outcome

    async def _run_partition(
        self,
        key: str,
        partition: TenantPartition,
        window: RunWindow,
        counters: StageCounters,
        outcome: FetchOutcome,
    ) -> None:
        """Fetch one tenant and write its records atomically."""
        tenant_id = partition.tenant_id
        try:
            records = await self._client.fetch(tenant_id, window.start, window.end)
        except PARTITION_ERRORS as exc:
            counters.failures += 1
            outcome.failed_tenants[tenant_id] = str(exc)
            logger.warning("partition %s (tenant %s) failed: %s", key, tenant_id, exc)
            return
        counters.read += len(records)
        written = await asyncio.to_thread(self._writer.write, tenant_id, records)
        counters.written += written
        outcome.fetched[tenant_id] = written
        logger.info("partition %s (tenant %s) stored %d raw log(s)", key, tenant_id, written)
