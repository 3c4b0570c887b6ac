"""Aggregate stage: fold canonical events into daily metrics."""

from __future__ import annotations

import logging
from contextlib import closing
from typing import Callable

from sqlalchemy.orm import Session

from ingestion.aggregation import DailyMetricGroup, GroupKey, fetch_group_page
from ingestion.chunks import ChunkHooks, StageCounters, iter_keyset_chunks
from ingestion.upsert import DailyMetricUpsertWriter
from ingestion.window import RunWindow
from services.database import get_sync_session

logger = logging.getLogger(__name__)


class AggregateStage:
    """Read grouped aggregates page by page and upsert each page."""

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        *,
        chunk_size: int,
        writer: DailyMetricUpsertWriter | None = None,
        hooks: ChunkHooks[DailyMetricGroup] | None = None,
    ) -> None:
        """Initialize the stage with a chunk size and upsert writer."""
        self._session_factory = session_factory or get_sync_session
        self._chunk_size = chunk_size
        self._writer = writer or DailyMetricUpsertWriter(self._session_factory)
        self._hooks = hooks or ChunkHooks()

    def run(self, window: RunWindow, counters: StageCounters | None = None) -> StageCounters:
        """Recompute every group in ``[window.start, window.end)`` and upsert it."""
        counters = counters if counters is not None else StageCounters()
        with closing(self._session_factory()) as session:

            def fetch_page(after: GroupKey | None, limit: int) -> list[DailyMetricGroup]:
                return fetch_group_page(session, window, after, limit)

            for page in iter_keyset_chunks(fetch_page, lambda group: group.key, self._chunk_size):
                for group in page:
                    counters.read += 1
                    self._hooks.on_item(group)
                result = self._writer.write(page)
                counters.written += result.written
                logger.debug(
                    "aggregated page of %d group(s): %d created, %d updated",
                    len(page),
                    result.created,
                    result.updated,
                )
        self._hooks.on_complete(counters)
        return counters
