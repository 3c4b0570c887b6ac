"""Normalize stage: convert raw logs into canonical events in chunks."""

from __future__ import annotations

import logging
from contextlib import closing
from typing import Callable

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from ingestion.chunks import ChunkHooks, StageCounters, iter_keyset_chunks
from ingestion.dead_letter import DeadLetterSink
from ingestion.errors import NormalizeError, SkipLimitExceededError
from ingestion.normalizer import NormalizedEventDraft, normalize_raw_log
from ingestion.window import RunWindow
from models import NormalizedEvent, RawLog
from services.database import get_sync_session

logger = logging.getLogger(__name__)


class DeadLetterHooks(ChunkHooks[RawLog]):
    """Send every skipped item to the dead-letter sink."""

    def __init__(self, sink: DeadLetterSink) -> None:
        """Initialize the hooks with the sink receiving rejected items."""
        self._sink = sink

    def on_skip(self, item: RawLog, error: Exception) -> None:
        """Dead-letter the rejected raw log."""
        self._sink.record(item, error)

    def on_complete(self, counters: StageCounters) -> None:
        """Log a summary when any item was skipped."""
        if counters.skipped:
            logger.warning("normalize skipped %d raw log(s)", counters.skipped)


def _to_model(draft: NormalizedEventDraft) -> NormalizedEvent:
    """Build an ORM row from a normalized draft."""
    return NormalizedEvent(
        raw_log_id=draft.raw_log_id,
        tenant_id=draft.tenant_id,
        event_type=draft.event_type,
        event_time=draft.event_time,
        user_id=draft.user_id,
        session_id=draft.session_id,
        amount=draft.amount,
        metadata_json=draft.metadata_json,
    )


class NormalizeStage:
    """Read raw logs in id-ordered chunks, normalize them, and write survivors.

    Raw logs with ``window.start <= occurred_at <= window.end`` that have no
    canonical event yet are selected, so re-running a window only picks up
    what is still pending. Each chunk is classified in full before anything is
    written; successes commit together and failures are dead-lettered.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        *,
        chunk_size: int,
        skip_limit: int,
        hooks: ChunkHooks[RawLog] | None = None,
    ) -> None:
        """Initialize the stage with chunking limits and item hooks."""
        self._session_factory = session_factory or get_sync_session
        self._chunk_size = chunk_size
        self._skip_limit = skip_limit
        self._hooks = hooks or DeadLetterHooks(DeadLetterSink(self._session_factory))

    def run(self, window: RunWindow, counters: StageCounters | None = None) -> StageCounters:
        """Normalize every pending raw log in the window.

        Raises:
            SkipLimitExceededError: When cumulative skips exceed the limit; the
                chunk that crossed it is not committed.
        """
        counters = counters if counters is not None else StageCounters()
        with closing(self._session_factory()) as session:

            def fetch_page(after: int | None, limit: int) -> list[RawLog]:
                return self._pending_page(session, window, after, limit)

            for chunk in iter_keyset_chunks(fetch_page, lambda raw: raw.id, self._chunk_size):
                self._process_chunk(session, chunk, counters)

        self._hooks.on_complete(counters)
        return counters

    def _process_chunk(
        self, session: Session, chunk: list[RawLog], counters: StageCounters
    ) -> None:
        """Classify, write, and dead-letter one chunk."""
        drafts: list[NormalizedEventDraft] = []
        rejected: list[tuple[RawLog, NormalizeError]] = []
        for raw in chunk:
            counters.read += 1
            self._hooks.on_item(raw)
            try:
                drafts.append(normalize_raw_log(raw))
            except NormalizeError as exc:
                rejected.append((raw, exc))

        if rejected:
            counters.skipped += len(rejected)
            if counters.skipped > self._skip_limit:
                session.rollback()
                raise SkipLimitExceededError(counters.skipped, self._skip_limit)

        try:
            session.add_all([_to_model(draft) for draft in drafts])
            session.commit()
        except Exception:
            session.rollback()
            raise
        counters.written += len(drafts)

        for raw, exc in rejected:
            self._hooks.on_skip(raw, exc)
        logger.debug(
            "normalized chunk of %d: %d written, %d skipped", len(chunk), len(drafts), len(rejected)
        )

    @staticmethod
    def _pending_page(
        session: Session, window: RunWindow, after: int | None, limit: int
    ) -> list[RawLog]:
        """Return the next page of raw logs without a canonical event."""
        already_normalized = exists().where(NormalizedEvent.raw_log_id == RawLog.id)
        stmt = (
            select(RawLog)
            .where(
                RawLog.occurred_at >= window.start,
                RawLog.occurred_at <= window.end,
                ~already_normalized,
            )
            .order_by(RawLog.id)
            .limit(limit)
        )
        if after is not None:
            stmt = stmt.where(RawLog.id > after)
        return list(session.scalars(stmt).all())
