"""Run and stage outcome recording for pipeline observability."""

from __future__ import annotations

import logging
import time
from contextlib import closing, contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Generator
from uuid import UUID

from opentelemetry import trace
from sqlalchemy.orm import Session

from ingestion.chunks import StageCounters
from ingestion.window import RunWindow
from models import PipelineRun, PipelineStageRun
from services.database import get_sync_session
from time_utils import utc_now

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class StageReport:
    """Immutable counters and outcome for one finished stage."""

    stage: str
    status: str
    read: int
    written: int
    skipped: int
    failures: int
    duration_seconds: float
    error: str | None = None


class StageRecorder:
    """Persist a run row plus one row per stage with counters and timing."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        """Initialize the recorder with a database session factory."""
        self._session_factory = session_factory or get_sync_session
        self.reports: list[StageReport] = []

    def start_run(self, window: RunWindow) -> UUID:
        """Create a running pipeline run row and return its id."""
        with closing(self._session_factory()) as session:
            run = PipelineRun(
                window_from=window.start,
                window_to=window.end,
                status="running",
            )
            session.add(run)
            session.flush()
            run_id = run.id
            session.commit()
        logger.info(
            "pipeline run %s started for window %s .. %s",
            run_id,
            window.start.isoformat(),
            window.end.isoformat(),
        )
        return run_id

    def finish_run(self, run_id: UUID, status: str, last_error: str | None = None) -> None:
        """Set the terminal status of a run."""
        with closing(self._session_factory()) as session:
            run = session.get(PipelineRun, run_id)
            if run is None:
                raise ValueError(f"Pipeline run not found: {run_id}")
            run.status = status
            if last_error is not None:
                run.last_error = last_error
            session.commit()
        logger.info("pipeline run %s finished with status %s", run_id, status)

    @contextmanager
    def record_stage(
        self,
        run_id: UUID,
        stage: str,
        *,
        now: datetime | None = None,
    ) -> Generator[StageCounters, None, None]:
        """
        Context manager that records one stage's counters, timing, and outcome.

        Yields a ``StageCounters`` instance the stage fills while it runs. The
        counters are persisted on exit whether the stage succeeded or raised,
        and a ``StageReport`` is appended to ``reports``.

        Args:
            run_id: The pipeline run identifier.
            stage: Stage name ('fetch', 'normalize', 'aggregate').
            now: Optional timestamp override for testing.

        Raises:
            Any exception raised within the context, after the stage run has
            been marked as 'failed' with the error message.
        """
        counters = StageCounters()
        started_at = now or utc_now()
        started = time.monotonic()
        stage_run_id = self._start_stage_run(run_id, stage, started_at)
        logger.info("stage %s started (run %s)", stage, run_id)

        with tracer.start_as_current_span(
            f"pipeline.stage.{stage}",
            attributes={"pipeline.run_id": str(run_id), "pipeline.stage": stage},
        ) as span:
            try:
                yield counters
            except Exception as exc:
                error_text = str(exc) or type(exc).__name__
                self._finish(stage_run_id, stage, "failed", counters, started, error_text, now)
                span.set_attribute("pipeline.stage.status", "failed")
                span.set_attribute("pipeline.stage.error", error_text)
                raise
            status = "failed" if counters.failures else "success"
            self._finish(stage_run_id, stage, status, counters, started, None, now)
            span.set_attribute("pipeline.stage.status", status)

    def _finish(
        self,
        stage_run_id: UUID,
        stage: str,
        status: str,
        counters: StageCounters,
        started: float,
        error: str | None,
        now: datetime | None,
    ) -> None:
        """Persist final counters and log the stage summary."""
        duration = time.monotonic() - started
        self._finish_stage_run(stage_run_id, status, counters, error, now or utc_now())
        report = StageReport(
            stage=stage,
            status=status,
            read=counters.read,
            written=counters.written,
            skipped=counters.skipped,
            failures=counters.failures,
            duration_seconds=round(duration, 3),
            error=error,
        )
        self.reports.append(report)
        log = logger.error if status == "failed" else logger.info
        log(
            "stage %s finished: status=%s read=%d write=%d skip=%d failures=%d duration=%.3fs",
            stage,
            status,
            report.read,
            report.written,
            report.skipped,
            report.failures,
            report.duration_seconds,
        )

    def _start_stage_run(self, run_id: UUID, stage: str, started_at: datetime) -> UUID:
        """Create a new stage run record and return its ID."""
        with closing(self._session_factory()) as session:
            stage_run = PipelineStageRun(
                run_id=run_id,
                stage=stage,
                status="running",
                started_at=started_at,
            )
            session.add(stage_run)
            session.flush()
            stage_run_id = stage_run.id
            session.commit()
        return stage_run_id

    def _finish_stage_run(
        self,
        stage_run_id: UUID,
        status: str,
        counters: StageCounters,
        error: str | None,
        finished_at: datetime,
    ) -> None:
        """Update a stage run with final status, counters, and finish timestamp."""
        with closing(self._session_factory()) as session:
            stage_run = session.get(PipelineStageRun, stage_run_id)
            if stage_run is None:
                raise ValueError(f"Stage run not found: {stage_run_id}")
            stage_run.status = status
            stage_run.read_count = counters.read
            stage_run.write_count = counters.written
            stage_run.skip_count = counters.skipped
            stage_run.failure_count = counters.failures
            stage_run.error = error
            stage_run.finished_at = finished_at
            session.commit()
