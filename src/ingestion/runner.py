"""Pipeline runner sequencing fetch, normalize, and aggregate."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from config import BatchConfig, ExternalClientConfig, settings
from external.log_client import ExternalLogClient
from ingestion.chunks import StageCounters
from ingestion.constants import STAGE_ORDER, STAGE_SET
from ingestion.errors import UnknownStageError
from ingestion.partitioner import TenantPartitioner
from ingestion.raw_store import RawIngestWriter
from ingestion.stage_recorder import StageRecorder, StageReport
from ingestion.stages.aggregate import AggregateStage
from ingestion.stages.fetch import FetchStage
from ingestion.stages.normalize import NormalizeStage
from ingestion.window import RunWindow, validate_run_window
from logging_config import log_context
from services.database import get_sync_session
from tenants.directory import TenantDirectory

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_COMPLETED_WITH_SKIPS = "completed_with_skips"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class PipelineRunResult:
    """Terminal outcome and per-stage counters for one run."""

    run_id: UUID
    window_from: datetime
    window_to: datetime
    status: str
    stages: tuple[StageReport, ...]
    failed_tenants: dict[str, str] = field(default_factory=dict)
    error: str | None = None

    def stage(self, name: str) -> StageReport | None:
        """Return the report for a stage, if it ran."""
        for report in self.stages:
            if report.stage == name:
                return report
        return None


def resolve_status(reports: tuple[StageReport, ...], error: str | None) -> str:
    """Derive the terminal run status from stage reports."""
    if error is not None or any(report.status == "failed" for report in reports):
        return STATUS_FAILED
    if any(report.skipped for report in reports):
        return STATUS_COMPLETED_WITH_SKIPS
    return STATUS_COMPLETED


class PipelineRunner:
    """Validate run parameters and drive pipeline stages in order."""

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        *,
        batch_config: BatchConfig | None = None,
        client_config: ExternalClientConfig | None = None,
        client_factory: Callable[[TenantDirectory], ExternalLogClient] | None = None,
    ) -> None:
        """Initialize the runner with storage access and stage sizing."""
        self._session_factory = session_factory or get_sync_session
        self._batch = batch_config or settings.batch
        self._client_config = client_config or settings.external_client
        self._client_factory = client_factory or (
            lambda directory: ExternalLogClient(directory, config=self._client_config)
        )

    def run(
        self, window_from: str | datetime | None, window_to: str | datetime | None
    ) -> PipelineRunResult:
        """Run fetch, normalize, and aggregate over a window.

        Raises:
            PipelineValidationError: If the window is invalid; no work is done.
        """
        window = validate_run_window(window_from, window_to)
        return self._execute(window, STAGE_ORDER)

    def run_stage(
        self,
        stage: str,
        window_from: str | datetime | None,
        window_to: str | datetime | None,
    ) -> PipelineRunResult:
        """Run a single stage under the same validation and recording contract."""
        if stage not in STAGE_SET:
            raise UnknownStageError(stage)
        window = validate_run_window(window_from, window_to)
        return self._execute(window, (stage,))

    def _execute(self, window: RunWindow, stages: tuple[str, ...] | list[str]) -> PipelineRunResult:
        """Run ``stages`` in order, stopping at the first stage that raises."""
        recorder = StageRecorder(self._session_factory)
        run_id = recorder.start_run(window)
        failed_tenants: dict[str, str] = {}
        error: str | None = None

        for stage in stages:
            try:
                with log_context({"run_id": run_id, "stage": stage}):
                    with recorder.record_stage(run_id, stage) as counters:
                        failed_tenants.update(self._run_one(stage, window, counters))
            except Exception as exc:
                error = f"{stage}: {exc}"
                logger.exception("stage %s aborted run %s", stage, run_id)
                break

        reports = tuple(recorder.reports)
        status = resolve_status(reports, error)
        recorder.finish_run(run_id, status, error)
        return PipelineRunResult(
            run_id=run_id,
            window_from=window.start,
            window_to=window.end,
            status=status,
            stages=reports,
            failed_tenants=failed_tenants,
            error=error,
        )

    def _run_one(self, stage: str, window: RunWindow, counters: StageCounters) -> dict[str, str]:
        """Dispatch one stage; return tenants whose fetch failed."""
        if stage == "fetch":
            return asyncio.run(self._fetch(window, counters))
        if stage == "normalize":
            NormalizeStage(
                self._session_factory,
                chunk_size=self._batch.normalize_chunk_size,
                skip_limit=self._batch.skip_limit,
            ).run(window, counters)
            return {}
        AggregateStage(
            self._session_factory,
            chunk_size=self._batch.aggregate_chunk_size,
        ).run(window, counters)
        return {}

    async def _fetch(self, window: RunWindow, counters: StageCounters) -> dict[str, str]:
        """Build fetch collaborators inside the event loop and run the stage."""
        directory = TenantDirectory(self._session_factory)
        stage = FetchStage(
            partitioner=TenantPartitioner(directory),
            client=self._client_factory(directory),
            writer=RawIngestWriter(self._session_factory),
            grid_size=self._batch.fetch_grid_size,
        )
        outcome = await stage.run(window, counters)
        return outcome.failed_tenants


def run_pipeline(
    window_from: str | datetime | None,
    window_to: str | datetime | None,
    *,
    session_factory: Callable[[], Session] | None = None,
) -> PipelineRunResult:
    """Convenience entry point running every stage with configured settings."""
    return PipelineRunner(session_factory).run(window_from, window_to)
