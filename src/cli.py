"""LogForge command-line interface implemented with Typer."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable
from uuid import UUID

import typer

from config import settings
from ingestion.errors import PipelineValidationError
from ingestion.metric_query import DEFAULT_PAGE_SIZE, DailyMetricFilter, find_daily_metrics
from ingestion.runner import STATUS_FAILED, PipelineRunner, PipelineRunResult
from logging_config import configure_logging
from services.database import run_migrations_sync
from tenants.errors import TenantInactive, TenantNotFound

SUCCESS_EXIT_CODE = 0
FAILED_RUN_EXIT_CODE = 1
VALIDATION_ERROR_EXIT_CODE = 2


class StageName(str, Enum):
    """Pipeline stages that can be run on their own."""

    FETCH = "fetch"
    NORMALIZE = "normalize"
    AGGREGATE = "aggregate"


@dataclass(frozen=True)
class CliConfig:
    """Global CLI runtime options."""

    as_json: bool


def _serialize(value: Any) -> Any:
    """Convert result objects to JSON-serializable structures."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (date, Decimal, UUID)):
        return str(value)
    if dataclasses.is_dataclass(value):
        return _serialize(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(key): _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_serialize(item) for item in value]
    return str(value)


def _emit_output(data: Any, as_json: bool, render: Callable[[Any], str]) -> None:
    """Render command output in the requested format."""

    if as_json:
        typer.echo(json.dumps(_serialize(data), sort_keys=True, separators=(",", ":")))
        return
    typer.echo(render(data))


def _emit_error(exc: Exception, as_json: bool) -> None:
    """Render an error to stderr."""

    if as_json:
        typer.echo(json.dumps({"error": str(exc)}), err=True)
        return
    typer.echo(f"error: {exc}", err=True)


def _render_run(result: PipelineRunResult) -> str:
    """Return a human-oriented summary of a pipeline run."""
    lines = [
        f"run {result.run_id}: {result.status}",
        f"window: {result.window_from.isoformat()} .. {result.window_to.isoformat()}",
    ]
    for report in result.stages:
        lines.append(
            f"  {report.stage:<10} {report.status:<8} read={report.read} "
            f"write={report.written} skip={report.skipped} failures={report.failures} "
            f"({report.duration_seconds:.3f}s)"
        )
    for tenant_id, reason in sorted(result.failed_tenants.items()):
        lines.append(f"  tenant {tenant_id} failed: {reason}")
    if result.error:
        lines.append(f"error: {result.error}")
    return "\n".join(lines)


def _render_metrics(page: Any) -> str:
    """Return a human-oriented table of metric rows."""
    lines = [f"{page.total} metric row(s), page {page.page} (size {page.size})"]
    for item in page.items:
        lines.append(
            f"  {item.event_date.isoformat()}  {item.event_type:<20} "
            f"count={item.event_count} amount={item.amount_sum}"
        )
    return "\n".join(lines)


def _build_runner() -> PipelineRunner:
    """Return a runner wired to the configured database."""
    return PipelineRunner()


def _require_config(ctx: typer.Context) -> CliConfig:
    """Return required CLI config from Typer context."""

    config = ctx.obj
    if not isinstance(config, CliConfig):
        raise RuntimeError("CLI configuration not initialized")
    return config


def _finish_run(cfg: CliConfig, invoke: Callable[[PipelineRunner], PipelineRunResult]) -> None:
    """Execute a run and map its outcome to process exit codes."""
    try:
        result = invoke(_build_runner())
    except PipelineValidationError as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=VALIDATION_ERROR_EXIT_CODE) from exc

    _emit_output(result, cfg.as_json, _render_run)
    if result.status == STATUS_FAILED:
        raise typer.Exit(code=FAILED_RUN_EXIT_CODE)
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


app = typer.Typer(no_args_is_help=True, help="LogForge tenant log ingest pipeline")


@app.callback()
def main(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Emit JSON output"),
    log_level: str | None = typer.Option(None, help="Override the configured log level"),
) -> None:
    """Configure logging and shared CLI options."""
    configure_logging(level=log_level or settings.log_level, json_output=settings.log_json)
    ctx.obj = CliConfig(as_json=as_json)


@app.command("run")
def run_command(
    ctx: typer.Context,
    window_from: str = typer.Option(..., "--from", help="Window start (ISO-8601)"),
    window_to: str = typer.Option(..., "--to", help="Window end (ISO-8601)"),
) -> None:
    """Run fetch, normalize, and aggregate over a window."""
    cfg = _require_config(ctx)
    _finish_run(cfg, lambda runner: runner.run(window_from, window_to))


@app.command("stage")
def stage_command(
    ctx: typer.Context,
    stage: StageName = typer.Argument(..., help="Stage to run"),
    window_from: str = typer.Option(..., "--from", help="Window start (ISO-8601)"),
    window_to: str = typer.Option(..., "--to", help="Window end (ISO-8601)"),
) -> None:
    """Run a single pipeline stage over a window."""
    cfg = _require_config(ctx)
    _finish_run(cfg, lambda runner: runner.run_stage(stage.value, window_from, window_to))


@app.command("metrics")
def metrics_command(
    ctx: typer.Context,
    tenant_id: str = typer.Argument(..., help="Tenant identifier"),
    from_date: datetime | None = typer.Option(None, "--from-date", formats=["%Y-%m-%d"]),
    to_date: datetime | None = typer.Option(None, "--to-date", formats=["%Y-%m-%d"]),
    event_types: list[str] | None = typer.Option(None, "--event-type", help="Repeatable"),
    page: int = typer.Option(0, min=0, help="Zero-based page number"),
    size: int = typer.Option(DEFAULT_PAGE_SIZE, min=1, help="Rows per page"),
) -> None:
    """List daily metrics for an active tenant, newest first."""
    cfg = _require_config(ctx)
    try:
        metric_filter = DailyMetricFilter.build(
            tenant_id,
            from_date=from_date.date() if from_date else None,
            to_date=to_date.date() if to_date else None,
            event_types=event_types,
        )
        result = find_daily_metrics(metric_filter, page=page, size=size)
    except (ValueError, TenantNotFound, TenantInactive) as exc:
        _emit_error(exc, cfg.as_json)
        raise typer.Exit(code=VALIDATION_ERROR_EXIT_CODE) from exc
    _emit_output(result, cfg.as_json, _render_metrics)


@app.command("migrate")
def migrate_command(
    revision: str = typer.Option("head", help="Target alembic revision"),
) -> None:
    """Apply database migrations."""
    run_migrations_sync(revision)
    typer.echo(f"migrated to {revision}")


if __name__ == "__main__":
    app()
