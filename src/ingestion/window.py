"""Run window parsing and validation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ingestion.errors import PipelineValidationError
from time_utils import isoformat_utc, parse_iso_datetime, to_utc


@dataclass(frozen=True)
class RunWindow:
    """Validated, UTC-normalized time window for one pipeline run."""

    start: datetime
    end: datetime


def _coerce(value: str | datetime | None, name: str) -> datetime:
    """Convert a run parameter into an aware UTC datetime."""
    if value is None:
        raise PipelineValidationError(f"'{name}' is required")
    if isinstance(value, datetime):
        return to_utc(value)
    try:
        return parse_iso_datetime(value)
    except ValueError as exc:
        raise PipelineValidationError(f"'{name}' must be an ISO-8601 instant: {value!r}") from exc


def validate_run_window(
    window_from: str | datetime | None, window_to: str | datetime | None
) -> RunWindow:
    """Validate run parameters before any stage starts.

    Raises:
        PipelineValidationError: If either bound is missing or malformed, or
            ``from`` is after ``to``.
    """
    start = _coerce(window_from, "from")
    end = _coerce(window_to, "to")
    if start > end:
        raise PipelineValidationError(
            f"'from' must not be after 'to': {isoformat_utc(start)} > {isoformat_utc(end)}"
        )
    return RunWindow(start=start, end=end)
