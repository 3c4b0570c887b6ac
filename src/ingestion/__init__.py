"""Fetch, normalize, and aggregate pipeline for tenant event logs."""

from ingestion.errors import (
    NormalizeError,
    PipelineValidationError,
    SkipLimitExceededError,
    UnknownStageError,
)
from ingestion.runner import PipelineRunResult, PipelineRunner, run_pipeline
from ingestion.window import RunWindow, validate_run_window

__all__ = [
    "NormalizeError",
    "PipelineRunResult",
    "PipelineRunner",
    "PipelineValidationError",
    "RunWindow",
    "SkipLimitExceededError",
    "UnknownStageError",
    "run_pipeline",
    "validate_run_window",
]
