"""Error types for the ingest pipeline."""

from __future__ import annotations

from errors import LogForgeError


class PipelineValidationError(LogForgeError, ValueError):
    """Raised when run parameters are missing or inconsistent."""


class NormalizeError(LogForgeError):
    """Raised when a raw log cannot be transformed into a canonical event."""

    def __init__(self, raw_log_id: int | None, tenant_id: int, message: str) -> None:
        """Initialize the error with the offending raw log coordinates."""
        super().__init__(message)
        self.raw_log_id = raw_log_id
        self.tenant_id = tenant_id
        self.message = message


class SkipLimitExceededError(LogForgeError):
    """Raised when the normalize stage skips more items than allowed."""

    def __init__(self, skip_count: int, skip_limit: int) -> None:
        """Initialize the error with the observed and permitted skip counts."""
        super().__init__(f"skip limit exceeded: {skip_count} skipped, limit {skip_limit}")
        self.skip_count = skip_count
        self.skip_limit = skip_limit


class UnknownStageError(PipelineValidationError):
    """Raised when a stage name is not part of the pipeline."""

    def __init__(self, stage: str) -> None:
        """Initialize the error with the unrecognized stage name."""
        super().__init__(f"unknown pipeline stage: {stage!r}")
        self.stage = stage
