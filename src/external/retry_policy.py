"""Retry and backoff policy for outbound log-source requests."""

from __future__ import annotations

from dataclasses import dataclass

from config import ExternalClientConfig, settings

BACKOFF_STRATEGIES = frozenset({"fixed", "linear"})


@dataclass(frozen=True)
class FetchRetryPolicy:
    """Attempt budget, deadline, and backoff for a single fetch call."""

    max_attempts: int
    backoff_strategy: str
    retry_delay_seconds: float
    request_timeout_seconds: float
    connect_timeout_seconds: float

    @staticmethod
    def from_config(config: ExternalClientConfig | None = None) -> "FetchRetryPolicy":
        """Build a retry policy from external client settings."""
        client_config = config or settings.external_client
        return FetchRetryPolicy(
            max_attempts=int(client_config.retry_attempts),
            backoff_strategy=str(client_config.backoff_strategy),
            retry_delay_seconds=float(client_config.retry_delay_seconds),
            request_timeout_seconds=float(client_config.request_timeout_seconds),
            connect_timeout_seconds=float(client_config.connect_timeout_seconds),
        )

    def delay_for(self, retry_count: int) -> float:
        """Return the delay before retry number ``retry_count``."""
        return compute_backoff_delay_seconds(
            self.backoff_strategy, retry_count, self.retry_delay_seconds
        )


def should_retry(attempt_count: int, max_attempts: int) -> bool:
    """Return whether another attempt is permitted."""
    return int(attempt_count) < int(max_attempts)


def is_retryable_status(status_code: int) -> bool:
    """Return True for server errors and rate limiting."""
    return status_code >= 500 or status_code == 429


def compute_backoff_delay_seconds(
    backoff_strategy: str,
    retry_count: int,
    retry_delay_seconds: float,
) -> float:
    """Compute a retry delay in seconds for a given backoff strategy."""
    if retry_count <= 0:
        raise ValueError("retry_count must be >= 1.")
    if backoff_strategy not in BACKOFF_STRATEGIES:
        raise ValueError("backoff_strategy must be fixed or linear.")
    if retry_delay_seconds < 0:
        raise ValueError("retry_delay_seconds must be >= 0.")
    if backoff_strategy == "linear":
        return retry_delay_seconds * retry_count
    return retry_delay_seconds
