"""Error types raised by the external log client."""

from __future__ import annotations

from errors import LogForgeError


class FetchError(LogForgeError):
    """Raised when logs for a tenant could not be fetched."""

    def __init__(self, tenant_id: str, message: str, *, attempts: int = 0) -> None:
        """Initialize the error with the tenant and attempt count."""
        super().__init__(f"fetch failed for tenant {tenant_id}: {message}")
        self.tenant_id = tenant_id
        self.attempts = attempts


class FetchTimeoutError(FetchError):
    """Raised when the overall fetch deadline expires."""

    def __init__(self, tenant_id: str, timeout_seconds: float, *, attempts: int = 0) -> None:
        """Initialize the error with the tenant and the exceeded deadline."""
        super().__init__(
            tenant_id,
            f"deadline of {timeout_seconds:g}s exceeded",
            attempts=attempts,
        )
        self.timeout_seconds = timeout_seconds
