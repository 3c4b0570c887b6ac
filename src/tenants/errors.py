"""Error types raised by tenant resolution."""

from __future__ import annotations


class InvalidTenantIdentifier(ValueError):
    """Raised when a tenant identifier is not a numeric id."""

    def __init__(self, tenant_id: str) -> None:
        """Initialize the error with the malformed identifier."""
        super().__init__(f"invalid tenant identifier: {tenant_id!r}")
        self.tenant_id = tenant_id


class TenantNotFound(KeyError):
    """Raised when no tenant exists for an identifier."""

    def __init__(self, tenant_id: str) -> None:
        """Initialize the error with the missing tenant identifier."""
        super().__init__(f"tenant not found: {tenant_id}")
        self.tenant_id = tenant_id


class TenantInactive(LookupError):
    """Raised when a tenant exists but is not active."""

    def __init__(self, tenant_id: str) -> None:
        """Initialize the error with the inactive tenant identifier."""
        super().__init__(f"tenant is inactive: {tenant_id}")
        self.tenant_id = tenant_id
