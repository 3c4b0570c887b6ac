"""Read-only tenant directory backed by the tenants table."""

from __future__ import annotations

import logging
from contextlib import closing
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Tenant
from services.database import get_sync_session
from tenants.errors import InvalidTenantIdentifier, TenantInactive, TenantNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantInfo:
    """Connection metadata for an active tenant."""

    tenant_id: str
    name: str
    base_url: str
    api_key: str

    @property
    def pk(self) -> int:
        """Return the integer primary key behind the identifier."""
        return int(self.tenant_id)


def _to_info(tenant: Tenant) -> TenantInfo:
    """Convert an ORM tenant into an immutable info record."""
    return TenantInfo(
        tenant_id=str(tenant.id),
        name=tenant.name,
        base_url=tenant.external_api_base_url,
        api_key=tenant.api_key,
    )


def parse_tenant_id(tenant_id: str | int) -> int:
    """Parse a tenant identifier into its integer primary key."""
    if isinstance(tenant_id, int) and not isinstance(tenant_id, bool):
        return tenant_id
    text = str(tenant_id).strip()
    if not text.isdigit():
        raise InvalidTenantIdentifier(str(tenant_id))
    return int(text)


class TenantDirectory:
    """Resolve tenant identifiers to connection metadata and status."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        """Initialize the directory with a database session factory."""
        self._session_factory = session_factory or get_sync_session

    def list_active(self) -> list[TenantInfo]:
        """Return all active tenants ordered by ascending id."""
        with closing(self._session_factory()) as session:
            tenants = session.scalars(
                select(Tenant).where(Tenant.status == "active").order_by(Tenant.id.asc())
            ).all()
            return [_to_info(tenant) for tenant in tenants]

    def resolve(self, tenant_id: str | int) -> TenantInfo:
        """Return connection metadata for an active tenant.

        Raises:
            InvalidTenantIdentifier: If the identifier is not numeric.
            TenantNotFound: If no tenant has the identifier.
            TenantInactive: If the tenant exists but is inactive.
        """
        pk = parse_tenant_id(tenant_id)
        with closing(self._session_factory()) as session:
            tenant = session.get(Tenant, pk)
            if tenant is None:
                raise TenantNotFound(str(tenant_id))
            if tenant.status != "active":
                logger.debug("tenant %s resolved but inactive", pk)
                raise TenantInactive(str(tenant_id))
            return _to_info(tenant)
