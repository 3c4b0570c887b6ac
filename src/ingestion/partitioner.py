"""Expand the active tenant set into independent fetch partitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ingestion.constants import PARTITION_KEY_PREFIX
from tenants.directory import TenantDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantPartition:
    """Execution context for one fetch partition."""

    tenant_id: str


class TenantPartitioner:
    """Build one partition per active tenant, in ascending tenant order."""

    def __init__(self, directory: TenantDirectory | None = None) -> None:
        """Initialize the partitioner with a tenant directory."""
        self._directory = directory or TenantDirectory()

    def partition(self) -> dict[str, TenantPartition]:
        """Return ``tenant-<index>`` keys mapped to tenant contexts.

        Returns an empty mapping when no tenant is active.
        """
        tenants = self._directory.list_active()
        if not tenants:
            logger.warning("no active tenants; fetch has nothing to partition")
            return {}
        partitions = {
            f"{PARTITION_KEY_PREFIX}{index}": TenantPartition(tenant_id=tenant.tenant_id)
            for index, tenant in enumerate(tenants)
        }
        logger.info("created %d fetch partition(s)", len(partitions))
        return partitions
