"""Tenant directory lookups and errors."""

from tenants.directory import TenantDirectory, TenantInfo
from tenants.errors import InvalidTenantIdentifier, TenantInactive, TenantNotFound

__all__ = [
    "InvalidTenantIdentifier",
    "TenantDirectory",
    "TenantInactive",
    "TenantInfo",
    "TenantNotFound",
]
