"""Shared infrastructure services for LogForge."""

from services.database import get_sync_session, run_migrations_sync

__all__ = [
    "get_sync_session",
    "run_migrations_sync",
]
