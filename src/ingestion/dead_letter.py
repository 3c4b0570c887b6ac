"""Durable sink for raw logs rejected during normalization."""

from __future__ import annotations

import logging
from contextlib import closing
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ingestion.constants import FAILED_LOG_REASON_MAX_LENGTH
from ingestion.errors import NormalizeError
from models import FailedLog, RawLog
from services.database import get_sync_session

logger = logging.getLogger(__name__)


def truncate_reason(reason: str, limit: int = FAILED_LOG_REASON_MAX_LENGTH) -> str:
    """Clip a failure reason to the stored column width."""
    return reason if len(reason) <= limit else reason[:limit]


class DeadLetterSink:
    """Record rejected items in their own transaction."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        """Initialize the sink with a database session factory."""
        self._session_factory = session_factory or get_sync_session

    def record(self, raw: RawLog, error: Exception) -> bool:
        """Persist a failed-log row for ``raw``; return False if persistence fails.

        Persistence errors are logged and never raised to the caller.
        """
        reason = error.message if isinstance(error, NormalizeError) else str(error)
        reason = truncate_reason(reason or type(error).__name__)
        with closing(self._session_factory()) as session:
            try:
                session.add(
                    FailedLog(
                        tenant_id=raw.tenant_id,
                        raw_log_id=raw.id,
                        reason=reason,
                        payload_json=raw.payload_json,
                    )
                )
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                logger.exception(
                    "failed to dead-letter raw log %s for tenant %s", raw.id, raw.tenant_id
                )
                return False
        logger.warning(
            "dead-lettered raw log %s for tenant %s: %s", raw.id, raw.tenant_id, reason
        )
        return True
