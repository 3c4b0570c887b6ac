"""Persist fetched payloads verbatim as raw logs."""

from __future__ import annotations

import logging
from contextlib import closing
from datetime import datetime
from typing import Callable, Sequence

from sqlalchemy.orm import Session

from external.log_client import ExternalLogRecord
from models import RawLog
from services.database import get_sync_session
from tenants.directory import parse_tenant_id
from time_utils import utc_now

logger = logging.getLogger(__name__)


class RawIngestWriter:
    """Write one tenant's fetched records in a single transaction."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        """Initialize the writer with a database session factory."""
        self._session_factory = session_factory or get_sync_session

    def write(
        self,
        tenant_id: str,
        records: Sequence[ExternalLogRecord],
        *,
        now: datetime | None = None,
    ) -> int:
        """Store ``records`` for a tenant and return the number written.

        Every row in the batch shares one ``ingested_at`` timestamp. Either
        all rows commit or none do.
        """
        if not records:
            logger.info("no raw logs to write for tenant %s", tenant_id)
            return 0
        ingested_at = now or utc_now()
        pk = parse_tenant_id(tenant_id)
        with closing(self._session_factory()) as session:
            try:
                session.add_all(
                    [
                        RawLog(
                            tenant_id=pk,
                            occurred_at=record.occurred_at,
                            payload_json=record.payload,
                            ingested_at=ingested_at,
                        )
                        for record in records
                    ]
                )
                session.commit()
            except Exception:
                session.rollback()
                raise
        logger.info("wrote %d raw log(s) for tenant %s", len(records), tenant_id)
        return len(records)
