"""Idempotent merge of aggregated groups into the daily metric store."""

from __future__ import annotations

import logging
from contextlib import closing
from dataclasses import dataclass
from typing import Callable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ingestion.aggregation import DailyMetricGroup, GroupKey
from models import TenantDailyMetric
from services.database import get_sync_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpsertResult:
    """Rows created and updated by one upsert batch."""

    created: int
    updated: int

    @property
    def written(self) -> int:
        """Return the total number of rows touched."""
        return self.created + self.updated


class DailyMetricUpsertWriter:
    """Overwrite or insert daily metric rows keyed by (tenant, date, type)."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        """Initialize the writer with a database session factory."""
        self._session_factory = session_factory or get_sync_session

    def write(self, groups: Sequence[DailyMetricGroup]) -> UpsertResult:
        """Merge a batch of groups in one transaction.

        Existing rows have their count and sum replaced, never incremented, so
        re-running the same window produces identical values.
        """
        if not groups:
            return UpsertResult(created=0, updated=0)

        with closing(self._session_factory()) as session:
            try:
                existing = self._load_existing(session, groups)
                created = 0
                updated = 0
                for group in groups:
                    metric = existing.get(group.key)
                    if metric is None:
                        metric = TenantDailyMetric(
                            tenant_id=group.tenant_id,
                            event_date=group.event_date,
                            event_type=group.event_type,
                        )
                        session.add(metric)
                        existing[group.key] = metric
                        created += 1
                    else:
                        updated += 1
                    metric.event_count = group.event_count
                    metric.amount_sum = group.amount_sum
                session.commit()
            except Exception:
                session.rollback()
                raise
        logger.debug("upserted daily metrics: %d created, %d updated", created, updated)
        return UpsertResult(created=created, updated=updated)

    @staticmethod
    def _load_existing(
        session: Session, groups: Sequence[DailyMetricGroup]
    ) -> dict[GroupKey, TenantDailyMetric]:
        """Load candidate rows with one bounded lookup and index them by key."""
        tenant_ids = {group.tenant_id for group in groups}
        event_types = {group.event_type for group in groups}
        min_date = min(group.event_date for group in groups)
        max_date = max(group.event_date for group in groups)
        rows = session.scalars(
            select(TenantDailyMetric).where(
                TenantDailyMetric.tenant_id.in_(tenant_ids),
                TenantDailyMetric.event_type.in_(event_types),
                TenantDailyMetric.event_date.between(min_date, max_date),
            )
        ).all()
        return {(row.tenant_id, row.event_date, row.event_type): row for row in rows}
