"""Read helpers over the daily metric store."""

from __future__ import annotations

from contextlib import closing
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models import TenantDailyMetric
from services.database import get_sync_session
from tenants.directory import TenantDirectory

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class DailyMetricFilter:
    """AND-combined filter; unset bounds and an empty type set are ignored."""

    tenant_id: str
    from_date: date | None = None
    to_date: date | None = None
    event_types: frozenset[str] = frozenset()

    @classmethod
    def build(
        cls,
        tenant_id: str,
        *,
        from_date: date | None = None,
        to_date: date | None = None,
        event_types: Iterable[str] | None = None,
    ) -> "DailyMetricFilter":
        """Build a filter, trimming types and dropping blanks and duplicates.

        Raises:
            ValueError: If ``from_date`` is after ``to_date``.
        """
        if from_date is not None and to_date is not None and from_date > to_date:
            raise ValueError("from_date must not be after to_date")
        cleaned = frozenset(
            value.strip() for value in (event_types or ()) if value and value.strip()
        )
        return cls(tenant_id=tenant_id, from_date=from_date, to_date=to_date, event_types=cleaned)


@dataclass(frozen=True)
class DailyMetricView:
    """Read-only view of one daily metric row."""

    tenant_id: int
    event_date: date
    event_type: str
    event_count: int
    amount_sum: Decimal


@dataclass(frozen=True)
class MetricPage:
    """One page of metric rows plus the total match count."""

    items: tuple[DailyMetricView, ...]
    total: int
    page: int
    size: int


def find_daily_metrics(
    metric_filter: DailyMetricFilter,
    *,
    page: int = 0,
    size: int = DEFAULT_PAGE_SIZE,
    session_factory: Callable[[], Session] | None = None,
    directory: TenantDirectory | None = None,
) -> MetricPage:
    """Return one page of metrics for an active tenant, newest date first.

    Raises:
        InvalidTenantIdentifier, TenantNotFound, TenantInactive: From tenant lookup.
        ValueError: If ``page`` or ``size`` is out of range.
    """
    if page < 0:
        raise ValueError("page must be >= 0")
    if not 1 <= size <= MAX_PAGE_SIZE:
        raise ValueError(f"size must be between 1 and {MAX_PAGE_SIZE}")
    session_factory = session_factory or get_sync_session
    tenant = (directory or TenantDirectory(session_factory)).resolve(metric_filter.tenant_id)

    conditions = [TenantDailyMetric.tenant_id == tenant.pk]
    if metric_filter.from_date is not None:
        conditions.append(TenantDailyMetric.event_date >= metric_filter.from_date)
    if metric_filter.to_date is not None:
        conditions.append(TenantDailyMetric.event_date <= metric_filter.to_date)
    if metric_filter.event_types:
        conditions.append(TenantDailyMetric.event_type.in_(sorted(metric_filter.event_types)))

    with closing(session_factory()) as session:
        total = session.scalar(
            select(func.count()).select_from(TenantDailyMetric).where(*conditions)
        )
        rows = session.scalars(
            select(TenantDailyMetric)
            .where(*conditions)
            .order_by(TenantDailyMetric.event_date.desc(), TenantDailyMetric.event_type.asc())
            .offset(page * size)
            .limit(size)
        ).all()
        items = tuple(
            DailyMetricView(
                tenant_id=row.tenant_id,
                event_date=row.event_date,
                event_type=row.event_type,
                event_count=row.event_count,
                amount_sum=row.amount_sum,
            )
            for row in rows
        )
    return MetricPage(items=items, total=int(total or 0), page=page, size=size)
