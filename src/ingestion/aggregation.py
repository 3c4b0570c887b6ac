"""Grouped daily aggregation over canonical events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, and_, func, or_, select
from sqlalchemy.orm import Session

from models import MONEY, NormalizedEvent
from ingestion.window import RunWindow

GroupKey = tuple[int, date, str]


@dataclass(frozen=True)
class DailyMetricGroup:
    """Count and amount sum for one (tenant, date, event type) key."""

    tenant_id: int
    event_date: date
    event_type: str
    event_count: int
    amount_sum: Decimal

    @property
    def key(self) -> GroupKey:
        """Return the natural key of the group."""
        return (self.tenant_id, self.event_date, self.event_type)


def _event_date():
    """Return the UTC calendar-date expression for an event."""
    return func.date(NormalizedEvent.event_time, type_=Date)


def fetch_group_page(
    session: Session,
    window: RunWindow,
    after: GroupKey | None,
    limit: int,
) -> list[DailyMetricGroup]:
    """Return up to ``limit`` groups ordered by key and strictly after ``after``.

    Events are included when ``window.start <= event_time < window.end``.
    """
    event_date = _event_date()
    conditions = [
        NormalizedEvent.event_time >= window.start,
        NormalizedEvent.event_time < window.end,
    ]
    if after is not None:
        tenant_id, last_date, event_type = after
        conditions.append(
            or_(
                NormalizedEvent.tenant_id > tenant_id,
                and_(NormalizedEvent.tenant_id == tenant_id, event_date > last_date),
                and_(
                    NormalizedEvent.tenant_id == tenant_id,
                    event_date == last_date,
                    NormalizedEvent.event_type > event_type,
                ),
            )
        )
    stmt = (
        select(
            NormalizedEvent.tenant_id,
            event_date.label("event_date"),
            NormalizedEvent.event_type,
            func.count().label("event_count"),
            func.coalesce(func.sum(NormalizedEvent.amount), 0, type_=MONEY).label("amount_sum"),
        )
        .where(*conditions)
        .group_by(NormalizedEvent.tenant_id, event_date, NormalizedEvent.event_type)
        .order_by(NormalizedEvent.tenant_id, event_date, NormalizedEvent.event_type)
        .limit(limit)
    )
    return [
        DailyMetricGroup(
            tenant_id=row.tenant_id,
            event_date=row.event_date,
            event_type=row.event_type,
            event_count=int(row.event_count),
            amount_sum=Decimal(row.amount_sum if row.amount_sum is not None else 0),
        )
        for row in session.execute(stmt)
    ]
