"""Grouped-count queries against the goals table.

Each query returns sparse rows, one per label that has at least one match.
Labels come from label_sql(), which must agree with buckets.bucket_label()
for every date; tests pin the two together on year-boundary fixtures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

from milestone.core.buckets import Granularity
from milestone.core.utils import CollaboratorError, InputError, run_parallel, validate_range

if TYPE_CHECKING:
    from milestone.storage.database import Database

logger = logging.getLogger(__name__)

# event type -> timestamp column
EVENT_COLUMNS = {
    "created": "created_at",
    "completed": "completed_at",
}


@dataclass(frozen=True)
class AggregateRow:
    label: str
    count: int
    observed_min_date: date | None = None
    observed_max_date: date | None = None


@dataclass(frozen=True)
class AnalyticsFilters:
    start_date: date | None = None
    end_date: date | None = None
    student_id: int | None = None

    def __post_init__(self):
        validate_range(self.start_date, self.end_date)


def label_sql(column: str, granularity: Granularity | str) -> str:
    """PostgreSQL expression producing bucket_label() for a timestamp column.

    Week: extract(doy) is 1-based, extract(dow) is 0=Sunday, and integer
    division floors for the non-negative operands here.
    """
    g = Granularity.parse(granularity)
    d = f"({column})::date"
    if g is Granularity.DAY:
        return f"to_char({d}, 'YYYY-MM-DD')"
    if g is Granularity.MONTH:
        return f"to_char({d}, 'YYYY-MM')"
    return (
        f"to_char({d}, 'YYYY') || '-' || lpad(("
        f"(extract(doy from {d})::int - 1 "
        f"+ extract(dow from date_trunc('year', {d}))::int) / 7 + 1"
        f")::text, 2, '0')"
    )


def _where(column: str, filters: AnalyticsFilters, require_column: bool) -> tuple[str, dict[str, Any]]:
    parts: list[str] = []
    params: dict[str, Any] = {}
    if require_column:
        parts.append(f"{column} IS NOT NULL")
    if filters.start_date is not None:
        parts.append(f"({column})::date >= %(start)s")
        params["start"] = filters.start_date
    if filters.end_date is not None:
        parts.append(f"({column})::date <= %(end)s")
        params["end"] = filters.end_date
    if filters.student_id is not None:
        parts.append("student_id = %(student_id)s")
        params["student_id"] = filters.student_id
    clause = f"WHERE {' AND '.join(parts)}" if parts else ""
    return clause, params


class AggregateQueryAdapter:
    """Issues grouped-count queries; the only piece of the series pipeline that touches the store."""

    def __init__(self, db: Database, *, max_workers: int = 5):
        self.db = db
        self.max_workers = max_workers

    def query(
        self,
        event_type: str,
        filters: AnalyticsFilters,
        granularity: Granularity | str,
    ) -> list[AggregateRow]:
        column = EVENT_COLUMNS.get(event_type)
        if column is None:
            raise InputError(
                f"invalid event_type: {event_type!r}. Must be one of: {', '.join(EVENT_COLUMNS)}"
            )
        label_expr = label_sql(column, granularity)
        where_clause, params = _where(column, filters, require_column=event_type != "created")

        sql = f"""
            SELECT {label_expr} AS label,
                   COUNT(*) AS cnt,
                   MIN(({column})::date) AS observed_min,
                   MAX(({column})::date) AS observed_max
            FROM goals
            {where_clause}
            GROUP BY label
            ORDER BY label
        """
        try:
            rows = self.db.execute(sql, params)
        except Exception as e:
            logger.exception("Aggregate query failed (event=%s, granularity=%s)", event_type, granularity)
            raise CollaboratorError(f"{event_type} aggregate query failed: {e}") from e

        return [
            AggregateRow(
                label=r["label"],
                count=int(r["cnt"] or 0),
                observed_min_date=r.get("observed_min"),
                observed_max_date=r.get("observed_max"),
            )
            for r in rows
        ]

    def query_many(
        self,
        event_types: list[str],
        filters: AnalyticsFilters,
        granularity: Granularity | str,
    ) -> list[list[AggregateRow]]:
        """Run one query per event type concurrently; results keep the input order."""
        calls = {
            event_type: (lambda et=event_type: self.query(et, filters, granularity))
            for event_type in event_types
        }
        results = run_parallel(self.db, calls, max_workers=self.max_workers)
        return [results[event_type] for event_type in event_types]
