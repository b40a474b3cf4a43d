"""Analytics — goal-completion reporting query engine."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Sequence

from milestone.core.aggregates import AggregateQueryAdapter, AnalyticsFilters
from milestone.core.backlog import BacklogEngine, BacklogReport, open_predicate
from milestone.core.buckets import Granularity, generate_buckets
from milestone.core.metrics import percent, rate, round_half_away
from milestone.core.order_stats import HistogramBucket, SampleSummary, summarize, validate_histogram_buckets
from milestone.core.reconcile import SeriesPoint, reconcile
from milestone.core.utils import CollaboratorError, InputError, parse_date, run_parallel, validate_range

if TYPE_CHECKING:
    from milestone.config import AnalyticsConfig
    from milestone.storage.database import Database

logger = logging.getLogger(__name__)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def resolve_range(
    start_date: date | str | None,
    end_date: date | str | None,
    default_days: int = 90,
    today: date | None = None,
) -> tuple[date, date]:
    """Fill a missing bound: end defaults to today, start to end minus default_days."""
    end = parse_date(end_date, "end_date") or (today or today_utc())
    start = parse_date(start_date, "start_date") or (end - timedelta(days=default_days))
    validate_range(start, end)
    return start, end


class AnalyticsQueryEngine:
    """Read-only query layer for goal analytics dashboards."""

    def __init__(self, db: Database, *, analytics_config: AnalyticsConfig | None = None):
        self.db = db
        self._config = analytics_config
        workers = analytics_config.query_workers if analytics_config else 5
        self.aggregates = AggregateQueryAdapter(db, max_workers=workers)
        self.backlog_engine = BacklogEngine(
            db,
            max_workers=workers,
            default_top_n=analytics_config.default_top_n if analytics_config else 10,
            max_top_n=analytics_config.max_top_n if analytics_config else 100,
        )

    def overview(self) -> dict:
        """KPI values: totals, percent complete, average days to complete."""
        row = self._read_one(
            """
            SELECT
                (SELECT COUNT(*) FROM goals) AS total_goals,
                (SELECT COUNT(*) FROM goals WHERE is_completed) AS completed_goals,
                (SELECT AVG(GREATEST(EXTRACT(EPOCH FROM (completed_at - created_at)), 0)) / 86400
                   FROM goals
                   WHERE completed_at IS NOT NULL AND created_at IS NOT NULL) AS avg_days_to_complete
            """,
            (),
        )
        total = int(row["total_goals"] or 0) if row else 0
        completed = int(row["completed_goals"] or 0) if row else 0
        avg_days = row["avg_days_to_complete"] if row else None

        return {
            "total_goals": total,
            "completed_goals": completed,
            "pct_complete": percent(completed, total),
            "avg_days_to_complete": round_half_away(float(avg_days), 2) if avg_days is not None else None,
        }

    def completions(
        self,
        start_date: date | str | None,
        end_date: date | str | None,
        granularity: Granularity | str = Granularity.WEEK,
    ) -> list[dict]:
        """Completed-goal counts per bucket, zero-filled across the range."""
        buckets = generate_buckets(start_date, end_date, granularity)
        if not buckets:
            return []
        filters = AnalyticsFilters(parse_date(start_date), parse_date(end_date))
        rows = self.aggregates.query("completed", filters, granularity)
        return [
            {"label": p.label, "start": p.start, "end": p.end, "completions": p.completed}
            for p in reconcile(buckets, [[], rows])
        ]

    def throughput(
        self,
        start_date: date | str | None,
        end_date: date | str | None,
        granularity: Granularity | str = Granularity.MONTH,
    ) -> list[SeriesPoint]:
        """Created vs completed per bucket with completion rate."""
        buckets = generate_buckets(start_date, end_date, granularity)
        if not buckets:
            return []
        filters = AnalyticsFilters(parse_date(start_date), parse_date(end_date))
        created_rows, completed_rows = self.aggregates.query_many(
            ["created", "completed"], filters, granularity,
        )
        series = reconcile(buckets, [created_rows, completed_rows])
        logger.debug(
            "Throughput %s..%s by %s: %d buckets, %d created labels, %d completed labels",
            buckets[0].range_start, buckets[-1].range_end, Granularity.parse(granularity).value,
            len(buckets), len(created_rows), len(completed_rows),
        )
        return series

    def time_to_complete(
        self,
        start_date: date | str | None,
        end_date: date | str | None,
        buckets: Sequence[HistogramBucket] | None = None,
    ) -> SampleSummary:
        """Days from creation to completion for goals completed in range."""
        hist_buckets = validate_histogram_buckets(buckets) if buckets is not None else None
        filters = AnalyticsFilters(parse_date(start_date, "start_date"), parse_date(end_date, "end_date"))

        where = ["completed_at IS NOT NULL", "created_at IS NOT NULL"]
        params: dict[str, Any] = {}
        if filters.start_date is not None:
            where.append("(completed_at)::date >= %(start)s")
            params["start"] = filters.start_date
        if filters.end_date is not None:
            where.append("(completed_at)::date <= %(end)s")
            params["end"] = filters.end_date

        rows = self._read(
            f"""
            SELECT EXTRACT(EPOCH FROM (completed_at - created_at)) / 86400.0 AS days
            FROM goals
            WHERE {' AND '.join(where)}
            """,
            params,
        )
        sample = []
        for r in rows:
            if r["days"] is None:
                continue
            days = float(r["days"])
            if math.isfinite(days) and days >= 0:
                sample.append(days)
        return summarize(sample, hist_buckets)

    def backlog(self, as_of: date | str | None = None, top_n: Any = None) -> BacklogReport:
        return self.backlog_engine.backlog(as_of=as_of, top_n=top_n)

    def overdue(
        self,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        as_of: date | str | None = None,
    ) -> dict:
        """Open overdue goals as of a date, and on-time rate for goals completed in range."""
        as_of_date = parse_date(as_of, "as_of") or today_utc()
        start = parse_date(start_date, "start_date")
        end = parse_date(end_date, "end_date")
        validate_range(start, end)

        params: dict[str, Any] = {"as_of": as_of_date}
        window = ""
        if start is not None and end is not None:
            window = "AND (completed_at)::date BETWEEN %(start)s AND %(end)s"
            params.update(start=start, end=end)

        calls = {
            "open": lambda: self._read_one(
                f"""
                SELECT COUNT(*) AS open_overdue FROM goals
                WHERE {open_predicate()}
                  AND target_date IS NOT NULL AND target_date < %(as_of)s
                """,
                params,
            ),
            "completed": lambda: self._read_one(
                f"""
                SELECT COUNT(*) AS completed_count,
                       COUNT(*) FILTER (WHERE (completed_at)::date <= target_date) AS completed_on_time
                FROM goals
                WHERE completed_at IS NOT NULL AND target_date IS NOT NULL
                {window}
                """,
                params,
            ),
        }
        results = run_parallel(self.db, calls, max_workers=2)
        open_row = results["open"]
        done_row = results["completed"]

        completed_count = int(done_row["completed_count"] or 0) if done_row else 0
        on_time = int(done_row["completed_on_time"] or 0) if done_row else 0
        return {
            "as_of": as_of_date.isoformat(),
            "open_overdue": int(open_row["open_overdue"] or 0) if open_row else 0,
            "completed_count": completed_count,
            "completed_on_time": on_time,
            "on_time_rate": rate(on_time, completed_count),
        }

    def by_student(
        self,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]:
        """Completions and average days-to-complete per student."""
        if limit < 1 or offset < 0:
            raise InputError("limit must be >= 1 and offset >= 0")
        filters = AnalyticsFilters(parse_date(start_date, "start_date"), parse_date(end_date, "end_date"))

        where = ["g.completed_at IS NOT NULL"]
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if filters.start_date is not None:
            where.append("(g.completed_at)::date >= %(start)s")
            params["start"] = filters.start_date
        if filters.end_date is not None:
            where.append("(g.completed_at)::date <= %(end)s")
            params["end"] = filters.end_date

        rows = self._read(
            f"""
            SELECT s.id AS student_id, s.name AS student_name, COUNT(*) AS completions,
                   AVG(GREATEST(EXTRACT(EPOCH FROM (g.completed_at - g.created_at)), 0)) / 86400 AS avg_days
            FROM goals g
            JOIN students s ON s.id = g.student_id
            WHERE {' AND '.join(where)}
            GROUP BY s.id, s.name
            ORDER BY completions DESC, s.id ASC
            LIMIT %(limit)s OFFSET %(offset)s
            """,
            params,
        )
        return [
            {
                "student_id": r["student_id"],
                "student_name": r["student_name"],
                "completions": int(r["completions"] or 0),
                "avg_days": round_half_away(float(r["avg_days"]), 2) if r["avg_days"] is not None else None,
            }
            for r in rows
        ]

    # --- internal helpers ---

    def _read(self, sql: str, params: Any) -> list[dict]:
        try:
            return self.db.execute(sql, params)
        except Exception as e:
            logger.exception("Analytics read failed")
            raise CollaboratorError(f"analytics read failed: {e}") from e

    def _read_one(self, sql: str, params: Any) -> dict | None:
        rows = self._read(sql, params)
        return rows[0] if rows else None
