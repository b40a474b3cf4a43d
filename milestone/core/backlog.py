"""Backlog aging: goals still open as of a reference date."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any

from milestone.core.metrics import round_half_away
from milestone.core.utils import CollaboratorError, InputError, parse_date, run_parallel

if TYPE_CHECKING:
    from milestone.storage.database import Database

logger = logging.getLogger(__name__)

# (key, max days open inclusive); None = no ceiling. Order is the output order.
AGE_BUCKETS: tuple[tuple[str, int | None], ...] = (
    ("0-7", 7),
    ("8-30", 30),
    ("31-90", 90),
    ("90+", None),
)

DEFAULT_TOP_N = 10
MAX_TOP_N = 100


def open_predicate(alias: str = "") -> str:
    """SQL form of is_open(): created on or before as_of, not completed on or before it."""
    p = f"{alias}." if alias else ""
    return (
        f"({p}created_at)::date <= %(as_of)s "
        f"AND ({p}completed_at IS NULL OR ({p}completed_at)::date > %(as_of)s)"
    )


def is_open(created: date, completed: date | None, as_of: date) -> bool:
    return created <= as_of and (completed is None or completed > as_of)


def age_bucket(days_open: int) -> str:
    for key, ceiling in AGE_BUCKETS:
        if ceiling is None or days_open <= ceiling:
            return key
    return AGE_BUCKETS[-1][0]


def clamp_top_n(value: Any, default: int = DEFAULT_TOP_N, maximum: int = MAX_TOP_N) -> int:
    """Coerce top_n: non-numeric or < 1 -> default, above maximum -> maximum."""
    try:
        n = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    if n < 1:
        return default
    return min(n, maximum)


def normalize_age_counts(rows: list[dict]) -> list[dict]:
    """All four age buckets in fixed order, zero-filled."""
    counts = {r["bucket"]: int(r["count"] or 0) for r in rows}
    return [{"bucket": key, "count": counts.get(key, 0)} for key, _ in AGE_BUCKETS]


def _age_case_sql() -> str:
    whens = " ".join(
        f"WHEN %(as_of)s - (created_at)::date <= {ceiling} THEN '{key}'"
        for key, ceiling in AGE_BUCKETS if ceiling is not None
    )
    return f"CASE {whens} ELSE '{AGE_BUCKETS[-1][0]}' END"


@dataclass(frozen=True)
class BacklogReport:
    as_of: date
    total_open: int
    overdue: int
    avg_days_open: float | None
    open_by_age: list[dict] = field(default_factory=list)
    top_groups: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "as_of": self.as_of.isoformat(),
            "total_open": self.total_open,
            "overdue": self.overdue,
            "avg_days_open": self.avg_days_open,
            "open_by_age": [dict(b) for b in self.open_by_age],
            "top_students": [dict(g) for g in self.top_groups],
        }


class BacklogEngine:
    """Runs the five independent backlog reads in parallel and assembles the report."""

    def __init__(
        self,
        db: Database,
        *,
        max_workers: int = 5,
        default_top_n: int = DEFAULT_TOP_N,
        max_top_n: int = MAX_TOP_N,
    ):
        self.db = db
        self.max_workers = max_workers
        self.default_top_n = default_top_n
        self.max_top_n = max_top_n

    def backlog(self, as_of: date | str | None = None, top_n: Any = None) -> BacklogReport:
        as_of_date = parse_date(as_of, "as_of") or datetime.now(timezone.utc).date()
        limit = clamp_top_n(top_n, default=self.default_top_n, maximum=self.max_top_n)
        params = {"as_of": as_of_date, "top_n": limit}
        where_open = open_predicate()

        calls = {
            "total": lambda: self._read_one(
                f"SELECT COUNT(*) AS total_open FROM goals WHERE {where_open}", params,
            ),
            "overdue": lambda: self._read_one(
                f"""
                SELECT COUNT(*) AS overdue FROM goals
                WHERE {where_open}
                  AND target_date IS NOT NULL AND target_date < %(as_of)s
                """,
                params,
            ),
            "avg": lambda: self._read_one(
                f"""
                SELECT AVG(%(as_of)s - (created_at)::date) AS avg_days_open
                FROM goals WHERE {where_open}
                """,
                params,
            ),
            "by_age": lambda: self._read(
                f"""
                SELECT {_age_case_sql()} AS bucket, COUNT(*) AS count
                FROM goals WHERE {where_open}
                GROUP BY bucket
                """,
                params,
            ),
            "top": lambda: self._read(
                f"""
                SELECT s.id AS student_id, s.name AS student_name, COUNT(*) AS open_count
                FROM goals g
                JOIN students s ON s.id = g.student_id
                WHERE {open_predicate("g")}
                GROUP BY s.id, s.name
                ORDER BY open_count DESC, s.id ASC
                LIMIT %(top_n)s
                """,
                params,
            ),
        }
        results = run_parallel(self.db, calls, max_workers=self.max_workers)

        total = results["total"]
        overdue = results["overdue"]
        avg = results["avg"]
        avg_days = avg.get("avg_days_open") if avg else None

        report = BacklogReport(
            as_of=as_of_date,
            total_open=int(total["total_open"] or 0) if total else 0,
            overdue=int(overdue["overdue"] or 0) if overdue else 0,
            avg_days_open=round_half_away(float(avg_days), 2) if avg_days is not None else None,
            open_by_age=normalize_age_counts(results["by_age"]),
            top_groups=[
                {
                    "student_id": r["student_id"],
                    "student_name": r["student_name"],
                    "open_count": int(r["open_count"]),
                }
                for r in results["top"]
            ],
        )
        logger.debug("Backlog as of %s: %d open, %d overdue", as_of_date, report.total_open, report.overdue)
        return report

    def _read(self, sql: str, params: dict) -> list[dict]:
        try:
            return self.db.execute(sql, params)
        except (InputError, CollaboratorError):
            raise
        except Exception as e:
            logger.exception("Backlog read failed")
            raise CollaboratorError(f"backlog read failed: {e}") from e

    def _read_one(self, sql: str, params: dict) -> dict | None:
        rows = self._read(sql, params)
        return rows[0] if rows else None
