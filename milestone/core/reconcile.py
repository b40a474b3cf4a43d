"""Zero-fill sparse aggregate rows onto a continuous bucket sequence."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Sequence

from milestone.core.aggregates import AggregateRow
from milestone.core.buckets import TimeBucket
from milestone.core.metrics import rate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeriesPoint:
    label: str
    start: str
    end: str
    created: int = 0
    completed: int = 0
    completion_rate: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def count_by_label(rows: Sequence[AggregateRow]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for row in rows:
        counts[row.label] = counts.get(row.label, 0) + int(row.count or 0)
    return counts


def reconcile(
    buckets: Sequence[TimeBucket],
    row_sets: Sequence[Sequence[AggregateRow]],
) -> list[SeriesPoint]:
    """One SeriesPoint per bucket, in bucket order.

    row_sets[0] holds "created" rows and row_sets[1] "completed" rows; a
    missing set counts as empty. Rows join on label only, and a point's
    start/end always come from the bucket, never from observed row dates.
    """
    created_map = count_by_label(row_sets[0]) if len(row_sets) > 0 else {}
    completed_map = count_by_label(row_sets[1]) if len(row_sets) > 1 else {}

    points: list[SeriesPoint] = []
    matched: set[str] = set()
    for bucket in buckets:
        created = sum(created_map.get(lbl, 0) for lbl in bucket.member_labels)
        completed = sum(completed_map.get(lbl, 0) for lbl in bucket.member_labels)
        matched.update(bucket.member_labels)
        points.append(SeriesPoint(
            label=bucket.label,
            start=bucket.range_start.isoformat(),
            end=bucket.range_end.isoformat(),
            created=created,
            completed=completed,
            completion_rate=rate(completed, created),
        ))

    unmatched = (created_map.keys() | completed_map.keys()) - matched
    if unmatched:
        logger.debug("Dropped %d aggregate labels outside the bucket range: %s", len(unmatched), sorted(unmatched))
    return points
