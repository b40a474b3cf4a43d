"""Calendar bucket generation for time-series reports.

Labels produced here are the join key against grouped-count rows from the
store (see aggregates.label_sql). bucket_label() is the one label formula;
anything that needs a label for a date goes through it.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from milestone.core.utils import InputError, parse_date, validate_range


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @classmethod
    def parse(cls, value: Granularity | str) -> Granularity:
        if isinstance(value, Granularity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(g.value for g in cls)
            raise InputError(f"invalid granularity: {value!r}. Must be one of: {valid}") from None


@dataclass(frozen=True)
class TimeBucket:
    """One calendar interval of a continuous series."""
    label: str
    range_start: date
    range_end: date
    # Store labels covered by the in-range days of this bucket, primary label first.
    member_labels: tuple[str, ...] = field(default=())

    def __post_init__(self):
        if not self.member_labels:
            object.__setattr__(self, "member_labels", (self.label,))

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "start": self.range_start.isoformat(),
            "end": self.range_end.isoformat(),
        }


def week_label(day: date) -> str:
    """Sunday-aligned year-week label, YYYY-WW.

    WW = floor((day_of_year_offset + weekday_of_jan1) / 7) + 1 with Sunday=0.
    Not ISO-8601: week 1 is the (possibly partial) week containing Jan 1.
    """
    jan1 = date(day.year, 1, 1)
    offset = (day - jan1).days
    jan1_weekday = (jan1.weekday() + 1) % 7  # Monday=0 -> Sunday=0
    week = (offset + jan1_weekday) // 7 + 1
    return f"{day.year:04d}-{week:02d}"


def bucket_label(day: date, granularity: Granularity | str) -> str:
    g = Granularity.parse(granularity)
    if g is Granularity.DAY:
        return day.isoformat()
    if g is Granularity.MONTH:
        return f"{day.year:04d}-{day.month:02d}"
    return week_label(day)


def week_start(day: date) -> date:
    """Sunday on or before day."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def month_bounds(day: date) -> tuple[date, date]:
    last = calendar.monthrange(day.year, day.month)[1]
    return date(day.year, day.month, 1), date(day.year, day.month, last)


def _next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def _member_labels(first: date, last: date, granularity: Granularity) -> tuple[str, ...]:
    if granularity is not Granularity.WEEK:
        return (bucket_label(first, granularity),)
    labels = [week_label(first)]
    # A Sunday week only changes label where it crosses Jan 1.
    if last.year != first.year:
        labels.append(week_label(date(last.year, 1, 1)))
    return tuple(labels)


def generate_buckets(
    start_date: date | str | None,
    end_date: date | str | None,
    granularity: Granularity | str,
) -> list[TimeBucket]:
    """Ordered, gapless buckets covering [start_date, end_date].

    Returns [] when either bound is missing ("no buckets requested").
    Week and month buckets keep their full calendar extent; only their
    labels are computed from the part that falls inside the request.
    """
    g = Granularity.parse(granularity)
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")
    if start is None or end is None:
        return []
    validate_range(start, end)

    buckets: list[TimeBucket] = []
    if g is Granularity.DAY:
        cur = start
        while cur <= end:
            buckets.append(TimeBucket(cur.isoformat(), cur, cur))
            cur += timedelta(days=1)
    elif g is Granularity.MONTH:
        cur = date(start.year, start.month, 1)
        while cur <= end:
            first, last = month_bounds(cur)
            buckets.append(TimeBucket(bucket_label(cur, g), first, last))
            cur = _next_month(cur)
    else:
        cur = week_start(start)
        while cur <= end:
            last = cur + timedelta(days=6)
            clipped_first = max(cur, start)
            clipped_last = min(last, end)
            labels = _member_labels(clipped_first, clipped_last, g)
            buckets.append(TimeBucket(labels[0], cur, last, labels))
            cur += timedelta(days=7)
    return buckets
