"""Order statistics over elapsed-day samples: mean, median, interpolated percentile, histogram."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from milestone.core.metrics import round_half_away
from milestone.core.utils import InputError


@dataclass(frozen=True)
class HistogramBucket:
    """Inclusive [min, max] range. max may be math.inf for an open ceiling."""
    key: str
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> HistogramBucket:
        """Build from a loosely typed {key, min, max}; a null/missing max means no ceiling."""
        if not isinstance(raw, dict):
            raise InputError(f"histogram bucket must be an object, got {type(raw).__name__}")
        key = raw.get("key")
        if key is None or str(key).strip() == "":
            raise InputError("histogram bucket key is required")
        try:
            lo = float(raw.get("min", 0))
            hi = math.inf if raw.get("max") is None else float(raw["max"])
        except (TypeError, ValueError):
            raise InputError(f"histogram bucket {key!r} has non-numeric bounds") from None
        if math.isnan(lo) or math.isnan(hi):
            raise InputError(f"histogram bucket {key!r} has non-numeric bounds")
        return cls(key=str(key), min=lo, max=hi)


DEFAULT_HISTOGRAM_BUCKETS: tuple[HistogramBucket, ...] = (
    HistogramBucket("0-1", 0, 1),
    HistogramBucket("1-7", 1, 7),
    HistogramBucket("7-30", 7, 30),
    HistogramBucket("30-90", 30, 90),
    HistogramBucket("90+", 90, math.inf),
)


def validate_histogram_buckets(buckets: Sequence[HistogramBucket]) -> tuple[HistogramBucket, ...]:
    """Check a bucket list is ordered, contiguous and non-overlapping.

    Neighbouring buckets share a boundary (next.min == prev.max); a value on
    the boundary belongs to the earlier bucket.
    """
    if not buckets:
        raise InputError("at least one histogram bucket is required")
    seen: set[str] = set()
    prev: HistogramBucket | None = None
    for b in buckets:
        if b.key in seen:
            raise InputError(f"duplicate histogram bucket key: {b.key!r}")
        seen.add(b.key)
        if b.min > b.max:
            raise InputError(f"histogram bucket {b.key!r} has min {b.min} > max {b.max}")
        if prev is not None:
            if b.min < prev.max:
                raise InputError(f"histogram buckets {prev.key!r} and {b.key!r} overlap")
            if b.min > prev.max:
                raise InputError(f"gap between histogram buckets {prev.key!r} and {b.key!r}")
        prev = b
    return tuple(buckets)


def median(sorted_values: Sequence[float]) -> float | None:
    n = len(sorted_values)
    if n == 0:
        return None
    mid = n // 2
    if n % 2 == 1:
        return sorted_values[mid]
    return (sorted_values[mid - 1] + sorted_values[mid]) / 2


def percentile(sorted_values: Sequence[float], q: float) -> float | None:
    """Linear-interpolation percentile on rank q*(n-1), q in [0, 1]."""
    if not sorted_values:
        return None
    if not 0 <= q <= 1:
        raise InputError(f"percentile must be between 0 and 1, got {q}")
    k = q * (len(sorted_values) - 1)
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[f]
    weight = k - f
    return sorted_values[f] * (1 - weight) + sorted_values[c] * weight


def histogram(values: Sequence[float], buckets: Sequence[HistogramBucket]) -> list[dict]:
    counts = [0] * len(buckets)
    for v in values:
        for i, b in enumerate(buckets):
            if b.contains(v):
                counts[i] += 1
                break
        else:
            raise InputError(f"value {v} falls outside every histogram bucket")
    return [{"bucket": b.key, "count": c} for b, c in zip(buckets, counts)]


@dataclass(frozen=True)
class SampleSummary:
    count: int
    mean: float | None
    median: float | None
    p90: float | None
    histogram: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "mean_days": self.mean,
            "median_days": self.median,
            "p90_days": self.p90,
            "histogram": [dict(h) for h in self.histogram],
        }


def summarize(
    sample: Sequence[float],
    buckets: Sequence[HistogramBucket] | None = None,
) -> SampleSummary:
    """Summarize a sample of elapsed days. The input sequence is not modified."""
    hist_buckets = validate_histogram_buckets(buckets if buckets is not None else DEFAULT_HISTOGRAM_BUCKETS)
    values = sorted(float(v) for v in sample)
    for v in values:
        if not math.isfinite(v) or v < 0:
            raise InputError(f"sample values must be finite and non-negative, got {v}")

    if not values:
        return SampleSummary(
            count=0, mean=None, median=None, p90=None,
            histogram=[{"bucket": b.key, "count": 0} for b in hist_buckets],
        )

    return SampleSummary(
        count=len(values),
        mean=round_half_away(math.fsum(values) / len(values), 2),
        median=round_half_away(median(values), 2),
        p90=round_half_away(percentile(values, 0.9), 2),
        histogram=histogram(values, hist_buckets),
    )
