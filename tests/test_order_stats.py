"""Tests for milestone.core.order_stats — median, percentile, histogram, summaries."""

import math

import pytest

from milestone.core.order_stats import (
    DEFAULT_HISTOGRAM_BUCKETS,
    HistogramBucket,
    histogram,
    median,
    percentile,
    summarize,
    validate_histogram_buckets,
)
from milestone.core.utils import InputError


class TestMedian:
    def test_odd(self):
        assert median([1, 2, 3]) == 2

    def test_even(self):
        assert median([1, 2, 3, 4]) == 2.5

    def test_single(self):
        assert median([7.5]) == 7.5

    def test_empty(self):
        assert median([]) is None


class TestPercentile:
    def test_interpolates(self):
        assert percentile([10, 20, 30, 40, 50], 0.9) == pytest.approx(46.0)

    def test_exact_rank(self):
        assert percentile([10, 20, 30, 40, 50], 0.5) == 30
        assert percentile([10, 20, 30, 40, 50], 1.0) == 50
        assert percentile([10, 20, 30, 40, 50], 0.0) == 10

    def test_single_value(self):
        assert percentile([4.0], 0.9) == 4.0

    def test_out_of_range_q(self):
        with pytest.raises(InputError):
            percentile([1, 2], 1.5)


class TestHistogram:
    def test_boundary_goes_to_earlier_bucket(self):
        counts = histogram([1.0, 7.0, 30.0], DEFAULT_HISTOGRAM_BUCKETS)
        assert [h["count"] for h in counts] == [1, 1, 1, 0, 0]

    def test_fractional_values_between_integers(self):
        counts = histogram([1.5, 6.9, 7.01], DEFAULT_HISTOGRAM_BUCKETS)
        assert [h["count"] for h in counts] == [0, 2, 1, 0, 0]

    def test_value_outside_every_bucket(self):
        buckets = [HistogramBucket("small", 0, 5)]
        with pytest.raises(InputError, match="outside"):
            histogram([6], buckets)


class TestValidateBuckets:
    def test_defaults_valid(self):
        assert validate_histogram_buckets(DEFAULT_HISTOGRAM_BUCKETS) == DEFAULT_HISTOGRAM_BUCKETS

    def test_empty(self):
        with pytest.raises(InputError):
            validate_histogram_buckets([])

    def test_overlap(self):
        with pytest.raises(InputError, match="overlap"):
            validate_histogram_buckets([HistogramBucket("a", 0, 10), HistogramBucket("b", 5, 20)])

    def test_gap(self):
        with pytest.raises(InputError, match="gap"):
            validate_histogram_buckets([HistogramBucket("a", 0, 10), HistogramBucket("b", 11, 20)])

    def test_inverted(self):
        with pytest.raises(InputError, match="min"):
            validate_histogram_buckets([HistogramBucket("a", 5, 1)])

    def test_duplicate_keys(self):
        with pytest.raises(InputError, match="duplicate"):
            validate_histogram_buckets([HistogramBucket("a", 0, 1), HistogramBucket("a", 1, 2)])


class TestBucketFromDict:
    def test_null_max_is_open(self):
        b = HistogramBucket.from_dict({"key": "90+", "min": 90, "max": None})
        assert b.max == math.inf
        assert b.contains(10_000)

    def test_missing_max_is_open(self):
        assert HistogramBucket.from_dict({"key": "x", "min": 1}).max == math.inf

    def test_non_numeric(self):
        with pytest.raises(InputError):
            HistogramBucket.from_dict({"key": "x", "min": "a", "max": 3})

    def test_missing_key(self):
        with pytest.raises(InputError, match="key"):
            HistogramBucket.from_dict({"min": 0, "max": 1})

    def test_not_an_object(self):
        with pytest.raises(InputError):
            HistogramBucket.from_dict([0, 1])


class TestSummarize:
    def test_mixed_sample(self):
        s = summarize([50, 1, 10, 3, 2])
        assert s.count == 5
        assert s.mean == 13.2
        assert s.median == 3.0
        assert s.p90 == 34.0
        assert s.histogram == [
            {"bucket": "0-1", "count": 1},
            {"bucket": "1-7", "count": 2},
            {"bucket": "7-30", "count": 1},
            {"bucket": "30-90", "count": 1},
            {"bucket": "90+", "count": 0},
        ]

    def test_input_not_mutated(self):
        sample = [5.0, 1.0, 3.0]
        summarize(sample)
        assert sample == [5.0, 1.0, 3.0]

    def test_empty_sample(self):
        s = summarize([])
        assert s.count == 0
        assert s.mean is None and s.median is None and s.p90 is None
        assert [h["count"] for h in s.histogram] == [0, 0, 0, 0, 0]

    def test_custom_buckets(self):
        buckets = [HistogramBucket("fast", 0, 2), HistogramBucket("slow", 2, math.inf)]
        s = summarize([0.5, 2.0, 2.5], buckets)
        assert s.histogram == [{"bucket": "fast", "count": 2}, {"bucket": "slow", "count": 1}]

    def test_rounding(self):
        s = summarize([1.005, 1.005])
        assert s.mean == 1.01

    def test_negative_rejected(self):
        with pytest.raises(InputError):
            summarize([1.0, -0.5])

    def test_nan_rejected(self):
        with pytest.raises(InputError):
            summarize([math.nan])

    def test_to_dict_keys(self):
        d = summarize([2.0]).to_dict()
        assert d["count"] == 1
        assert d["mean_days"] == 2.0
        assert d["median_days"] == 2.0
        assert d["p90_days"] == 2.0
        assert len(d["histogram"]) == len(DEFAULT_HISTOGRAM_BUCKETS)


class TestHistogramExhaustive:
    def test_every_key_present_and_counts_sum(self):
        sample = [0, 0.5, 1, 1.2, 6.99, 7, 29, 30.5, 89, 90, 90.01, 400]
        s = summarize(sample)
        assert [h["bucket"] for h in s.histogram] == [b.key for b in DEFAULT_HISTOGRAM_BUCKETS]
        assert all(isinstance(h["count"], int) and h["count"] >= 0 for h in s.histogram)
        assert sum(h["count"] for h in s.histogram) == s.count == len(sample)
