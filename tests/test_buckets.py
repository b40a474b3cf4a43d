"""Tests for milestone.core.buckets — label formula and bucket generation."""

from datetime import date, timedelta

import pytest

from milestone.core.buckets import (
    Granularity,
    TimeBucket,
    bucket_label,
    generate_buckets,
    week_label,
    week_start,
)
from milestone.core.utils import InputError


class TestWeekLabel:
    def test_first_week_of_year(self):
        # 2025-01-01 is a Wednesday
        assert week_label(date(2025, 1, 1)) == "2025-01"
        assert week_label(date(2025, 1, 4)) == "2025-01"

    def test_week_rolls_on_sunday(self):
        assert week_label(date(2025, 1, 5)) == "2025-02"
        assert week_label(date(2025, 1, 12)) == "2025-03"

    def test_year_starting_on_sunday(self):
        assert week_label(date(2023, 1, 1)) == "2023-01"
        assert week_label(date(2023, 1, 7)) == "2023-01"
        assert week_label(date(2023, 1, 8)) == "2023-02"

    def test_year_starting_on_monday(self):
        assert week_label(date(2024, 1, 1)) == "2024-01"
        assert week_label(date(2024, 1, 6)) == "2024-01"
        assert week_label(date(2024, 1, 7)) == "2024-02"

    def test_end_of_year(self):
        assert week_label(date(2024, 12, 29)) == "2024-53"
        assert week_label(date(2024, 12, 31)) == "2024-53"

    def test_not_iso(self):
        # ISO puts 2024-12-30 in 2025-W01
        assert week_label(date(2024, 12, 30)) != "2025-01"

    def test_deterministic(self):
        d = date(2025, 6, 18)
        assert week_label(d) == week_label(d)


class TestBucketLabel:
    def test_day(self):
        assert bucket_label(date(2025, 3, 7), "day") == "2025-03-07"

    def test_month(self):
        assert bucket_label(date(2025, 3, 7), Granularity.MONTH) == "2025-03"

    def test_week(self):
        assert bucket_label(date(2025, 1, 5), "week") == "2025-02"

    def test_granularity_case_insensitive(self):
        assert bucket_label(date(2025, 3, 7), "MONTH") == "2025-03"

    def test_unknown_granularity(self):
        with pytest.raises(InputError, match="granularity"):
            bucket_label(date(2025, 3, 7), "quarter")


class TestGenerateDay:
    def test_one_bucket_per_day(self):
        buckets = generate_buckets(date(2025, 1, 30), date(2025, 2, 2), "day")
        assert [b.label for b in buckets] == ["2025-01-30", "2025-01-31", "2025-02-01", "2025-02-02"]
        assert all(b.range_start == b.range_end for b in buckets)

    def test_single_day(self):
        buckets = generate_buckets("2025-05-05", "2025-05-05", "day")
        assert buckets == [TimeBucket("2025-05-05", date(2025, 5, 5), date(2025, 5, 5))]


class TestGenerateMonth:
    def test_full_month_ranges_for_partial_request(self):
        buckets = generate_buckets(date(2025, 1, 15), date(2025, 3, 10), "month")
        assert [b.label for b in buckets] == ["2025-01", "2025-02", "2025-03"]
        assert buckets[0].range_start == date(2025, 1, 1)
        assert buckets[0].range_end == date(2025, 1, 31)
        assert buckets[1].range_end == date(2025, 2, 28)
        assert buckets[2].range_end == date(2025, 3, 31)

    def test_leap_february(self):
        buckets = generate_buckets(date(2024, 2, 10), date(2024, 2, 11), "month")
        assert len(buckets) == 1
        assert buckets[0].range_end == date(2024, 2, 29)

    def test_across_year(self):
        buckets = generate_buckets(date(2024, 11, 30), date(2025, 1, 1), "month")
        assert [b.label for b in buckets] == ["2024-11", "2024-12", "2025-01"]


class TestGenerateWeek:
    def test_first_bucket_starts_on_sunday_before_start(self):
        buckets = generate_buckets(date(2025, 1, 1), date(2025, 1, 15), "week")
        assert buckets[0].range_start == date(2024, 12, 29)
        assert buckets[0].range_start.weekday() == 6
        assert [b.range_start for b in buckets] == [date(2024, 12, 29), date(2025, 1, 5), date(2025, 1, 12)]
        assert all(b.range_end - b.range_start == timedelta(days=6) for b in buckets)

    def test_first_label_uses_clipped_start(self):
        buckets = generate_buckets(date(2025, 1, 1), date(2025, 1, 15), "week")
        assert [b.label for b in buckets] == ["2025-01", "2025-02", "2025-03"]
        assert buckets[0].member_labels == ("2025-01",)

    def test_start_on_sunday(self):
        buckets = generate_buckets(date(2025, 1, 5), date(2025, 1, 5), "week")
        assert len(buckets) == 1
        assert buckets[0].range_start == date(2025, 1, 5)

    def test_year_crossing_week_covers_both_labels(self):
        buckets = generate_buckets(date(2024, 12, 20), date(2025, 1, 10), "week")
        crossing = [b for b in buckets if b.range_start == date(2024, 12, 29)][0]
        assert crossing.label == "2024-53"
        assert crossing.member_labels == ("2024-53", "2025-01")

    def test_week_start_helper(self):
        assert week_start(date(2025, 1, 1)) == date(2024, 12, 29)
        assert week_start(date(2024, 12, 29)) == date(2024, 12, 29)
        assert week_start(date(2025, 1, 4)) == date(2024, 12, 29)


class TestContinuity:
    @pytest.mark.parametrize("granularity", ["day", "week", "month"])
    @pytest.mark.parametrize("start,end", [
        (date(2024, 12, 1), date(2025, 2, 15)),
        (date(2023, 12, 31), date(2024, 1, 1)),
        (date(2024, 2, 28), date(2024, 3, 1)),
        (date(2020, 6, 15), date(2021, 7, 4)),
    ])
    def test_gapless_and_ordered(self, granularity, start, end):
        buckets = generate_buckets(start, end, granularity)
        assert buckets
        assert buckets[0].range_start <= start <= buckets[0].range_end
        assert buckets[-1].range_start <= end <= buckets[-1].range_end
        labels = [b.label for b in buckets]
        assert len(set(labels)) == len(labels)
        for prev, cur in zip(buckets, buckets[1:]):
            assert prev.range_start < cur.range_start
            assert cur.range_start == prev.range_end + timedelta(days=1)

    def test_same_inputs_same_output(self):
        a = generate_buckets("2025-01-01", "2025-03-01", "week")
        b = generate_buckets("2025-01-01", "2025-03-01", "week")
        assert a == b


class TestGenerateInputs:
    def test_missing_bound_returns_empty(self):
        assert generate_buckets(None, date(2025, 1, 1), "day") == []
        assert generate_buckets(date(2025, 1, 1), None, "week") == []
        assert generate_buckets("", "", "month") == []

    def test_start_after_end(self):
        with pytest.raises(InputError, match="after"):
            generate_buckets(date(2025, 2, 1), date(2025, 1, 1), "day")

    def test_bad_date_string(self):
        with pytest.raises(InputError, match="start_date"):
            generate_buckets("01/02/2025", "2025-02-01", "day")

    def test_unknown_granularity(self):
        with pytest.raises(InputError):
            generate_buckets(date(2025, 1, 1), date(2025, 1, 2), "hour")

    def test_to_dict(self):
        bucket = generate_buckets("2025-02-10", "2025-02-10", "month")[0]
        assert bucket.to_dict() == {"label": "2025-02", "start": "2025-02-01", "end": "2025-02-28"}
