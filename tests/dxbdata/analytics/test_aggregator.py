"""
Tests for Windowed Aggregator

Tests grouping, missing-key and missing-metric exclusion, windows and
percentiles.
"""
import pytest
from datetime import date

from src.dxbdata.analytics.aggregator import (
    AggregationBucket,
    TimeWindow,
    WindowedAggregator,
    records_in_window,
)
from src.dxbdata.models.record import Record

NOW = date(2024, 8, 17)


def make_record(record_id, event_date, area="Dubai Marina", amount=100.0, **extra) -> Record:
    return Record(record_id=record_id, event_date=event_date, area_name=area, amount=amount, **extra)


@pytest.fixture
def records():
    return [
        make_record("1", date(2024, 1, 10), amount=100),
        make_record("2", date(2024, 1, 20), amount=300),
        make_record("3", date(2024, 2, 5), amount=None),
        make_record("4", date(2023, 12, 31), area="JVC", amount=50),
        make_record("5", date(2024, 3, 1), area="  ", amount=999),
    ]


class TestTimeWindow:

    def test_window_is_rolling_from_invocation(self):
        """Test window is rolling from invocation."""
        start = TimeWindow(months=6).start(NOW)

        assert start.date() == date(2024, 2, 17)

    def test_records_in_window_bounds(self, records):
        """Test records in window bounds."""
        kept = records_in_window(records, TimeWindow(months=6), now=date(2024, 7, 10), until=date(2024, 3, 1))

        assert [r.record_id for r in kept] == ["1", "2", "3"]


class TestWindowedAggregator:

    def test_groups_by_area_excluding_blank_keys(self, records):
        """Test groups by area excluding blank keys."""
        buckets = WindowedAggregator(now=NOW).aggregate(records, "area", "amount")

        assert [b.key for b in buckets] == [("Dubai Marina",), ("JVC",)]
        marina = buckets[0]
        assert marina.count == 3
        assert marina.samples == 2
        assert marina.sum == 400
        assert marina.mean == 200
        assert marina.min == 100
        assert marina.max == 300

    def test_period_keys(self, records):
        """Test grouping by calendar period."""
        agg = WindowedAggregator(now=NOW)

        months = [b.key[0] for b in agg.aggregate(records, "month")]
        quarters = [b.key[0] for b in agg.aggregate(records, "quarter")]
        years = [b.key[0] for b in agg.aggregate(records, "year")]

        assert months == ["2023-12", "2024-01", "2024-02", "2024-03"]
        assert quarters == ["2023Q4", "2024Q1"]
        assert years == [2023, 2024]

    def test_multi_key_grouping(self, records):
        """Test multi key grouping."""
        buckets = WindowedAggregator(now=NOW).aggregate(records, ["area", "month"], "amount")

        assert buckets[0].key == ("Dubai Marina", "2024-01")
        assert buckets[0].count == 2

    def test_callable_key_and_metric(self, records):
        """Test callable key and metric."""
        buckets = WindowedAggregator(now=NOW).aggregate(
            records,
            lambda r: "big" if (r.amount or 0) > 150 else "small",
            lambda r: r.amount,
        )

        assert [(b.key[0], b.count) for b in buckets] == [("big", 2), ("small", 3)]

    def test_group_without_samples_has_null_stats(self, records):
        """Test group without samples has null stats."""
        buckets = WindowedAggregator(now=NOW).aggregate(records, "month", "amount")
        february = [b for b in buckets if b.key == ("2024-02",)][0]

        assert february.count == 1
        assert february.samples == 0
        assert february.mean is None
        assert february.sum is None

    def test_percentiles_use_linear_interpolation(self):
        """Test percentiles use linear interpolation."""
        values = [make_record(str(i), date(2024, 1, 1), amount=float(v)) for i, v in enumerate([10, 20, 30, 40])]

        bucket = WindowedAggregator(now=NOW).aggregate(values, "area", "amount", percentiles=(0.5, 0.9))[0]

        assert bucket.percentiles[0.5] == 25
        assert bucket.percentiles[0.9] == pytest.approx(37)

    def test_window_excludes_old_records(self, records):
        """Test window excludes old records."""
        buckets = WindowedAggregator(now=date(2024, 3, 15)).aggregate(
            records, "area", "amount", window=TimeWindow(months=2)
        )

        assert [b.key for b in buckets] == [("Dubai Marina",)]
        assert buckets[0].count == 2

    def test_empty_input(self):
        """Test aggregating no records."""
        assert WindowedAggregator(now=NOW).aggregate([], "area", "amount") == []

    def test_unknown_key_is_rejected(self, records):
        """Test unknown key is rejected."""
        with pytest.raises(ValueError):
            WindowedAggregator(now=NOW).aggregate(records, "galaxy")

    def test_bucket_as_dict(self):
        """Test bucket as dict."""
        bucket = AggregationBucket(key=("JVC",), count=2, samples=2, sum=3.0, mean=1.555, min=1.0, max=2.0,
                                   percentiles={0.5: 1.555})

        row = bucket.as_dict(["area"])

        assert row["area"] == "JVC"
        assert row["mean"] == 1.56
        assert row["p50"] == 1.56
