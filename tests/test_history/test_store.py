"""Tests for src/history/store.py — aggregation, retention, capacity, downsampling."""

from __future__ import annotations

import pytest

from src.core.config import HistoryConfig
from src.core.types import Bucket, Reading, TimePeriod
from src.history.store import SeriesStore, merge_buckets

NOW = 1_700_000_000.0


# ── Helpers ─────────────────────────────────────────────────────


def _reading(ts: float, temperature: float = 22.0, humidity: float = 50.0, light: float = 300.0) -> Reading:
    return Reading(temperature=temperature, humidity=humidity, light=light, timestamp=ts)


def _store(now: float = NOW, **kw: object) -> SeriesStore:
    return SeriesStore(HistoryConfig(**kw), clock=lambda: now)  # type: ignore[arg-type]


class _Clock:
    """Manually advanced clock."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# ── Aggregation ─────────────────────────────────────────────────


class TestAggregation:
    def test_first_reading_opens_bucket(self) -> None:
        store = _store()
        store.add_sample(_reading(NOW, temperature=21.5))

        latest = store.latest()
        assert latest is not None
        assert latest.sample_count == 1
        assert latest.temperature == 21.5
        assert latest.temperature_min == 21.5
        assert latest.temperature_max == 21.5

    def test_two_readings_within_interval_merge(self) -> None:
        store = _store(aggregation_interval_secs=300)
        store.add_sample(_reading(NOW - 120, temperature=20.0, humidity=40.0))
        store.add_sample(_reading(NOW, temperature=24.0, humidity=60.0))

        assert len(store) == 1
        bucket = store.latest()
        assert bucket is not None
        assert bucket.sample_count == 2
        assert bucket.temperature == pytest.approx(22.0)
        assert bucket.humidity == pytest.approx(50.0)
        assert bucket.temperature_min == 20.0
        assert bucket.temperature_max == 24.0
        assert bucket.timestamp == NOW

    def test_merge_is_sample_weighted(self) -> None:
        store = _store(aggregation_interval_secs=300)
        for offset, temp in ((0, 20.0), (10, 20.0), (20, 20.0), (30, 24.0)):
            store.add_sample(_reading(NOW - 100 + offset, temperature=temp))

        bucket = store.latest()
        assert bucket is not None
        assert bucket.sample_count == 4
        assert bucket.temperature == pytest.approx(21.0)

    def test_gap_equal_to_interval_opens_new_bucket(self) -> None:
        store = _store(aggregation_interval_secs=120)
        store.add_sample(_reading(NOW - 120))
        store.add_sample(_reading(NOW))
        assert len(store) == 2

    def test_bucket_count_equals_gaps_plus_one(self) -> None:
        store = _store(aggregation_interval_secs=60)
        # Gaps: 30 (merge), 90 (new), 10 (merge), 200 (new)
        timestamps = [NOW - 330, NOW - 300, NOW - 210, NOW - 200, NOW]
        for ts in timestamps:
            store.add_sample(_reading(ts))
        assert len(store) == 3

    def test_out_of_order_reading_never_merges_backward(self) -> None:
        store = _store(aggregation_interval_secs=300)
        store.add_sample(_reading(NOW, temperature=25.0))
        store.add_sample(_reading(NOW - 10, temperature=15.0))

        assert len(store) == 2
        points = store.query(TimePeriod.ONE_HOUR)
        assert [p.temperature for p in points] == [25.0, 15.0]
        assert all(p.sample_count == 1 for p in points)

    def test_zero_interval_never_merges(self) -> None:
        store = _store(aggregation_interval_secs=0)
        store.add_sample(_reading(NOW))
        store.add_sample(_reading(NOW))
        assert len(store) == 2


# ── Retention / Capacity ────────────────────────────────────────


class TestRetention:
    def test_expired_buckets_purged_on_add(self) -> None:
        clock = _Clock(NOW)
        store = SeriesStore(HistoryConfig(retention_hours=1, aggregation_interval_secs=0), clock=clock)
        store.add_sample(_reading(NOW - 3000))
        store.add_sample(_reading(NOW - 100))

        clock.now = NOW + 1000  # first bucket now older than an hour
        store.add_sample(_reading(NOW + 1000))

        timestamps = [b.timestamp for b in store.query(TimePeriod.SIX_HOURS)]
        assert timestamps == [NOW - 100, NOW + 1000]

    def test_bucket_at_cutoff_is_kept(self) -> None:
        store = _store(retention_hours=1, aggregation_interval_secs=0)
        store.add_sample(_reading(NOW - 3600))
        store.add_sample(_reading(NOW))
        assert len(store) == 2

    def test_capacity_drops_oldest(self) -> None:
        store = _store(max_data_points=5, aggregation_interval_secs=0)
        for i in range(12):
            store.add_sample(_reading(NOW - 100 + i))

        assert len(store) == 5
        status = store.status()
        assert status.oldest_data_point == NOW - 100 + 7
        assert status.newest_data_point == NOW - 100 + 11

    def test_capacity_never_exceeded(self) -> None:
        store = _store(max_data_points=3, aggregation_interval_secs=0)
        for i in range(50):
            store.add_sample(_reading(NOW - 50 + i))
            assert len(store) <= 3


# ── Queries ─────────────────────────────────────────────────────


class TestQuery:
    def test_query_filters_by_period(self) -> None:
        store = _store(aggregation_interval_secs=0)
        store.add_sample(_reading(NOW - 7200))
        store.add_sample(_reading(NOW - 1800))
        store.add_sample(_reading(NOW))

        assert len(store.query(TimePeriod.ONE_HOUR)) == 2
        assert len(store.query(TimePeriod.SIX_HOURS)) == 3

    def test_query_excludes_future_buckets(self) -> None:
        store = _store(aggregation_interval_secs=0)
        store.add_sample(_reading(NOW))
        store.add_sample(_reading(NOW + 60))
        assert [b.timestamp for b in store.query(TimePeriod.ONE_HOUR)] == [NOW]

    def test_query_returns_copies(self) -> None:
        store = _store()
        store.add_sample(_reading(NOW, temperature=22.0))

        points = store.query(TimePeriod.ONE_HOUR)
        points[0].temperature = 99.0
        latest = store.latest()
        assert latest is not None
        assert latest.temperature == 22.0

    def test_latest_empty(self) -> None:
        assert _store().latest() is None

    def test_downsampling_caps_points(self) -> None:
        store = _store(aggregation_interval_secs=0, max_display_points=10)
        for i in range(25):
            store.add_sample(_reading(NOW - 25 + i, temperature=float(i)))

        points = store.query(TimePeriod.ONE_HOUR)
        # ceil(25 / 10) = 3 per chunk → 9 chunks, the last holding one bucket
        assert len(points) == 9
        assert points[0].sample_count == 3
        assert points[0].temperature == pytest.approx(1.0)
        assert points[0].temperature_min == 0.0
        assert points[0].temperature_max == 2.0
        assert points[0].timestamp == NOW - 23
        assert points[-1].sample_count == 1
        assert points[-1].temperature == 24.0

    def test_downsampling_preserves_total_samples(self) -> None:
        store = _store(aggregation_interval_secs=0, max_display_points=7)
        for i in range(40):
            store.add_sample(_reading(NOW - 40 + i))
        points = store.query(TimePeriod.ONE_HOUR)
        assert len(points) <= 7
        assert sum(p.sample_count for p in points) == 40

    def test_clear(self) -> None:
        store = _store()
        store.add_sample(_reading(NOW))
        store.clear()
        assert len(store) == 0
        assert store.query(TimePeriod.ONE_HOUR) == []


class TestStatistics:
    def test_empty_returns_none(self) -> None:
        assert _store().statistics(TimePeriod.ONE_HOUR) is None

    def test_min_max_avg(self) -> None:
        store = _store(aggregation_interval_secs=0)
        store.add_sample(_reading(NOW - 20, temperature=20.0, humidity=40.0, light=100.0))
        store.add_sample(_reading(NOW - 10, temperature=22.0, humidity=50.0, light=200.0))
        store.add_sample(_reading(NOW, temperature=27.0, humidity=60.0, light=600.0))

        stats = store.statistics(TimePeriod.ONE_HOUR)
        assert stats is not None
        assert stats.data_point_count == 3
        assert stats.temperature.min == 20.0
        assert stats.temperature.max == 27.0
        assert stats.temperature.avg == pytest.approx(23.0)
        assert stats.humidity.avg == pytest.approx(50.0)
        assert stats.light.max == 600.0

    def test_wire_names(self) -> None:
        store = _store()
        store.add_sample(_reading(NOW))
        stats = store.statistics(TimePeriod.ONE_HOUR)
        assert stats is not None
        assert "dataPointCount" in stats.to_wire()


class TestStatus:
    def test_empty_status(self) -> None:
        status = _store().status()
        assert status.data_point_count == 0
        assert status.oldest_data_point is None
        assert status.memory_usage_estimate == "0.00 KB"

    def test_memory_estimate(self) -> None:
        store = _store(aggregation_interval_secs=0)
        for i in range(10):
            store.add_sample(_reading(NOW - 10 + i))
        # 10 buckets × 200 bytes
        assert store.status().memory_usage_estimate == "1.95 KB"


# ── merge_buckets ───────────────────────────────────────────────


class TestMergeBuckets:
    def test_requires_buckets(self) -> None:
        with pytest.raises(ValueError):
            merge_buckets([])

    def test_weighted_merge(self) -> None:
        a = Bucket.from_reading(_reading(NOW - 10, temperature=20.0))
        a.sample_count = 3
        b = Bucket.from_reading(_reading(NOW, temperature=24.0))

        merged = merge_buckets([a, b])
        assert merged.sample_count == 4
        assert merged.temperature == pytest.approx(21.0)
        assert merged.temperature_min == 20.0
        assert merged.temperature_max == 24.0
        assert merged.timestamp == NOW
