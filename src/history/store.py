"""SeriesStore — bounded, aggregated, in-memory environment history.

Readings that arrive within ``aggregation_interval_secs`` of the newest
bucket are folded into it (sample-count-weighted average, running min/max);
anything else opens a new bucket.  Buckets older than the retention period
are purged and the total count is capped at ``max_data_points``, oldest
first.  Nothing is persisted — history is lost on restart.

Usage::

    store = SeriesStore(HistoryConfig(aggregation_interval_secs=300))
    store.add_sample(reading)
    points = store.query(TimePeriod.ONE_HOUR)
    stats = store.statistics(TimePeriod.ONE_HOUR)  # None when empty
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Sequence

import structlog

from src.core.config import HistoryConfig
from src.core.types import (
    Bucket,
    MetricStats,
    Reading,
    SeriesStatistics,
    StoreStatus,
    TimePeriod,
)

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]

# Rough per-bucket footprint used for the status estimate.
_BYTES_PER_BUCKET = 200

_METRICS = ("temperature", "humidity", "light")


def merge_buckets(buckets: Sequence[Bucket]) -> Bucket:
    """Collapse contiguous buckets into one, weighting by sample count.

    The result carries the last bucket's timestamp.
    """
    if not buckets:
        raise ValueError("merge_buckets requires at least one bucket")

    total = sum(b.sample_count for b in buckets)
    fields: dict[str, float | int] = {
        "timestamp": buckets[-1].timestamp,
        "sample_count": total,
    }
    for name in _METRICS:
        fields[name] = sum(getattr(b, name) * b.sample_count for b in buckets) / total
        fields[f"{name}_min"] = min(getattr(b, f"{name}_min") for b in buckets)
        fields[f"{name}_max"] = max(getattr(b, f"{name}_max") for b in buckets)
    return Bucket(**fields)  # type: ignore[arg-type]


def _merge_reading(bucket: Bucket, reading: Reading) -> None:
    """Fold a single reading into ``bucket`` in place."""
    existing = bucket.sample_count
    total = existing + 1
    for name in _METRICS:
        value: float = getattr(reading, name)
        setattr(bucket, name, (getattr(bucket, name) * existing + value) / total)
        setattr(bucket, f"{name}_min", min(getattr(bucket, f"{name}_min"), value))
        setattr(bucket, f"{name}_max", max(getattr(bucket, f"{name}_max"), value))
    bucket.sample_count = total
    bucket.timestamp = reading.timestamp


def _metric_stats(values: list[float]) -> MetricStats:
    return MetricStats(min=min(values), max=max(values), avg=sum(values) / len(values))


class SeriesStore:
    """Append-only, time-ordered, bounded collection of aggregated buckets.

    All read methods return copies; callers never see a bucket that a later
    ``add_sample`` may still mutate.
    """

    def __init__(
        self,
        config: HistoryConfig | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._config = config or HistoryConfig()
        self._clock = clock
        self._buckets: list[Bucket] = []

    @property
    def config(self) -> HistoryConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._buckets)

    # ── Mutation ────────────────────────────────────────────────

    def add_sample(self, reading: Reading) -> None:
        """Append or merge ``reading``, then apply retention and the size cap."""
        last = self._buckets[-1] if self._buckets else None

        if last is not None and self._should_merge(last, reading):
            _merge_reading(last, reading)
            logger.debug(
                "bucket_merged",
                timestamp=reading.timestamp,
                sample_count=last.sample_count,
            )
        else:
            self._buckets.append(Bucket.from_reading(reading))
            logger.debug(
                "bucket_added",
                timestamp=reading.timestamp,
                bucket_count=len(self._buckets),
            )

        self._purge_expired()
        self._enforce_capacity()

    def clear(self) -> None:
        self._buckets.clear()

    # ── Queries ─────────────────────────────────────────────────

    def latest(self) -> Bucket | None:
        """Newest bucket, or None when the store is empty."""
        if not self._buckets:
            return None
        return self._buckets[-1].model_copy()

    def query(self, period: TimePeriod) -> list[Bucket]:
        """Buckets within ``[now - period, now]``, downsampled for display.

        When more than ``max_display_points`` buckets match they are
        partitioned into equal contiguous chunks (the last may be shorter),
        each collapsed with :func:`merge_buckets`.  Output is oldest first.
        """
        now = self._clock()
        start = now - period.seconds
        selected = [b for b in self._buckets if start <= b.timestamp <= now]
        return self._downsample(selected)

    def statistics(self, period: TimePeriod) -> SeriesStatistics | None:
        """Min/max/mean of bucket values over ``query(period)``.

        The mean is across buckets, not reweighted by sample count.
        Returns None when the period holds no data.
        """
        buckets = self.query(period)
        if not buckets:
            return None

        return SeriesStatistics(
            temperature=_metric_stats([b.temperature for b in buckets]),
            humidity=_metric_stats([b.humidity for b in buckets]),
            light=_metric_stats([b.light for b in buckets]),
            data_point_count=len(buckets),
        )

    def status(self) -> StoreStatus:
        count = len(self._buckets)
        estimated = count * _BYTES_PER_BUCKET
        if estimated > 1024 * 1024:
            usage = f"{estimated / (1024 * 1024):.2f} MB"
        else:
            usage = f"{estimated / 1024:.2f} KB"

        return StoreStatus(
            data_point_count=count,
            oldest_data_point=self._buckets[0].timestamp if count else None,
            newest_data_point=self._buckets[-1].timestamp if count else None,
            memory_usage_estimate=usage,
        )

    # ── Internal ────────────────────────────────────────────────

    def _should_merge(self, last: Bucket, reading: Reading) -> bool:
        # Out-of-order readings (negative gap) always open a new bucket.
        gap = reading.timestamp - last.timestamp
        return 0 <= gap < self._config.aggregation_interval_secs

    def _purge_expired(self) -> None:
        cutoff = self._clock() - self._config.retention_hours * 3600.0
        kept = [b for b in self._buckets if b.timestamp >= cutoff]
        removed = len(self._buckets) - len(kept)
        if removed:
            self._buckets = kept
            logger.debug("buckets_expired", removed=removed, cutoff=cutoff)

    def _enforce_capacity(self) -> None:
        overflow = len(self._buckets) - self._config.max_data_points
        if overflow > 0:
            del self._buckets[:overflow]

    def _downsample(self, buckets: list[Bucket]) -> list[Bucket]:
        cap = self._config.max_display_points
        if len(buckets) <= cap:
            return [b.model_copy() for b in buckets]

        step = math.ceil(len(buckets) / cap)
        result: list[Bucket] = []
        for i in range(0, len(buckets), step):
            chunk = buckets[i:i + step]
            result.append(chunk[0].model_copy() if len(chunk) == 1 else merge_buckets(chunk))
        return result
