"""Environment history — bounded, aggregated in-memory time series."""

from src.history.store import SeriesStore, merge_buckets

__all__ = [
    "SeriesStore",
    "merge_buckets",
]
