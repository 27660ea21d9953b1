"""Core module — config, types, logging, exceptions."""

from src.core.config import Settings, get_settings, load_settings, reset_settings
from src.core.exceptions import ValidationError
from src.core.logging import setup_logging
from src.core.types import (
    Alert,
    AlertKey,
    AlertSeverity,
    AlertThresholds,
    Bucket,
    Condition,
    Metric,
    MetricThreshold,
    Reading,
    TimePeriod,
)

__all__ = [
    "Alert",
    "AlertKey",
    "AlertSeverity",
    "AlertThresholds",
    "Bucket",
    "Condition",
    "Metric",
    "MetricThreshold",
    "Reading",
    "Settings",
    "TimePeriod",
    "ValidationError",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
