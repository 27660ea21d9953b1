"""Threshold alerting — level-triggered evaluation with bounded history."""

from src.alerts.evaluator import AlertEvaluator
from src.alerts.thresholds import (
    SANITY_RANGES,
    check_band_order,
    check_bound_in_range,
    validate_thresholds,
)

__all__ = [
    "SANITY_RANGES",
    "AlertEvaluator",
    "check_band_order",
    "check_bound_in_range",
    "validate_thresholds",
]
