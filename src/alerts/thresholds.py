"""Pure threshold checks — each returns a list of human-readable problems."""

from __future__ import annotations

from src.core.types import AlertThresholds, Metric, MetricThreshold

# Hard sanity ranges a configured bound must fall within.
SANITY_RANGES: dict[Metric, tuple[float, float]] = {
    Metric.TEMPERATURE: (-40.0, 80.0),
    Metric.HUMIDITY: (0.0, 100.0),
}

_UNITS: dict[Metric, str] = {
    Metric.TEMPERATURE: "°C",
    Metric.HUMIDITY: "%",
}


def check_bound_in_range(metric: Metric, label: str, value: float) -> list[str]:
    """Reject a single bound that lies outside the metric's sanity range."""
    lo, hi = SANITY_RANGES[metric]
    if lo <= value <= hi:
        return []
    unit = _UNITS[metric]
    return [
        f"{metric.value.capitalize()} {label} must be between"
        f" {lo:g}{unit} and {hi:g}{unit}"
    ]


def check_band_order(metric: Metric, band: MetricThreshold) -> list[str]:
    """Reject a band whose minimum is not strictly below its maximum."""
    if band.min < band.max:
        return []
    return [f"{metric.value.capitalize()} minimum must be less than maximum"]


def validate_thresholds(thresholds: AlertThresholds) -> list[str]:
    """Run every check for every metric; an empty list means valid."""
    errors: list[str] = []
    for metric in Metric:
        band = thresholds.for_metric(metric)
        errors.extend(check_bound_in_range(metric, "minimum", band.min))
        errors.extend(check_bound_in_range(metric, "maximum", band.max))
        errors.extend(check_band_order(metric, band))
    return errors
