"""AlertEvaluator — level-triggered threshold alerts with bounded history."""

from __future__ import annotations

import datetime
import time
import uuid
from collections import deque
from collections.abc import Callable

import structlog

from src.alerts.thresholds import validate_thresholds
from src.core.config import AlertConfig
from src.core.exceptions import ValidationError
from src.core.types import (
    Alert,
    AlertKey,
    AlertSeverity,
    AlertStatistics,
    AlertThresholds,
    Condition,
    Metric,
    Reading,
)

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]

_UNITS: dict[Metric, str] = {
    Metric.TEMPERATURE: "°C",
    Metric.HUMIDITY: "%",
}


def _format_message(key: AlertKey, value: float, threshold: float) -> str:
    unit = _UNITS[key.metric]
    name = key.metric.value.capitalize()
    if key.condition == Condition.BELOW:
        return f"{name} too low: {value:.1f}{unit} (min: {threshold:g}{unit})"
    return f"{name} too high: {value:.1f}{unit} (max: {threshold:g}{unit})"


def _local_midnight(now: float) -> float:
    today = datetime.datetime.fromtimestamp(now).replace(
        hour=0, minute=0, second=0, microsecond=0,
    )
    return today.timestamp()


class AlertEvaluator:
    """Turns readings into the set of currently active alerts.

    Each :class:`AlertKey` is either inactive or holds exactly one active
    alert.  While a violation persists the same alert (same ``id``) is
    updated in place; when it clears, or is dismissed, the alert is
    deactivated and copied into a capped history.

    Severity is ``critical`` once the value lies strictly beyond
    ``threshold ± margin``, ``warning`` otherwise.  Margins are per metric.
    """

    def __init__(
        self,
        config: AlertConfig | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._config = config or AlertConfig()
        self._clock = clock
        self._thresholds = self._config.thresholds.model_copy(deep=True)
        self._active: dict[AlertKey, Alert] = {}
        self._history: deque[Alert] = deque(maxlen=self._config.history_size)

    # ── Thresholds ──────────────────────────────────────────────

    @property
    def thresholds(self) -> AlertThresholds:
        return self._thresholds.model_copy(deep=True)

    def update_thresholds(self, thresholds: AlertThresholds) -> None:
        """Replace the thresholds; raises ValidationError and keeps the old ones on failure."""
        errors = validate_thresholds(thresholds)
        if errors:
            raise ValidationError(f"Invalid thresholds: {', '.join(errors)}", errors)
        self._thresholds = thresholds.model_copy(deep=True)
        logger.info("alert_thresholds_updated", thresholds=self._thresholds.to_wire())

    def reset_thresholds(self) -> AlertThresholds:
        """Restore the configured default thresholds."""
        self._thresholds = self._config.thresholds.model_copy(deep=True)
        return self.thresholds

    def margin_for(self, metric: Metric) -> float:
        if metric == Metric.TEMPERATURE:
            return self._config.temperature_margin
        return self._config.humidity_margin

    # ── Evaluation ──────────────────────────────────────────────

    def evaluate(
        self,
        reading: Reading,
        thresholds: AlertThresholds | None = None,
    ) -> list[Alert]:
        """Apply ``reading`` to every AlertKey and return the active set."""
        bands = thresholds if thresholds is not None else self._thresholds

        violations: dict[AlertKey, float] = {}
        for metric in Metric:
            value: float = getattr(reading, metric.value)
            band = bands.for_metric(metric)
            if value < band.min:
                violations[AlertKey.of(metric, Condition.BELOW)] = band.min
            elif value > band.max:
                violations[AlertKey.of(metric, Condition.ABOVE)] = band.max

        for key in list(self._active):
            if key not in violations:
                self._deactivate(key, reason="cleared")

        for key, threshold in violations.items():
            value = getattr(reading, key.metric.value)
            severity = self.classify(key, value, threshold)
            message = _format_message(key, value, threshold)

            existing = self._active.get(key)
            if existing is not None:
                existing.value = value
                existing.threshold = threshold
                existing.timestamp = reading.timestamp
                existing.severity = severity
                existing.message = message
                continue

            alert = Alert(
                id=f"{key.metric.value}-{key.condition.value}-{uuid.uuid4().hex[:12]}",
                metric=key.metric,
                condition=key.condition,
                severity=severity,
                value=value,
                threshold=threshold,
                timestamp=reading.timestamp,
                triggered_at=reading.timestamp,
                message=message,
            )
            self._active[key] = alert
            logger.info(
                "alert_activated",
                alert_id=alert.id,
                metric=key.metric.value,
                condition=key.condition.value,
                severity=severity.value,
                value=value,
                threshold=threshold,
            )

        return self.active_alerts()

    def classify(self, key: AlertKey, value: float, threshold: float) -> AlertSeverity:
        """Severity of a violation of ``threshold`` in the direction of ``key``."""
        margin = self.margin_for(key.metric)
        if key.condition == Condition.BELOW:
            critical = value < threshold - margin
        else:
            critical = value > threshold + margin
        return AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING

    # ── Queries ─────────────────────────────────────────────────

    def active_alerts(self) -> list[Alert]:
        return [self._active[key].model_copy() for key in AlertKey if key in self._active]

    def history(self, limit: int | None = None) -> list[Alert]:
        """Deactivated alerts, most recent first."""
        items = [a.model_copy() for a in reversed(self._history)]
        return items[:limit] if limit else items

    def statistics(self) -> AlertStatistics:
        """Counts over alerts triggered since local midnight."""
        midnight = _local_midnight(self._clock())
        today = [a for a in self._history if a.triggered_at >= midnight]
        today.extend(a for a in self._active.values() if a.triggered_at >= midnight)

        return AlertStatistics(
            active_count=len(self._active),
            total_today=len(today),
            temperature_alerts=sum(1 for a in today if a.metric == Metric.TEMPERATURE),
            humidity_alerts=sum(1 for a in today if a.metric == Metric.HUMIDITY),
        )

    # ── Manual control ──────────────────────────────────────────

    def dismiss(self, alert_id: str) -> bool:
        """Deactivate the active alert with ``alert_id``; False if none matches."""
        for key, alert in self._active.items():
            if alert.id == alert_id:
                self._deactivate(key, reason="dismissed")
                return True
        return False

    def clear_all(self) -> None:
        for key in list(self._active):
            self._deactivate(key, reason="cleared_all")

    def reset(self) -> None:
        """Drop all alert state and restore default thresholds."""
        self._active.clear()
        self._history.clear()
        self.reset_thresholds()

    # ── Internal ────────────────────────────────────────────────

    def _deactivate(self, key: AlertKey, reason: str) -> None:
        alert = self._active.pop(key)
        alert.active = False
        self._history.append(alert.model_copy())
        logger.info(
            "alert_deactivated",
            alert_id=alert.id,
            metric=key.metric.value,
            condition=key.condition.value,
            reason=reason,
        )
