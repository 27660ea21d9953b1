"""Domain types for the telemetry pipeline — readings, buckets, alerts, status."""

from __future__ import annotations

from enum import Enum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models published to subscribers — camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ── Telemetry ────────────────────────────────────────────────────


class Reading(WireModel):
    """A single validated sample from the sensor hub."""

    model_config = ConfigDict(frozen=True)

    temperature: float  # °C
    humidity: float  # %
    light: float  # lux
    timestamp: float


class Bucket(WireModel):
    """Aggregated time-series element; ``timestamp`` is the newest sample."""

    timestamp: float
    temperature: float
    humidity: float
    light: float
    temperature_min: float
    temperature_max: float
    humidity_min: float
    humidity_max: float
    light_min: float
    light_max: float
    sample_count: int = Field(default=1, ge=1)

    @classmethod
    def from_reading(cls, reading: Reading) -> Bucket:
        return cls(
            timestamp=reading.timestamp,
            temperature=reading.temperature,
            humidity=reading.humidity,
            light=reading.light,
            temperature_min=reading.temperature,
            temperature_max=reading.temperature,
            humidity_min=reading.humidity,
            humidity_max=reading.humidity,
            light_min=reading.light,
            light_max=reading.light,
        )


class TimePeriod(StrEnum):
    """Named lookback window for history queries."""

    ONE_HOUR = "1h"
    SIX_HOURS = "6h"
    TWELVE_HOURS = "12h"
    ONE_DAY = "24h"

    @property
    def seconds(self) -> float:
        return _PERIOD_HOURS[self] * 3600.0


_PERIOD_HOURS: dict[TimePeriod, int] = {
    TimePeriod.ONE_HOUR: 1,
    TimePeriod.SIX_HOURS: 6,
    TimePeriod.TWELVE_HOURS: 12,
    TimePeriod.ONE_DAY: 24,
}


class MetricStats(WireModel):
    min: float
    max: float
    avg: float


class SeriesStatistics(WireModel):
    """Per-metric statistics over the buckets of a period."""

    temperature: MetricStats
    humidity: MetricStats
    light: MetricStats
    data_point_count: int


class StoreStatus(WireModel):
    data_point_count: int
    oldest_data_point: float | None = None
    newest_data_point: float | None = None
    memory_usage_estimate: str = "0.00 KB"


# ── Alerts ───────────────────────────────────────────────────────


class Metric(StrEnum):
    """Metrics that carry alert thresholds."""

    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"


class Condition(StrEnum):
    """Direction of a threshold violation."""

    ABOVE = "above"
    BELOW = "below"


class AlertSeverity(StrEnum):
    WARNING = "warning"
    CRITICAL = "critical"


class AlertKey(Enum):
    """Identity of a monitored condition — closed over metric × direction."""

    TEMPERATURE_ABOVE = (Metric.TEMPERATURE, Condition.ABOVE)
    TEMPERATURE_BELOW = (Metric.TEMPERATURE, Condition.BELOW)
    HUMIDITY_ABOVE = (Metric.HUMIDITY, Condition.ABOVE)
    HUMIDITY_BELOW = (Metric.HUMIDITY, Condition.BELOW)

    @property
    def metric(self) -> Metric:
        return self.value[0]

    @property
    def condition(self) -> Condition:
        return self.value[1]

    @classmethod
    def of(cls, metric: Metric, condition: Condition) -> AlertKey:
        return cls((metric, condition))


class Alert(WireModel):
    """A threshold violation.

    ``triggered_at`` is fixed at activation; ``timestamp``, ``value``,
    ``severity`` and ``message`` follow the latest violating reading.
    """

    id: str
    metric: Metric
    condition: Condition
    severity: AlertSeverity
    value: float
    threshold: float
    timestamp: float
    triggered_at: float
    active: bool = True
    message: str = ""

    @property
    def key(self) -> AlertKey:
        return AlertKey.of(self.metric, self.condition)


class MetricThreshold(WireModel):
    """Allowed ``[min, max]`` band for one metric."""

    min: float
    max: float


class AlertThresholds(WireModel):
    """Threshold configuration for every alerting metric."""

    temperature: MetricThreshold = MetricThreshold(min=18.0, max=28.0)
    humidity: MetricThreshold = MetricThreshold(min=30.0, max=70.0)

    def for_metric(self, metric: Metric) -> MetricThreshold:
        if metric == Metric.TEMPERATURE:
            return self.temperature
        return self.humidity


class AlertStatistics(WireModel):
    active_count: int = 0
    total_today: int = 0
    temperature_alerts: int = 0
    humidity_alerts: int = 0


# ── Scheduler / Transport ────────────────────────────────────────


class SchedulerState(StrEnum):
    """Polling lifecycle of the broadcast scheduler."""

    IDLE = "idle"
    POLLING = "polling"
    PAUSED = "paused"


class SchedulerStatus(WireModel):
    """Read-only snapshot of the broadcast scheduler."""

    running: bool
    state: SchedulerState
    connected_count: int
    subscribed_count: int
    update_interval: float
    retry_count: int
    last_update: str | None = None


class ErrorPayload(WireModel):
    code: str
    message: str


class ConnectionStatus(WireModel):
    connected: bool
    timestamp: str


class AlertDismissed(WireModel):
    alert_id: str
