"""Raw hub payload validation — turns untrusted numbers into a Reading."""

from __future__ import annotations

import math
import time
from typing import Any

from src.core.types import Reading
from src.sources.exceptions import InvalidDataError

TEMPERATURE_RANGE = (-40.0, 80.0)
HUMIDITY_RANGE = (0.0, 100.0)
LIGHT_RANGE = (0.0, 100_000.0)


def _check_value(
    raw: Any,
    label: str,
    bounds: tuple[float, float],
    unit: str,
) -> tuple[float | None, str | None]:
    if raw is None:
        return None, f"{label} is required"
    if isinstance(raw, bool):
        return None, f"{label} must be a valid number"
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None, f"{label} must be a valid number"
    if math.isnan(value):
        return None, f"{label} must be a valid number"

    lo, hi = bounds
    if value < lo or value > hi:
        return None, f"{label} must be between {lo:g}{unit} and {hi:g}{unit}"
    return value, None


def validate_reading(raw: Any, timestamp: float | None = None) -> Reading:
    """Validate a raw ``{temperature, humidity, lightLevel}`` payload.

    Collects every problem before raising :class:`InvalidDataError`.
    """
    if not isinstance(raw, dict):
        raise InvalidDataError(
            "Invalid environment data: expected object",
            ["Invalid data format: expected object"],
        )

    temperature, t_err = _check_value(raw.get("temperature"), "Temperature", TEMPERATURE_RANGE, "°C")
    humidity, h_err = _check_value(raw.get("humidity"), "Humidity", HUMIDITY_RANGE, "%")
    light, l_err = _check_value(raw.get("lightLevel"), "Light level", LIGHT_RANGE, " lux")

    errors = [e for e in (t_err, h_err, l_err) if e is not None]
    if errors:
        raise InvalidDataError(f"Invalid environment data: {', '.join(errors)}", errors)

    return Reading(
        temperature=temperature,  # type: ignore[arg-type]
        humidity=humidity,  # type: ignore[arg-type]
        light=light,  # type: ignore[arg-type]
        timestamp=timestamp if timestamp is not None else time.time(),
    )


def is_reasonable(reading: Reading) -> bool:
    """True if the reading looks like a plausible indoor environment."""
    return (
        10 <= reading.temperature <= 40
        and 20 <= reading.humidity <= 90
        and 0 <= reading.light <= 10_000
    )
