"""Simulated sensor hub for local runs without hardware.

Produces a bounded random walk around configured base values and can
inject source failures at a configurable rate.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable

from src.core.config import SimulatorConfig
from src.core.types import Reading
from src.sources.base import Fetcher
from src.sources.exceptions import SourceUnavailableError
from src.sources.validation import validate_reading


class SimulatedFetcher(Fetcher):
    """Drop-in replacement for SwitchBotFetcher.

    Usage::

        fetcher = SimulatedFetcher(SimulatorConfig(seed=42, failure_rate=0.1))
        reading = await fetcher.fetch_reading()
    """

    def __init__(
        self,
        config: SimulatorConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or SimulatorConfig()
        self._clock = clock
        self._rng = random.Random(self._config.seed)
        self._temperature = self._config.base_temperature
        self._humidity = self._config.base_humidity
        self._light = self._config.base_light
        self._fetch_count = 0

    @property
    def fetch_count(self) -> int:
        return self._fetch_count

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def fetch_reading(self) -> Reading:
        self._fetch_count += 1
        if self._config.failure_rate > 0 and self._rng.random() < self._config.failure_rate:
            raise SourceUnavailableError("Simulated hub did not respond")

        drift = self._config.drift
        self._temperature = min(max(self._temperature + self._rng.uniform(-drift, drift), -40.0), 80.0)
        self._humidity = min(max(self._humidity + self._rng.uniform(-drift, drift) * 2, 0.0), 100.0)
        self._light = min(max(self._light + self._rng.uniform(-drift, drift) * 20, 0.0), 100_000.0)

        return validate_reading(
            {
                "temperature": round(self._temperature, 1),
                "humidity": round(self._humidity, 1),
                "lightLevel": round(self._light),
            },
            timestamp=self._clock(),
        )
