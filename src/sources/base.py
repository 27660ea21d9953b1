"""Abstract telemetry source — connection lifecycle and the fetch contract."""

from __future__ import annotations

import abc
from types import TracebackType

from src.core.types import Reading


class Fetcher(abc.ABC):
    """Abstract base class for telemetry sources.

    Subclasses implement ``connect()``, ``close()`` and ``fetch_reading()``.
    Scheduling lives in :class:`~src.broadcast.scheduler.BroadcastScheduler`;
    a fetcher only answers one request at a time.

    ``fetch_reading()`` must return a validated :class:`Reading` or raise a
    :class:`~src.sources.exceptions.SourceError` subclass.

    Usage::

        async with SwitchBotFetcher(config) as fetcher:
            reading = await fetcher.fetch_reading()
    """

    @abc.abstractmethod
    async def connect(self) -> None:
        """Establish connection to the data source."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Close connection to the data source."""

    @abc.abstractmethod
    async def fetch_reading(self) -> Reading:
        """Fetch and validate the current sample."""

    async def test_connection(self) -> bool:
        """Return True if a reading can currently be fetched."""
        try:
            await self.fetch_reading()
        except Exception:
            return False
        return True

    async def __aenter__(self) -> Fetcher:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
