"""Timer abstraction for the broadcast scheduler.

The scheduler never touches the event loop's clock directly; it asks a
:class:`TimerService` for one-shot and repeating callbacks.  Production code
uses :class:`AsyncioTimerService`; tests substitute a manually advanced
fake so polling and backoff run without real waits.
"""

from __future__ import annotations

import abc
import asyncio
from collections.abc import Callable

import structlog

logger = structlog.get_logger(__name__)

TimerCallback = Callable[[], None]


class TimerHandle(abc.ABC):
    """Cancellable reference to a scheduled callback."""

    @abc.abstractmethod
    def cancel(self) -> None:
        """Prevent any further invocation. Safe to call more than once."""

    @property
    @abc.abstractmethod
    def cancelled(self) -> bool:
        """Whether ``cancel()`` has been called."""


class TimerService(abc.ABC):
    """Schedules plain callbacks on the running event loop."""

    @abc.abstractmethod
    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Invoke ``callback`` once after ``delay`` seconds."""

    @abc.abstractmethod
    def call_every(self, interval: float, callback: TimerCallback) -> TimerHandle:
        """Invoke ``callback`` every ``interval`` seconds until cancelled."""


def _invoke(callback: TimerCallback) -> None:
    try:
        callback()
    except Exception:
        logger.exception("timer_callback_error", callback=getattr(callback, "__name__", repr(callback)))


class _OneShotHandle(TimerHandle):
    def __init__(self, loop: asyncio.AbstractEventLoop, delay: float, callback: TimerCallback) -> None:
        self._cancelled = False
        self._callback = callback
        self._handle = loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        if not self._cancelled:
            _invoke(self._callback)

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class _RepeatingHandle(TimerHandle):
    """Re-arms itself before each invocation so the cadence does not drift."""

    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: TimerCallback) -> None:
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._handle = loop.call_later(interval, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._handle = self._loop.call_later(self._interval, self._fire)
        _invoke(self._callback)

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioTimerService(TimerService):
    """TimerService backed by ``loop.call_later`` on the running loop."""

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        return _OneShotHandle(asyncio.get_running_loop(), delay, callback)

    def call_every(self, interval: float, callback: TimerCallback) -> TimerHandle:
        return _RepeatingHandle(asyncio.get_running_loop(), interval, callback)
