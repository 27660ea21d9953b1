"""BroadcastScheduler — fetch → store → evaluate → publish, with backoff.

State machine::

    IDLE ──first subscriber──▶ POLLING ──max_retries failures──▶ PAUSED
      ▲                          │  ▲                               │
      └────last unsubscribe──────┘  └──retry_delay, subscribers>0───┘

Entering POLLING from IDLE runs one cycle immediately, then arms a
repeating timer at ``update_interval_secs``.  Cycles are serialised: a
timer tick that finds a cycle in flight is skipped, a manual
``trigger_update()`` waits its turn.  Every failure is converted into an
``error`` broadcast; nothing escapes the cycle.  Resuming from PAUSED
starts a fresh retry budget.

Usage::

    scheduler = BroadcastScheduler(fetcher, store, evaluator, config)
    await scheduler.connect(subscriber)
    await scheduler.subscribe(subscriber.subscriber_id)  # starts polling
    ...
    await scheduler.shutdown()
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine
from typing import Any

import pydantic
import structlog

from src.alerts.evaluator import AlertEvaluator
from src.broadcast.events import EventName, iso_timestamp
from src.broadcast.subscribers import Subscriber, SubscriberRegistry
from src.broadcast.timers import AsyncioTimerService, TimerHandle, TimerService
from src.core.config import BroadcastConfig
from src.core.exceptions import ValidationError
from src.core.types import (
    AlertDismissed,
    ConnectionStatus,
    ErrorPayload,
    Reading,
    SchedulerState,
    SchedulerStatus,
    TimePeriod,
)
from src.history.store import SeriesStore
from src.sources.base import Fetcher
from src.sources.exceptions import SourceError

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


def _error_payload(exc: Exception, fallback_code: str, fallback_message: str) -> ErrorPayload:
    if isinstance(exc, SourceError):
        return ErrorPayload(code=exc.code, message=str(exc))
    return ErrorPayload(code=fallback_code, message=fallback_message)


class BroadcastScheduler:
    """Owns the polling cadence, subscriber lifecycle and failure backoff."""

    def __init__(
        self,
        fetcher: Fetcher,
        store: SeriesStore,
        evaluator: AlertEvaluator,
        config: BroadcastConfig | None = None,
        timers: TimerService | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._evaluator = evaluator
        self._config = config or BroadcastConfig()
        self._timers = timers or AsyncioTimerService()
        self._clock = clock

        self._registry = SubscriberRegistry(send_timeout=self._config.send_timeout_secs)
        self._state = SchedulerState.IDLE
        self._retry_count = 0
        self._last_reading: Reading | None = None

        self._interval_handle: TimerHandle | None = None
        self._resume_handle: TimerHandle | None = None
        self._cycle_lock = asyncio.Lock()
        self._pending: set[asyncio.Task[Any]] = set()

    # ── Properties ──────────────────────────────────────────────

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state == SchedulerState.POLLING

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def last_reading(self) -> Reading | None:
        return self._last_reading

    @property
    def config(self) -> BroadcastConfig:
        return self._config.model_copy()

    @property
    def store(self) -> SeriesStore:
        return self._store

    @property
    def evaluator(self) -> AlertEvaluator:
        return self._evaluator

    @property
    def subscribers(self) -> SubscriberRegistry:
        return self._registry

    # ── Connection lifecycle ────────────────────────────────────

    async def connect(self, subscriber: Subscriber) -> None:
        """Register a transport and greet it with status and the last reading."""
        self._registry.add(subscriber)
        logger.info("subscriber_connected", subscriber_id=subscriber.subscriber_id)

        await self._registry.send_to(
            subscriber.subscriber_id,
            EventName.CONNECTION_STATUS,
            ConnectionStatus(connected=True, timestamp=iso_timestamp(self._clock())),
        )
        if self._last_reading is not None:
            await self._registry.send_to(
                subscriber.subscriber_id,
                EventName.ENVIRONMENT_UPDATE,
                self._last_reading,
            )

    async def disconnect(self, subscriber_id: str) -> None:
        was_subscribed = self._registry.is_subscribed(subscriber_id)
        if self._registry.remove(subscriber_id) is None:
            return
        logger.info("subscriber_disconnected", subscriber_id=subscriber_id)
        if was_subscribed and self._registry.subscribed_count == 0:
            self._stop_polling()

    async def subscribe(self, subscriber_id: str) -> None:
        """Opt a connected subscriber into live updates; the first one starts polling."""
        if not self._registry.subscribe(subscriber_id):
            logger.debug("subscribe_ignored", subscriber_id=subscriber_id)
            return
        logger.info(
            "subscriber_subscribed",
            subscriber_id=subscriber_id,
            subscribed_count=self._registry.subscribed_count,
        )
        if self._registry.subscribed_count == 1 and self._state == SchedulerState.IDLE:
            await self._start_polling()

    async def unsubscribe(self, subscriber_id: str) -> None:
        """Opt out of live updates; the last one stops polling."""
        if not self._registry.unsubscribe(subscriber_id):
            return
        logger.info(
            "subscriber_unsubscribed",
            subscriber_id=subscriber_id,
            subscribed_count=self._registry.subscribed_count,
        )
        if self._registry.subscribed_count == 0:
            self._stop_polling()

    # ── Manual operations ───────────────────────────────────────

    async def trigger_update(self) -> bool:
        """Run one cycle now, outside the timer. Returns True on success."""
        return await self._run_cycle()

    async def send_history(self, subscriber_id: str, period: TimePeriod | str) -> bool:
        """Answer a subscriber's history request with a ``historyUpdate``."""
        try:
            resolved = TimePeriod(period)
        except ValueError:
            await self._registry.send_to(
                subscriber_id,
                EventName.ERROR,
                ErrorPayload(code="HISTORY_ERROR", message=f"Unknown history period: {period}"),
            )
            return False
        return await self._registry.send_to(
            subscriber_id,
            EventName.HISTORY_UPDATE,
            self._store.query(resolved),
        )

    async def dismiss_alert(self, alert_id: str) -> bool:
        """Dismiss an active alert and tell subscribers. False if no such alert."""
        if not self._evaluator.dismiss(alert_id):
            return False
        await self._registry.broadcast(EventName.ALERT_DISMISSED, AlertDismissed(alert_id=alert_id))
        await self._registry.broadcast(EventName.ALERT_UPDATE, self._evaluator.active_alerts())
        return True

    async def clear_alerts(self) -> None:
        self._evaluator.clear_all()
        await self._registry.broadcast(EventName.ALERT_UPDATE, self._evaluator.active_alerts())

    def update_config(self, **changes: Any) -> BroadcastConfig:
        """Merge ``changes`` into the config; re-arms the timer on an interval change."""
        unknown = sorted(set(changes) - set(BroadcastConfig.model_fields))
        if unknown:
            raise ValidationError(
                f"Unknown scheduler settings: {', '.join(unknown)}",
                [f"Unknown setting: {name}" for name in unknown],
            )
        try:
            updated = BroadcastConfig.model_validate({**self._config.model_dump(), **changes})
        except pydantic.ValidationError as exc:
            errors = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
            raise ValidationError("Invalid scheduler settings", errors) from exc

        old_interval = self._config.update_interval_secs
        self._config = updated
        self._registry.send_timeout = updated.send_timeout_secs
        logger.info("scheduler_config_updated", **updated.model_dump())

        if updated.update_interval_secs != old_interval and self._interval_handle is not None:
            self._cancel_interval()
            self._arm_interval()
        return self.config

    async def check_source(self) -> bool:
        """Test the fetcher outside the cycle; nothing is stored or broadcast."""
        reachable = await self._fetcher.test_connection()
        if not reachable:
            logger.warning("source_check_failed")
        return reachable

    def get_status(self) -> SchedulerStatus:
        last = self._last_reading
        return SchedulerStatus(
            running=self.running,
            state=self._state,
            connected_count=self._registry.connected_count,
            subscribed_count=self._registry.subscribed_count,
            update_interval=self._config.update_interval_secs,
            retry_count=self._retry_count,
            last_update=iso_timestamp(last.timestamp) if last is not None else None,
        )

    async def join(self) -> None:
        """Wait until every timer-spawned cycle has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop all timers and cycles, tell every client, forget them. Idempotent."""
        self._cancel_interval()
        self._cancel_resume()
        self._state = SchedulerState.IDLE

        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._retry_count = 0
        self._last_reading = None

        subscribers = self._registry.connected()
        status = ConnectionStatus(connected=False, timestamp=iso_timestamp(self._clock()))
        for subscriber in subscribers:
            await self._registry.send_to(subscriber.subscriber_id, EventName.CONNECTION_STATUS, status)
            try:
                await subscriber.close()
            except Exception:
                logger.exception("subscriber_close_error", subscriber_id=subscriber.subscriber_id)
        self._registry.clear()

        if subscribers or pending:
            logger.info("scheduler_shutdown", notified=len(subscribers), cancelled=len(pending))

    # ── Polling state machine ───────────────────────────────────

    async def _start_polling(self) -> None:
        self._state = SchedulerState.POLLING
        self._retry_count = 0
        logger.info("polling_started", interval_secs=self._config.update_interval_secs)
        await self._poll_then_arm()

    async def _poll_then_arm(self) -> None:
        await self._run_cycle()
        # The cycle may have paused us, or the last subscriber may have left.
        if self._state == SchedulerState.POLLING and self._interval_handle is None:
            self._arm_interval()

    def _stop_polling(self) -> None:
        if self._state == SchedulerState.IDLE:
            return
        self._cancel_interval()
        self._cancel_resume()
        self._state = SchedulerState.IDLE
        logger.info("polling_stopped")

    def _pause(self) -> None:
        self._cancel_interval()
        self._state = SchedulerState.PAUSED
        logger.warning(
            "polling_paused",
            retry_count=self._retry_count,
            retry_delay_secs=self._config.retry_delay_secs,
        )
        self._resume_handle = self._timers.call_later(self._config.retry_delay_secs, self._on_resume)

    def _on_resume(self) -> None:
        self._resume_handle = None
        if self._state != SchedulerState.PAUSED:
            return
        if self._registry.subscribed_count == 0:
            self._state = SchedulerState.IDLE
            logger.info("polling_resume_skipped")
            return
        self._state = SchedulerState.POLLING
        logger.info("polling_resumed", failed_attempts=self._retry_count)
        self._retry_count = 0
        self._spawn(self._poll_then_arm())

    def _on_tick(self) -> None:
        if self._cycle_lock.locked() or self._pending:
            logger.debug("cycle_skipped_in_flight")
            return
        self._spawn(self._run_cycle())

    def _arm_interval(self) -> None:
        self._interval_handle = self._timers.call_every(
            self._config.update_interval_secs, self._on_tick,
        )

    def _cancel_interval(self) -> None:
        if self._interval_handle is not None:
            self._interval_handle.cancel()
            self._interval_handle = None

    def _cancel_resume(self) -> None:
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ── Cycle ───────────────────────────────────────────────────

    async def _run_cycle(self) -> bool:
        async with self._cycle_lock:
            try:
                reading = await self._fetcher.fetch_reading()
            except Exception as exc:
                await self._handle_failure(
                    exc, "FETCH_ERROR", "Failed to fetch environment data",
                )
                return False

            try:
                previous_ids = {a.id for a in self._evaluator.active_alerts()}
                self._store.add_sample(reading)
                alerts = self._evaluator.evaluate(reading)
            except Exception as exc:
                await self._handle_failure(
                    exc, "EVALUATION_ERROR", "Failed to process environment data",
                )
                return False

            if self._retry_count:
                logger.info("source_recovered", after_failures=self._retry_count)
            self._retry_count = 0
            self._last_reading = reading

            if self._registry.subscribed_count == 0:
                logger.debug("cycle_completed_without_subscribers")
                return True

            new_alerts = [a for a in alerts if a.id not in previous_ids]
            await self._registry.broadcast(EventName.ENVIRONMENT_UPDATE, reading)
            await self._registry.broadcast(EventName.ALERT_UPDATE, alerts)
            for alert in new_alerts:
                await self._registry.broadcast(EventName.ALERT_TRIGGERED, alert)

            logger.info(
                "cycle_broadcast",
                temperature=reading.temperature,
                humidity=reading.humidity,
                light=reading.light,
                active_alerts=len(alerts),
                new_alerts=len(new_alerts),
                subscribers=self._registry.subscribed_count,
            )
            return True

    async def _handle_failure(self, exc: Exception, fallback_code: str, fallback_message: str) -> None:
        self._retry_count += 1
        payload = _error_payload(exc, fallback_code, fallback_message)

        if isinstance(exc, SourceError):
            logger.warning(
                "cycle_failed",
                code=payload.code,
                error=str(exc),
                retry_count=self._retry_count,
                max_retries=self._config.max_retries,
            )
        else:
            logger.exception(
                "cycle_failed",
                code=payload.code,
                retry_count=self._retry_count,
                max_retries=self._config.max_retries,
            )

        await self._registry.broadcast(EventName.ERROR, payload)

        if self._retry_count >= self._config.max_retries and self._state == SchedulerState.POLLING:
            self._pause()
