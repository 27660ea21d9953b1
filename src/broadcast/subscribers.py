"""Subscriber contract and the registry the scheduler fans out through."""

from __future__ import annotations

import abc
import asyncio
from typing import Any

import structlog

from src.broadcast.events import EventName, to_payload

logger = structlog.get_logger(__name__)


class Subscriber(abc.ABC):
    """A connected observer.

    The scheduler treats ``subscriber_id`` as opaque and never inspects the
    transport behind ``send()``.
    """

    @property
    @abc.abstractmethod
    def subscriber_id(self) -> str:
        """Stable identifier for this connection."""

    @abc.abstractmethod
    async def send(self, event: EventName, payload: Any) -> None:
        """Deliver one event with an already JSON-safe payload."""

    async def close(self) -> None:
        """Release transport resources. Default: nothing to do."""


class SubscriberRegistry:
    """Connected subscribers, and which of them want live updates.

    Connection and subscription are separate: a client may be connected
    (and request history) without receiving the periodic broadcast.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self._send_timeout = send_timeout
        self._connected: dict[str, Subscriber] = {}
        self._subscribed: set[str] = set()

    @property
    def send_timeout(self) -> float:
        return self._send_timeout

    @send_timeout.setter
    def send_timeout(self, value: float) -> None:
        self._send_timeout = value

    # ── Membership ──────────────────────────────────────────────

    def add(self, subscriber: Subscriber) -> None:
        self._connected[subscriber.subscriber_id] = subscriber

    def remove(self, subscriber_id: str) -> Subscriber | None:
        self._subscribed.discard(subscriber_id)
        return self._connected.pop(subscriber_id, None)

    def get(self, subscriber_id: str) -> Subscriber | None:
        return self._connected.get(subscriber_id)

    def subscribe(self, subscriber_id: str) -> bool:
        """Mark a connected subscriber as subscribed. True if that changed anything."""
        if subscriber_id not in self._connected or subscriber_id in self._subscribed:
            return False
        self._subscribed.add(subscriber_id)
        return True

    def unsubscribe(self, subscriber_id: str) -> bool:
        """True if the subscriber was subscribed."""
        if subscriber_id not in self._subscribed:
            return False
        self._subscribed.discard(subscriber_id)
        return True

    def is_subscribed(self, subscriber_id: str) -> bool:
        return subscriber_id in self._subscribed

    def clear(self) -> None:
        self._connected.clear()
        self._subscribed.clear()

    @property
    def connected_count(self) -> int:
        return len(self._connected)

    @property
    def subscribed_count(self) -> int:
        return len(self._subscribed)

    def connected(self) -> list[Subscriber]:
        return list(self._connected.values())

    def subscribed(self) -> list[Subscriber]:
        return [s for sid, s in self._connected.items() if sid in self._subscribed]

    # ── Delivery ────────────────────────────────────────────────

    async def broadcast(self, event: EventName, data: Any) -> int:
        """Send ``data`` to every subscribed subscriber concurrently; returns deliveries made.

        A subscriber that does not accept the event within ``send_timeout``
        is skipped for this event only.
        """
        payload = to_payload(data)
        results = await asyncio.gather(
            *(self._deliver(subscriber, event, payload) for subscriber in self.subscribed()),
        )
        return sum(1 for ok in results if ok)

    async def send_to(self, subscriber_id: str, event: EventName, data: Any) -> bool:
        """Send to a single connected subscriber, subscribed or not."""
        subscriber = self._connected.get(subscriber_id)
        if subscriber is None:
            return False
        return await self._deliver(subscriber, event, to_payload(data))

    async def _deliver(self, subscriber: Subscriber, event: EventName, payload: Any) -> bool:
        try:
            await asyncio.wait_for(subscriber.send(event, payload), self._send_timeout)
        except TimeoutError:
            logger.warning(
                "subscriber_send_timeout",
                subscriber_id=subscriber.subscriber_id,
                event=event.value,
                timeout_secs=self._send_timeout,
            )
            return False
        except Exception:
            logger.exception(
                "subscriber_send_error",
                subscriber_id=subscriber.subscriber_id,
                event=event.value,
            )
            return False
        return True
