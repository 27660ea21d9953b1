"""WebSocket transport — adapts an aiohttp WebSocket to the Subscriber contract."""

from __future__ import annotations

import json
import uuid
from typing import Any

import structlog
from aiohttp import web

from src.broadcast.events import ClientAction, EventName
from src.broadcast.scheduler import BroadcastScheduler
from src.broadcast.subscribers import Subscriber
from src.core.types import ErrorPayload

logger = structlog.get_logger(__name__)


class WebSocketSubscriber(Subscriber):
    """Sends events as ``{"event": <name>, "data": <payload>}`` JSON frames."""

    def __init__(self, ws: web.WebSocketResponse, subscriber_id: str | None = None) -> None:
        self._ws = ws
        self._id = subscriber_id or uuid.uuid4().hex

    @property
    def subscriber_id(self) -> str:
        return self._id

    async def send(self, event: EventName, payload: Any) -> None:
        if self._ws.closed:
            return
        await self._ws.send_json({"event": event.value, "data": payload})

    async def close(self) -> None:
        if not self._ws.closed:
            await self._ws.close()


async def handle_client_message(
    scheduler: BroadcastScheduler,
    subscriber: Subscriber,
    raw: str,
) -> None:
    """Dispatch one ``{"type": ..., ...}`` request from a connected client."""
    try:
        message = json.loads(raw)
        action = ClientAction(message["type"])
    except (ValueError, KeyError, TypeError):
        await scheduler.subscribers.send_to(
            subscriber.subscriber_id,
            EventName.ERROR,
            ErrorPayload(code="BAD_REQUEST", message="Unrecognised message"),
        )
        return

    if action == ClientAction.SUBSCRIBE:
        await scheduler.subscribe(subscriber.subscriber_id)
    elif action == ClientAction.UNSUBSCRIBE:
        await scheduler.unsubscribe(subscriber.subscriber_id)
    elif action == ClientAction.GET_HISTORY:
        await scheduler.send_history(subscriber.subscriber_id, message.get("period", "1h"))
