"""Live broadcast — polling scheduler, subscriber fan-out, timers."""

from src.broadcast.events import ClientAction, EventName, iso_timestamp, to_payload
from src.broadcast.scheduler import BroadcastScheduler
from src.broadcast.subscribers import Subscriber, SubscriberRegistry
from src.broadcast.timers import (
    AsyncioTimerService,
    TimerCallback,
    TimerHandle,
    TimerService,
)

__all__ = [
    "AsyncioTimerService",
    "BroadcastScheduler",
    "ClientAction",
    "EventName",
    "Subscriber",
    "SubscriberRegistry",
    "TimerCallback",
    "TimerHandle",
    "TimerService",
    "iso_timestamp",
    "to_payload",
]
