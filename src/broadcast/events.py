"""Published event names and payload serialisation."""

from __future__ import annotations

import datetime
from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class EventName(StrEnum):
    """Server → subscriber events; downstream consumers rely on these names."""

    ENVIRONMENT_UPDATE = "environmentUpdate"
    HISTORY_UPDATE = "historyUpdate"
    ALERT_UPDATE = "alertUpdate"
    ALERT_TRIGGERED = "alertTriggered"
    ALERT_DISMISSED = "alertDismissed"
    ERROR = "error"
    CONNECTION_STATUS = "connectionStatus"


class ClientAction(StrEnum):
    """Subscriber → server requests."""

    SUBSCRIBE = "subscribeEnvironment"
    UNSUBSCRIBE = "unsubscribeEnvironment"
    GET_HISTORY = "getHistory"


def to_payload(data: Any) -> Any:
    """Convert models (or sequences of models) into JSON-safe wire data."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, Mapping):
        return {key: to_payload(value) for key, value in data.items()}
    if isinstance(data, Sequence) and not isinstance(data, (str, bytes)):
        return [to_payload(item) for item in data]
    return data


def iso_timestamp(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts, datetime.UTC).isoformat()
