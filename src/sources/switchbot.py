"""SwitchBot Hub fetcher — cloud API v1.1 with HMAC-signed requests."""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
import uuid
from typing import Any

import httpx
import structlog

from src.core.config import SwitchBotConfig
from src.core.types import Reading
from src.sources.base import Fetcher
from src.sources.exceptions import (
    HubNotFoundError,
    SourceAuthError,
    SourceUnavailableError,
)
from src.sources.validation import is_reasonable, validate_reading

logger = structlog.get_logger(__name__)

# SwitchBot signals success in the body, not the HTTP status.
_STATUS_OK = 100

_HUB_DEVICE_TYPES = ("Hub 2", "Hub")


def build_auth_headers(
    token: str,
    secret: str,
    timestamp_ms: int | None = None,
    nonce: str | None = None,
) -> dict[str, str]:
    """Build the signed request headers required by API v1.1.

    ``sign`` is base64(HMAC-SHA256(secret, token + t + nonce)).
    """
    if not token or not secret:
        raise SourceAuthError("SwitchBot API credentials not configured")

    t = str(timestamp_ms if timestamp_ms is not None else int(time.time() * 1000))
    nonce = nonce or str(uuid.uuid4())
    digest = hmac.new(
        secret.encode("utf-8"),
        f"{token}{t}{nonce}".encode("utf-8"),
        hashlib.sha256,
    ).digest()

    return {
        "Authorization": token,
        "sign": base64.b64encode(digest).decode("ascii"),
        "t": t,
        "nonce": nonce,
        "Content-Type": "application/json",
    }


def _find_hub_device(body: dict[str, Any]) -> str | None:
    """Return the first Hub / Hub 2 device id in a ``/devices`` response body."""
    device_list = body.get("deviceList")
    if not isinstance(device_list, list):
        return None
    for device in device_list:
        if isinstance(device, dict) and device.get("deviceType") in _HUB_DEVICE_TYPES:
            device_id = device.get("deviceId")
            if device_id:
                return str(device_id)
    return None


class SwitchBotFetcher(Fetcher):
    """Reads temperature, humidity and light level from a SwitchBot Hub 2.

    The hub's device id is discovered once via ``GET /devices`` and cached,
    unless ``hub_device_id`` is configured.
    """

    def __init__(self, config: SwitchBotConfig | None = None) -> None:
        self._config = config or SwitchBotConfig()
        self._http: httpx.AsyncClient | None = None
        self._hub_device_id: str | None = self._config.hub_device_id

    @property
    def connected(self) -> bool:
        """Whether the HTTP client is active."""
        return self._http is not None and not self._http.is_closed

    @property
    def hub_device_id(self) -> str | None:
        return self._hub_device_id

    async def connect(self) -> None:
        """Create the httpx async client."""
        self._http = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=httpx.Timeout(self._config.timeout_secs),
        )

    async def close(self) -> None:
        """Close the httpx async client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def fetch_reading(self) -> Reading:
        """Fetch the hub status and validate it into a Reading."""
        device_id = await self._resolve_hub()
        body = await self._get(f"/devices/{device_id}/status", "get device status")

        reading = validate_reading({
            "temperature": body.get("temperature"),
            "humidity": body.get("humidity"),
            "lightLevel": body.get("lightLevel"),
        })
        if not is_reasonable(reading):
            logger.warning(
                "reading_outside_typical_range",
                temperature=reading.temperature,
                humidity=reading.humidity,
                light=reading.light,
            )
        return reading

    async def _resolve_hub(self) -> str:
        if self._hub_device_id:
            return self._hub_device_id

        body = await self._get("/devices", "get devices")
        device_id = _find_hub_device(body)
        if device_id is None:
            raise HubNotFoundError(
                "No SwitchBot Hub 2 device found."
                " Please ensure your Hub 2 is properly connected."
            )
        self._hub_device_id = device_id
        logger.info("switchbot_hub_discovered", device_id=device_id)
        return device_id

    async def _get(self, path: str, action: str) -> dict[str, Any]:
        """GET ``path`` and return the response ``body`` object."""
        if self._http is None:
            raise SourceUnavailableError("HTTP client not connected")

        headers = build_auth_headers(
            self._config.token.get_secret_value(),
            self._config.secret.get_secret_value(),
        )

        try:
            response = await self._http.get(path, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise SourceAuthError(
                    f"SwitchBot API rejected credentials ({status})"
                ) from exc
            raise SourceUnavailableError(
                f"SwitchBot API returned {status}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailableError(f"SwitchBot API request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceUnavailableError("SwitchBot API returned invalid JSON") from exc

        if not isinstance(payload, dict) or payload.get("statusCode") != _STATUS_OK:
            message = payload.get("message", "") if isinstance(payload, dict) else ""
            raise SourceUnavailableError(f"Failed to {action}: {message}")

        body = payload.get("body")
        return body if isinstance(body, dict) else {}
