"""Tests for SwitchBotFetcher — request signing, hub discovery, error mapping."""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.core.config import SwitchBotConfig
from src.sources.exceptions import (
    HubNotFoundError,
    InvalidDataError,
    SourceAuthError,
    SourceUnavailableError,
)
from src.sources.switchbot import SwitchBotFetcher, _find_hub_device, build_auth_headers

BASE_URL = "https://api.test.switch-bot.com/v1.1"

# ── Helpers ─────────────────────────────────────────────────────


def _cfg(**overrides: object) -> SwitchBotConfig:
    defaults: dict[str, object] = {"base_url": BASE_URL, "token": "tok", "secret": "sec"}
    defaults.update(overrides)
    return SwitchBotConfig(**defaults)  # type: ignore[arg-type]


def _response(body: Any, status_code: int = 200, path: str = "/devices") -> httpx.Response:
    return httpx.Response(
        status_code,
        json=body,
        request=httpx.Request("GET", f"{BASE_URL}{path}"),
    )


def _ok(body: dict[str, Any], path: str = "/devices") -> httpx.Response:
    return _response({"statusCode": 100, "message": "success", "body": body}, path=path)


def _devices(*device_types: str) -> httpx.Response:
    return _ok({
        "deviceList": [
            {"deviceId": f"DEV{i}", "deviceType": t} for i, t in enumerate(device_types)
        ],
    })


def _status(temperature: Any = 23.4, humidity: Any = 45, light: Any = 12) -> httpx.Response:
    return _ok(
        {"temperature": temperature, "humidity": humidity, "lightLevel": light},
        path="/devices/DEV1/status",
    )


# ── build_auth_headers ─────────────────────────────────────────


class TestBuildAuthHeaders:
    def test_signature(self) -> None:
        headers = build_auth_headers("tok", "sec", timestamp_ms=1700000000000, nonce="n-1")
        expected = base64.b64encode(
            hmac.new(b"sec", b"tok1700000000000n-1", hashlib.sha256).digest()
        ).decode()

        assert headers["Authorization"] == "tok"
        assert headers["t"] == "1700000000000"
        assert headers["nonce"] == "n-1"
        assert headers["sign"] == expected

    def test_fresh_nonce_per_call(self) -> None:
        a = build_auth_headers("tok", "sec")
        b = build_auth_headers("tok", "sec")
        assert a["nonce"] != b["nonce"]

    def test_missing_credentials(self) -> None:
        with pytest.raises(SourceAuthError):
            build_auth_headers("", "sec")


# ── _find_hub_device ───────────────────────────────────────────


class TestFindHubDevice:
    def test_first_hub(self) -> None:
        body = {"deviceList": [
            {"deviceId": "A", "deviceType": "Bot"},
            {"deviceId": "B", "deviceType": "Hub 2"},
            {"deviceId": "C", "deviceType": "Hub 2"},
        ]}
        assert _find_hub_device(body) == "B"

    def test_no_hub(self) -> None:
        assert _find_hub_device({"deviceList": [{"deviceId": "A", "deviceType": "Bot"}]}) is None

    def test_malformed(self) -> None:
        assert _find_hub_device({"deviceList": "oops"}) is None
        assert _find_hub_device({}) is None


# ── Fetching ───────────────────────────────────────────────────


class TestFetchReading:
    @pytest.mark.asyncio
    async def test_discovers_hub_then_reads(self) -> None:
        fetcher = SwitchBotFetcher(_cfg())
        await fetcher.connect()
        try:
            with patch.object(fetcher._http, "get", new_callable=AsyncMock) as mock_get:
                mock_get.side_effect = [_devices("Bot", "Hub 2"), _status()]
                reading = await fetcher.fetch_reading()

            assert reading.temperature == 23.4
            assert reading.humidity == 45.0
            assert reading.light == 12.0
            assert fetcher.hub_device_id == "DEV1"
            assert mock_get.await_args_list[0].args[0] == "/devices"
            assert mock_get.await_args_list[1].args[0] == "/devices/DEV1/status"
            assert "sign" in mock_get.await_args_list[1].kwargs["headers"]
        finally:
            await fetcher.close()

    @pytest.mark.asyncio
    async def test_hub_id_cached(self) -> None:
        fetcher = SwitchBotFetcher(_cfg())
        await fetcher.connect()
        try:
            with patch.object(fetcher._http, "get", new_callable=AsyncMock) as mock_get:
                mock_get.side_effect = [_devices("Hub 2", "Hub 2"), _status(), _status()]
                await fetcher.fetch_reading()
                await fetcher.fetch_reading()
            assert mock_get.await_count == 3
            assert fetcher.hub_device_id == "DEV0"
        finally:
            await fetcher.close()

    @pytest.mark.asyncio
    async def test_configured_hub_skips_discovery(self) -> None:
        fetcher = SwitchBotFetcher(_cfg(hub_device_id="DEV1"))
        await fetcher.connect()
        try:
            with patch.object(fetcher._http, "get", new_callable=AsyncMock) as mock_get:
                mock_get.return_value = _status()
                await fetcher.fetch_reading()
            mock_get.assert_awaited_once()
        finally:
            await fetcher.close()

    @pytest.mark.asyncio
    async def test_no_hub_raises(self) -> None:
        fetcher = SwitchBotFetcher(_cfg())
        await fetcher.connect()
        try:
            with patch.object(fetcher._http, "get", new_callable=AsyncMock) as mock_get:
                mock_get.return_value = _devices("Bot", "Curtain")
                with pytest.raises(HubNotFoundError):
                    await fetcher.fetch_reading()
        finally:
            await fetcher.close()

    @pytest.mark.asyncio
    async def test_invalid_values_raise(self) -> None:
        fetcher = SwitchBotFetcher(_cfg(hub_device_id="DEV1"))
        await fetcher.connect()
        try:
            with patch.object(fetcher._http, "get", new_callable=AsyncMock) as mock_get:
                mock_get.return_value = _status(temperature=None, humidity=140)
                with pytest.raises(InvalidDataError) as exc_info:
                    await fetcher.fetch_reading()
            assert len(exc_info.value.errors) == 2
        finally:
            await fetcher.close()

    @pytest.mark.asyncio
    async def test_not_connected(self) -> None:
        fetcher = SwitchBotFetcher(_cfg(hub_device_id="DEV1"))
        with pytest.raises(SourceUnavailableError):
            await fetcher.fetch_reading()


class TestErrorMapping:
    async def _fetch_with(self, response: httpx.Response | Exception) -> None:
        fetcher = SwitchBotFetcher(_cfg(hub_device_id="DEV1"))
        await fetcher.connect()
        try:
            with patch.object(fetcher._http, "get", new_callable=AsyncMock) as mock_get:
                if isinstance(response, Exception):
                    mock_get.side_effect = response
                else:
                    mock_get.return_value = response
                await fetcher.fetch_reading()
        finally:
            await fetcher.close()

    @pytest.mark.asyncio
    async def test_401_is_auth_error(self) -> None:
        with pytest.raises(SourceAuthError) as exc_info:
            await self._fetch_with(_response({"message": "Unauthorized"}, status_code=401))
        assert exc_info.value.code == "AUTH_ERROR"

    @pytest.mark.asyncio
    async def test_500_is_unavailable(self) -> None:
        with pytest.raises(SourceUnavailableError):
            await self._fetch_with(_response({}, status_code=500))

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self) -> None:
        with pytest.raises(SourceUnavailableError):
            await self._fetch_with(httpx.ConnectError("boom"))

    @pytest.mark.asyncio
    async def test_api_status_code_not_100(self) -> None:
        with pytest.raises(SourceUnavailableError, match="device offline"):
            await self._fetch_with(_response({"statusCode": 161, "message": "device offline"}))

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        bad = httpx.Response(
            200,
            content=b"<html>",
            request=httpx.Request("GET", f"{BASE_URL}/devices/DEV1/status"),
        )
        with pytest.raises(SourceUnavailableError, match="invalid JSON"):
            await self._fetch_with(bad)


class TestConnection:
    @pytest.mark.asyncio
    async def test_connect_and_close(self) -> None:
        fetcher = SwitchBotFetcher(_cfg())
        assert fetcher.connected is False
        await fetcher.connect()
        assert fetcher.connected is True
        await fetcher.close()
        assert fetcher.connected is False

    @pytest.mark.asyncio
    async def test_test_connection_false_on_error(self) -> None:
        async with SwitchBotFetcher(_cfg(hub_device_id="DEV1")) as fetcher:
            with patch.object(fetcher._http, "get", new_callable=AsyncMock) as mock_get:
                mock_get.return_value = _response({}, status_code=503)
                assert await fetcher.test_connection() is False
