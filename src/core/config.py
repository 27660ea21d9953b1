"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr

from src.core.types import AlertThresholds

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

_TOKEN_ENV = "SWITCHBOT_TOKEN"
_SECRET_ENV = "SWITCHBOT_SECRET"


class SwitchBotConfig(BaseModel):
    """SwitchBot cloud API configuration."""

    base_url: str = "https://api.switch-bot.com/v1.1"
    token: SecretStr = SecretStr("")
    secret: SecretStr = SecretStr("")
    hub_device_id: str | None = None
    timeout_secs: float = 10.0


class SimulatorConfig(BaseModel):
    """Simulated sensor hub — used when no SwitchBot credentials are set."""

    enabled: bool = False
    base_temperature: float = 24.0
    base_humidity: float = 50.0
    base_light: float = 300.0
    drift: float = 0.5
    failure_rate: float = 0.0
    seed: int | None = None


class HistoryConfig(BaseModel):
    """In-memory time series retention and aggregation."""

    max_data_points: int = Field(default=8640, ge=1)
    aggregation_interval_secs: float = Field(default=120.0, ge=0)
    retention_hours: float = Field(default=24.0 * 30, gt=0)
    max_display_points: int = Field(default=200, ge=1)


class AlertConfig(BaseModel):
    """Threshold alerting configuration."""

    thresholds: AlertThresholds = AlertThresholds()
    temperature_margin: float = 5.0
    humidity_margin: float = 10.0
    history_size: int = Field(default=100, ge=1)


class BroadcastConfig(BaseModel):
    """Polling cadence and failure backoff for the broadcast scheduler."""

    update_interval_secs: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    retry_delay_secs: float = Field(default=5.0, ge=0)
    send_timeout_secs: float = Field(default=5.0, gt=0)


class WebConfig(BaseModel):
    """HTTP / WebSocket server configuration."""

    host: str = "0.0.0.0"
    port: int = 3001
    username: str = ""
    password: SecretStr = SecretStr("")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    switchbot: SwitchBotConfig = SwitchBotConfig()
    simulator: SimulatorConfig = SimulatorConfig()
    history: HistoryConfig = HistoryConfig()
    alerts: AlertConfig = AlertConfig()
    broadcast: BroadcastConfig = BroadcastConfig()
    web: WebConfig = WebConfig()
    logging: LoggingConfig = LoggingConfig()


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay SwitchBot credentials from the environment, if set."""
    overrides: dict[str, str] = {}
    for env_name, key in ((_TOKEN_ENV, "token"), (_SECRET_ENV, "secret")):
        value = os.getenv(env_name)
        if value is not None and value.strip():
            overrides[key] = value.strip()
    if not overrides:
        return data

    switchbot = data.get("switchbot")
    merged = dict(switchbot) if isinstance(switchbot, dict) else {}
    merged.update(overrides)
    return {**data, "switchbot": merged}


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**_apply_env_overrides(data))
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
