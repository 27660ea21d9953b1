"""Telemetry sources — the fetch boundary between the hub and the pipeline."""

from src.sources.base import Fetcher
from src.sources.exceptions import (
    HubNotFoundError,
    InvalidDataError,
    SourceAuthError,
    SourceError,
    SourceUnavailableError,
)
from src.sources.simulated import SimulatedFetcher
from src.sources.switchbot import SwitchBotFetcher, build_auth_headers
from src.sources.validation import is_reasonable, validate_reading

__all__ = [
    "Fetcher",
    "HubNotFoundError",
    "InvalidDataError",
    "SimulatedFetcher",
    "SourceAuthError",
    "SourceError",
    "SourceUnavailableError",
    "SwitchBotFetcher",
    "build_auth_headers",
    "is_reasonable",
    "validate_reading",
]
