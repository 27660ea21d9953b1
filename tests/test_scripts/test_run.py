"""Tests for scripts/run.py — fetcher selection."""

from __future__ import annotations

from scripts.run import build_fetcher
from src.core.config import Settings, SimulatorConfig, SwitchBotConfig
from src.sources.simulated import SimulatedFetcher
from src.sources.switchbot import SwitchBotFetcher


class TestBuildFetcher:
    def test_simulate_flag(self) -> None:
        settings = Settings(switchbot=SwitchBotConfig(token="t", secret="s"))  # type: ignore[arg-type]
        assert isinstance(build_fetcher(settings, simulate=True), SimulatedFetcher)

    def test_simulator_enabled_in_config(self) -> None:
        settings = Settings(simulator=SimulatorConfig(enabled=True))
        assert isinstance(build_fetcher(settings, simulate=False), SimulatedFetcher)

    def test_switchbot_with_credentials(self) -> None:
        settings = Settings(switchbot=SwitchBotConfig(token="t", secret="s"))  # type: ignore[arg-type]
        assert isinstance(build_fetcher(settings, simulate=False), SwitchBotFetcher)

    def test_missing_credentials(self) -> None:
        settings = Settings(switchbot=SwitchBotConfig(token="t"))  # type: ignore[arg-type]
        assert build_fetcher(settings, simulate=False) is None
