#!/usr/bin/env python3
"""Service entrypoint — wires the telemetry pipeline and serves it over HTTP.

Usage::

    # Run with default config (SwitchBot credentials from env or YAML)
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # No hardware: simulated hub
    python scripts/run.py --simulate --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from src.alerts.evaluator import AlertEvaluator
from src.broadcast.scheduler import BroadcastScheduler
from src.core.config import Settings, load_settings
from src.core.logging import setup_logging
from src.history.store import SeriesStore
from src.sources.base import Fetcher
from src.sources.simulated import SimulatedFetcher
from src.sources.switchbot import SwitchBotFetcher
from src.web.app import start_web_server

logger = structlog.get_logger(__name__)


def build_fetcher(settings: Settings, simulate: bool) -> Fetcher | None:
    """Pick the telemetry source; None if the real hub is unconfigured."""
    if simulate or settings.simulator.enabled:
        logger.info("source_selected", source="simulated")
        return SimulatedFetcher(settings.simulator)

    creds = settings.switchbot
    if not creds.token.get_secret_value() or not creds.secret.get_secret_value():
        return None
    logger.info("source_selected", source="switchbot", base_url=creds.base_url)
    return SwitchBotFetcher(creds)


async def run(args: argparse.Namespace) -> int:
    """Start all components and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    fetcher = build_fetcher(settings, args.simulate)
    if fetcher is None:
        logger.error("switchbot_credentials_missing")
        print(
            "SwitchBot credentials not configured. Set SWITCHBOT_TOKEN and "
            "SWITCHBOT_SECRET, or run with --simulate.",
            file=sys.stderr,
        )
        return 1

    await fetcher.connect()

    # ── Pipeline ─────────────────────────────────────────────────
    store = SeriesStore(settings.history)
    evaluator = AlertEvaluator(settings.alerts)
    scheduler = BroadcastScheduler(
        fetcher=fetcher,
        store=store,
        evaluator=evaluator,
        config=settings.broadcast,
    )

    # ── Web server ───────────────────────────────────────────────
    web = settings.web
    runner = await start_web_server(
        scheduler,
        host=args.host or web.host,
        port=args.port or web.port,
        username=web.username or None,
        password=web.password.get_secret_value() or None,
    )

    logger.info(
        "service_running",
        update_interval_secs=settings.broadcast.update_interval_secs,
        aggregation_interval_secs=settings.history.aggregation_interval_secs,
    )

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("service_shutting_down")

    await scheduler.shutdown()
    await runner.cleanup()
    await fetcher.close()

    status = store.status()
    logger.info(
        "service_stopped",
        data_points=status.data_point_count,
        active_alerts=len(evaluator.active_alerts()),
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the environment telemetry service.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use the simulated hub instead of the SwitchBot API",
    )
    parser.add_argument("--host", default=None, help="Bind address override")
    parser.add_argument("--port", type=int, default=None, help="Port override")
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
