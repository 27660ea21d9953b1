"""HTTP query surface and WebSocket endpoint, served with ``aiohttp``.

Exposes:
- ``GET  /api/environment/current``          → latest Reading
- ``GET  /api/environment/history?period=``  → downsampled buckets
- ``GET  /api/environment/statistics?period=``
- ``GET  /api/alerts/active`` / ``history?limit=`` / ``statistics``
- ``GET|PUT /api/alerts/thresholds``, ``POST /api/alerts/thresholds/reset``
- ``POST /api/alerts/{alert_id}/dismiss``, ``POST /api/alerts/clear``
- ``GET  /api/status``                       → scheduler / source / store / alert snapshot
- ``GET  /ws``                               → live event stream
"""

from __future__ import annotations

import base64
import hmac
from typing import Any

import pydantic
import structlog
from aiohttp import WSMsgType, web

from src.broadcast.events import to_payload
from src.broadcast.scheduler import BroadcastScheduler
from src.core.exceptions import ValidationError
from src.core.types import AlertThresholds, TimePeriod
from src.web.transport import WebSocketSubscriber, handle_client_message

logger = structlog.get_logger(__name__)


def _check_basic_auth(request: web.Request, username: str, password: str) -> bool:
    """Validate HTTP Basic Auth credentials."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(auth_header[6:]).decode("utf-8")
        req_user, req_pass = decoded.split(":", 1)
    except (ValueError, UnicodeDecodeError):
        return False
    user_ok = hmac.compare_digest(req_user, username)
    pass_ok = hmac.compare_digest(req_pass, password)
    return user_ok and pass_ok


@web.middleware
async def _auth_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Require HTTP Basic Auth on all routes when credentials are configured."""
    username = request.app.get("auth_username")
    password = request.app.get("auth_password")
    if username and password:
        if not _check_basic_auth(request, username, password):
            return web.Response(
                status=401,
                text="Unauthorized",
                headers={"WWW-Authenticate": 'Basic realm="Environment Monitor"'},
            )
    return await handler(request)


def _json(data: Any, status: int = 200) -> web.Response:
    return web.json_response(to_payload(data), status=status)


def _error(code: str, message: str, status: int, errors: list[str] | None = None) -> web.Response:
    body: dict[str, Any] = {"error": {"code": code, "message": message}}
    if errors:
        body["error"]["errors"] = errors
    return web.json_response(body, status=status)


def _scheduler(request: web.Request) -> BroadcastScheduler:
    return request.app["scheduler"]


def _period(request: web.Request) -> TimePeriod:
    raw = request.query.get("period", TimePeriod.ONE_HOUR.value)
    try:
        return TimePeriod(raw)
    except ValueError:
        raise web.HTTPBadRequest(
            text=f"Unknown period '{raw}'; expected one of {[p.value for p in TimePeriod]}",
        ) from None


# ── Environment ─────────────────────────────────────────────────


async def _handle_current(request: web.Request) -> web.Response:
    scheduler = _scheduler(request)
    if scheduler.last_reading is None:
        await scheduler.trigger_update()
    reading = scheduler.last_reading
    if reading is None:
        return _error("FETCH_ERROR", "Failed to fetch environment data", 503)
    return _json(reading)


async def _handle_history(request: web.Request) -> web.Response:
    return _json(_scheduler(request).store.query(_period(request)))


async def _handle_statistics(request: web.Request) -> web.Response:
    stats = _scheduler(request).store.statistics(_period(request))
    if stats is None:
        return _error("NO_DATA", "No data for the requested period", 404)
    return _json(stats)


# ── Alerts ──────────────────────────────────────────────────────


async def _handle_active_alerts(request: web.Request) -> web.Response:
    return _json(_scheduler(request).evaluator.active_alerts())


async def _handle_alert_history(request: web.Request) -> web.Response:
    raw_limit = request.query.get("limit")
    limit: int | None = None
    if raw_limit is not None:
        try:
            limit = int(raw_limit)
        except ValueError:
            raise web.HTTPBadRequest(text="limit must be an integer") from None
        if limit < 1:
            raise web.HTTPBadRequest(text="limit must be positive")
    return _json(_scheduler(request).evaluator.history(limit))


async def _handle_alert_statistics(request: web.Request) -> web.Response:
    return _json(_scheduler(request).evaluator.statistics())


async def _handle_get_thresholds(request: web.Request) -> web.Response:
    return _json(_scheduler(request).evaluator.thresholds)


async def _handle_put_thresholds(request: web.Request) -> web.Response:
    evaluator = _scheduler(request).evaluator
    try:
        body = await request.json()
        thresholds = AlertThresholds.model_validate(body)
    except (ValueError, pydantic.ValidationError) as exc:
        return _error("VALIDATION_ERROR", f"Malformed thresholds: {exc}", 400)
    try:
        evaluator.update_thresholds(thresholds)
    except ValidationError as exc:
        return _error("VALIDATION_ERROR", str(exc), 400, exc.errors)
    return _json(evaluator.thresholds)


async def _handle_reset_thresholds(request: web.Request) -> web.Response:
    return _json(_scheduler(request).evaluator.reset_thresholds())


async def _handle_dismiss(request: web.Request) -> web.Response:
    alert_id = request.match_info["alert_id"]
    if not await _scheduler(request).dismiss_alert(alert_id):
        return _error("NOT_FOUND", f"No active alert with id {alert_id}", 404)
    return web.json_response({"dismissed": True, "alertId": alert_id})


async def _handle_clear(request: web.Request) -> web.Response:
    await _scheduler(request).clear_alerts()
    return web.json_response({"cleared": True})


# ── Status / WebSocket ──────────────────────────────────────────


async def _handle_status(request: web.Request) -> web.Response:
    scheduler = _scheduler(request)
    return _json({
        "scheduler": scheduler.get_status(),
        "source": {"connected": await scheduler.check_source()},
        "history": scheduler.store.status(),
        "alerts": scheduler.evaluator.statistics(),
    })


async def _handle_ws(request: web.Request) -> web.WebSocketResponse:
    scheduler = _scheduler(request)
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)

    subscriber = WebSocketSubscriber(ws)
    await scheduler.connect(subscriber)
    try:
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                await handle_client_message(scheduler, subscriber, msg.data)
            elif msg.type == WSMsgType.ERROR:
                logger.warning(
                    "websocket_error",
                    subscriber_id=subscriber.subscriber_id,
                    error=str(ws.exception()),
                )
    finally:
        await scheduler.disconnect(subscriber.subscriber_id)
    return ws


async def _on_shutdown(app: web.Application) -> None:
    await app["scheduler"].shutdown()


def create_web_app(
    scheduler: BroadcastScheduler,
    username: str | None = None,
    password: str | None = None,
) -> web.Application:
    """Create the aiohttp web application."""
    app = web.Application(middlewares=[_auth_middleware])
    app["scheduler"] = scheduler
    app["auth_username"] = username
    app["auth_password"] = password

    app.router.add_get("/api/environment/current", _handle_current)
    app.router.add_get("/api/environment/history", _handle_history)
    app.router.add_get("/api/environment/statistics", _handle_statistics)
    app.router.add_get("/api/alerts/active", _handle_active_alerts)
    app.router.add_get("/api/alerts/history", _handle_alert_history)
    app.router.add_get("/api/alerts/statistics", _handle_alert_statistics)
    app.router.add_get("/api/alerts/thresholds", _handle_get_thresholds)
    app.router.add_put("/api/alerts/thresholds", _handle_put_thresholds)
    app.router.add_post("/api/alerts/thresholds/reset", _handle_reset_thresholds)
    app.router.add_post("/api/alerts/clear", _handle_clear)
    app.router.add_post("/api/alerts/{alert_id}/dismiss", _handle_dismiss)
    app.router.add_get("/api/status", _handle_status)
    app.router.add_get("/ws", _handle_ws)

    app.on_shutdown.append(_on_shutdown)
    return app


async def start_web_server(
    scheduler: BroadcastScheduler,
    host: str = "0.0.0.0",
    port: int = 3001,
    username: str | None = None,
    password: str | None = None,
) -> web.AppRunner:
    """Start the HTTP / WebSocket server. Returns the runner for cleanup."""
    app = create_web_app(scheduler, username=username, password=password)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("web_server_started", host=host, port=port)
    return runner
