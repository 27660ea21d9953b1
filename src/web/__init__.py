"""HTTP / WebSocket surface over the telemetry pipeline."""

from src.web.app import create_web_app, start_web_server
from src.web.transport import WebSocketSubscriber, handle_client_message

__all__ = [
    "WebSocketSubscriber",
    "create_web_app",
    "handle_client_message",
    "start_web_server",
]
