"""WebSocket push channel."""

from uaweb_gateway.adapters.northbound.api.websocket.manager import (
    MessageType,
    WebSocketManager,
)

__all__ = [
    "MessageType",
    "WebSocketManager",
]
