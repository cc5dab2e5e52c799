"""Push channel endpoint that ``ws:`` and ``signalr:`` brokers publish onto."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, WebSocket

from uaweb_gateway.observability.logging import LogContext

if TYPE_CHECKING:
    from uaweb_gateway.adapters.northbound.api.websocket.manager import WebSocketManager

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Topic-based notification stream.

    Client messages:
    - {"type": "subscribe", "payload": {"topic": "plant/line1"}}
    - {"type": "unsubscribe", "payload": {"topic": "plant/line1"}}
    - {"type": "ping"}

    Each published value arrives as
    {"type": "notification", "payload": {"topic": "...", "message": "..."}}.
    """
    ws_manager: WebSocketManager = websocket.app.state.ws_manager
    connection_id = await ws_manager.connect(websocket)
    with LogContext(connection_id=connection_id):
        await ws_manager.run_connection(connection_id)
