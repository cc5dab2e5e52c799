"""FastAPI dependencies for the API.

Provides dependency injection for:
- The UA client facade
- The WebSocket push channel manager
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from uaweb_gateway.adapters.northbound.api.websocket.manager import WebSocketManager
from uaweb_gateway.application.ua_client import UaClient


def get_ua_client(request: Request) -> UaClient:
    """Get the UaClient from app state."""
    return request.app.state.ua_client


def get_ws_manager(request: Request) -> WebSocketManager:
    """Get the WebSocketManager from app state."""
    return request.app.state.ws_manager


# Type aliases for cleaner route signatures
UaClientDep = Annotated[UaClient, Depends(get_ua_client)]
WsManagerDep = Annotated[WebSocketManager, Depends(get_ws_manager)]
