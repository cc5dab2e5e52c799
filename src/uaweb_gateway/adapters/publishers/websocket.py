"""Publisher onto the gateway's own WebSocket push channel."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from uaweb_gateway.adapters.northbound.api.websocket.manager import WebSocketManager

logger = structlog.get_logger(__name__)


class WebSocketPublisher:
    """Routes messages to push channel clients subscribed to the topic.

    The broker address is informational only; every ``ws:`` URL shares the
    gateway's single WebSocket endpoint.
    """

    def __init__(self, address: str, manager: WebSocketManager) -> None:
        self._address = address
        self._manager = manager

    async def publish(self, topic: str, message: str) -> None:
        delivered = await self._manager.broadcast_to_topic(topic, message)
        if not delivered:
            logger.debug("No push channel subscribers", topic=topic, address=self._address)

    async def close(self) -> None:
        # Connections belong to the manager and outlive the publisher
        return None
