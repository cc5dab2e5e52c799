"""WebSocket push channel.

Browser clients connect to ``/api/v1/ws`` and subscribe to topics.
Monitoring requests whose broker URL uses the ``ws:`` scheme publish onto
this channel and each message goes to the connections holding its topic.

All bookkeeping happens on the event loop without awaiting in between,
so the indexes need no lock.
"""

from __future__ import annotations

import itertools
from collections import defaultdict
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import WebSocketDisconnect

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = structlog.get_logger(__name__)


class MessageType(str, Enum):
    """Message ``type`` values in both directions."""

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PING = "ping"

    NOTIFICATION = "notification"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    PONG = "pong"
    ERROR = "error"


def _envelope(message_type: MessageType, payload: dict[str, Any]) -> dict[str, Any]:
    return {"type": message_type.value, "payload": payload}


class WebSocketManager:
    """Connections of the push channel, indexed by topic."""

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}
        self._topics_by_connection: dict[str, set[str]] = {}
        self._connections_by_topic: defaultdict[str, set[str]] = defaultdict(set)
        self._ids = itertools.count(1)

    @property
    def connection_count(self) -> int:
        return len(self._sockets)

    def subscriber_count(self, topic: str) -> int:
        return len(self._connections_by_topic.get(topic, ()))

    async def connect(self, websocket: WebSocket) -> str:
        """Accept the socket and register it under a fresh connection id."""
        await websocket.accept()
        peer = websocket.client
        prefix = f"{peer.host}:{peer.port}" if peer else "ws"
        connection_id = f"{prefix}#{next(self._ids)}"
        self._sockets[connection_id] = websocket
        self._topics_by_connection[connection_id] = set()
        logger.info("WebSocket connected", connection_id=connection_id)
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        if self._sockets.pop(connection_id, None) is None:
            return
        topics = self._topics_by_connection.pop(connection_id, set())
        for topic in topics:
            self._forget(topic, connection_id)
        logger.info("WebSocket disconnected", connection_id=connection_id, topics=sorted(topics))

    def _forget(self, topic: str, connection_id: str) -> None:
        holders = self._connections_by_topic.get(topic)
        if holders is None:
            return
        holders.discard(connection_id)
        if not holders:
            del self._connections_by_topic[topic]

    async def subscribe(self, connection_id: str, topic: str) -> bool:
        topics = self._topics_by_connection.get(connection_id)
        if topics is None:
            return False
        topics.add(topic)
        self._connections_by_topic[topic].add(connection_id)
        logger.debug("Topic subscribed", connection_id=connection_id, topic=topic)
        return True

    async def unsubscribe(self, connection_id: str, topic: str) -> bool:
        topics = self._topics_by_connection.get(connection_id)
        if topics is None or topic not in topics:
            return False
        topics.discard(topic)
        self._forget(topic, connection_id)
        logger.debug("Topic unsubscribed", connection_id=connection_id, topic=topic)
        return True

    async def _send(self, connection_id: str, data: dict[str, Any]) -> bool:
        websocket = self._sockets.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(data)
        except Exception as e:  # noqa: BLE001
            logger.warning("WebSocket send failed", connection_id=connection_id, error=str(e))
            return False
        return True

    async def send_personal(
        self,
        connection_id: str,
        message_type: MessageType,
        payload: dict[str, Any],
    ) -> bool:
        return await self._send(connection_id, _envelope(message_type, payload))

    async def broadcast_to_topic(self, topic: str, message: str) -> int:
        """Deliver one notification to every subscriber of ``topic``.

        Subscribers whose socket fails are disconnected.

        Returns:
            How many connections received the message.
        """
        data = _envelope(MessageType.NOTIFICATION, {"topic": topic, "message": message})
        delivered = 0
        for connection_id in list(self._connections_by_topic.get(topic, ())):
            if await self._send(connection_id, data):
                delivered += 1
            else:
                await self.disconnect(connection_id)
        return delivered

    async def handle_message(self, connection_id: str, message: dict[str, Any]) -> None:
        """Answer one client message."""
        kind = message.get("type", "")
        if kind == MessageType.PING.value:
            await self.send_personal(connection_id, MessageType.PONG, {})
            return

        if kind not in (MessageType.SUBSCRIBE.value, MessageType.UNSUBSCRIBE.value):
            await self.send_personal(
                connection_id, MessageType.ERROR, {"message": f"Unknown message type: {kind}"}
            )
            return

        payload = message.get("payload")
        topic = payload.get("topic") if isinstance(payload, dict) else None
        if not isinstance(topic, str) or not topic:
            await self.send_personal(connection_id, MessageType.ERROR, {"message": "Missing topic"})
            return

        if kind == MessageType.SUBSCRIBE.value:
            await self.subscribe(connection_id, topic)
            reply = MessageType.SUBSCRIBED
        else:
            await self.unsubscribe(connection_id, topic)
            reply = MessageType.UNSUBSCRIBED
        await self.send_personal(connection_id, reply, {"topic": topic})

    async def run_connection(self, connection_id: str) -> None:
        """Serve client messages until the socket goes away."""
        websocket = self._sockets.get(connection_id)
        if websocket is None:
            return
        try:
            while True:
                data = await websocket.receive_json()
                if isinstance(data, dict):
                    await self.handle_message(connection_id, data)
                else:
                    await self.send_personal(
                        connection_id,
                        MessageType.ERROR,
                        {"message": "Messages must be JSON objects"},
                    )
        except WebSocketDisconnect:
            logger.debug("WebSocket closed by client", connection_id=connection_id)
        finally:
            await self.disconnect(connection_id)

    async def close(self) -> None:
        """Close every connection and drop all subscriptions."""
        sockets = list(self._sockets.values())
        self._sockets.clear()
        self._topics_by_connection.clear()
        self._connections_by_topic.clear()
        for websocket in sockets:
            try:
                await websocket.close()
            except RuntimeError as e:
                # Already closed by the peer
                logger.debug("WebSocket close failed", error=str(e))
