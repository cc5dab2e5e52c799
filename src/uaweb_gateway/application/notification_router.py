"""Notification Router.

Entry point for data change notifications delivered by the protocol
adapter. Each monitored item gets its own FIFO queue drained by its own
task, so values of one item are forwarded in delivery order and a slow
publisher for one item never holds up another.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING

import structlog

from uaweb_gateway.adapters.publishers.base import format_message

if TYPE_CHECKING:
    from collections.abc import Sequence

    from asyncua import ua

    from uaweb_gateway.adapters.southbound.opcua_client.codec import ValueCodec
    from uaweb_gateway.application.subscription_registry import ItemIndex

logger = structlog.get_logger(__name__)


class NotificationRouter:
    """Resolves fired items to their record and forwards decoded values."""

    def __init__(self, index: ItemIndex, codec: ValueCodec) -> None:
        self._index = index
        self._codec = codec
        self._queues: dict[int, deque[ua.DataValue]] = {}
        self._drains: dict[int, asyncio.Task[None]] = {}
        self._closed = False

    @property
    def active_items(self) -> int:
        """Items with values waiting to be forwarded."""
        return len(self._drains)

    def on_item_notification(self, handle: int, values: Sequence[ua.DataValue]) -> None:
        """Queue values for an item. Called on the event loop by the adapter."""
        if self._closed:
            return

        queue = self._queues.get(handle)
        if queue is None:
            queue = self._queues[handle] = deque()
        queue.extend(values)

        if handle not in self._drains:
            self._drains[handle] = asyncio.get_running_loop().create_task(
                self._drain(handle),
                name=f"notify-{handle}",
            )

    async def _drain(self, handle: int) -> None:
        queue = self._queues[handle]
        try:
            while queue:
                await self._forward(handle, queue.popleft())
        finally:
            del self._drains[handle]
            if not queue:
                self._queues.pop(handle, None)

    async def _forward(self, handle: int, value: ua.DataValue) -> None:
        record = self._index.owner_of(handle)
        item = record.items.get(handle) if record is not None else None
        if record is None or item is None:
            logger.debug("Dropping notification for unmonitored item", handle=handle)
            return

        try:
            # Re-read the node for its current data type before decoding
            descriptor = await record.session.read_node(item.source)
            decoded = self._codec.decode(descriptor, value.Value)
            message = format_message(record.topic, item.label, decoded.value)
            await record.publisher.publish(record.topic, message)
        except Exception as e:
            logger.warning(
                "Notification forwarding failed",
                server_url=record.server_url,
                topic=record.topic,
                node_id=item.label,
                error=str(e),
            )
            return

        logger.debug("Notification forwarded", topic=record.topic, node_id=item.label)

    async def wait_idle(self) -> None:
        """Wait until every queued value has been forwarded."""
        while self._drains:
            await asyncio.gather(*self._drains.values(), return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        tasks = list(self._drains.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._queues.clear()
