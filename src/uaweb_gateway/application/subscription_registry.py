"""Subscription Registry.

Maps (server URL, broker URL, topic) triples to one shared protocol
subscription each. Repeated monitor calls for a triple add items to the
existing subscription and may lower its publishing interval, never raise
it. A reverse index from item handle to owning record serves the
notification path.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog

from uaweb_gateway.adapters.publishers.base import BrokerUrl
from uaweb_gateway.adapters.southbound.opcua_client.node_ids import (
    format_node_id,
    parse_node_id,
)
from uaweb_gateway.adapters.southbound.opcua_client.ports import DeadbandFilter
from uaweb_gateway.domain.model.monitoring import MonitoredItemRecord, SubscriptionRecord
from uaweb_gateway.domain.model.nodes import DeadbandMode

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from asyncua import ua

    from uaweb_gateway.adapters.publishers.factory import PublisherFactory
    from uaweb_gateway.adapters.southbound.opcua_client.ports import ItemNotificationCallback
    from uaweb_gateway.application.session_registry import SessionRegistry
    from uaweb_gateway.domain.model.monitoring import MonitorableNode

logger = structlog.get_logger(__name__)


class ItemIndex:
    """Reverse index: monitored item handle -> owning SubscriptionRecord.

    Handles are added only once the item is in its record's item set and
    discarded before the item leaves it, so a lookup never sees an item
    whose record does not hold it.
    """

    def __init__(self) -> None:
        self._owners: dict[int, SubscriptionRecord] = {}

    def add(self, handle: int, record: SubscriptionRecord) -> None:
        self._owners[handle] = record

    def discard(self, handle: int) -> None:
        self._owners.pop(handle, None)

    def owner_of(self, handle: int) -> SubscriptionRecord | None:
        return self._owners.get(handle)

    def clear(self) -> None:
        self._owners.clear()

    def __len__(self) -> int:
        return len(self._owners)

    def __contains__(self, handle: object) -> bool:
        return handle in self._owners


class SubscriptionRegistry:
    """Creates, coalesces and removes broker-bound subscriptions.

    Structural changes are serialized per server URL. Sessions and
    publishers are obtained before the lock is taken. A record whose
    session has since been replaced is stale: its subscription died with
    that session, so it is dropped locally and a re-issued monitor
    request builds a fresh one.
    """

    def __init__(
        self,
        sessions: SessionRegistry,
        publishers: PublisherFactory,
        index: ItemIndex,
        on_notification: ItemNotificationCallback,
    ) -> None:
        self._sessions = sessions
        self._publishers = publishers
        self._index = index
        self._on_notification = on_notification
        self._records: dict[str, dict[tuple[str, str], SubscriptionRecord]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @property
    def index(self) -> ItemIndex:
        return self._index

    def records(self, server_url: str) -> list[SubscriptionRecord]:
        return list(self._records.get(server_url, {}).values())

    def record(self, server_url: str, broker_url: str, topic: str) -> SubscriptionRecord | None:
        broker = BrokerUrl.parse(broker_url)
        return self._records.get(server_url, {}).get((broker.url, topic))

    def owner_of(self, handle: int) -> SubscriptionRecord | None:
        return self._index.owner_of(handle)

    @asynccontextmanager
    async def _serialized(self, server_url: str) -> AsyncIterator[None]:
        # Locks live only while someone holds or waits on them
        lock = self._locks.setdefault(server_url, asyncio.Lock())
        self._lock_users[server_url] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[server_url] -= 1
            if not self._lock_users[server_url]:
                del self._lock_users[server_url]
                del self._locks[server_url]

    def _is_current(self, record: SubscriptionRecord) -> bool:
        entry = self._sessions.get(record.server_url)
        return entry is not None and entry.session is record.session

    async def monitor(
        self,
        server_url: str,
        items: Sequence[MonitorableNode],
        broker_url: str,
        topic: str,
    ) -> list[bool]:
        """Monitor nodes and publish their changes to a broker topic.

        Args:
            server_url: OPC UA server URL
            items: Nodes to monitor
            broker_url: Broker URL as ``scheme:address``
            topic: Topic every value change is published under

        Returns:
            One flag per item, in input order: whether the server created it

        Raises:
            EndpointDiscoveryFailed: Server endpoints could not be discovered
            SessionUnavailable: No session could be established
            UnsupportedBrokerScheme: The broker URL scheme is unknown
            InvalidNodeId: A node id string could not be parsed
        """
        session = await self._sessions.get_or_create(server_url)
        broker = BrokerUrl.parse(broker_url)
        publisher = await self._publishers.get(broker)

        if not items:
            return []

        node_ids = [parse_node_id(item.node_id) for item in items]
        candidate = min(item.sampling_interval for item in items)

        async with self._serialized(server_url):
            records = self._records.get(server_url, {})
            record = records.get((broker.url, topic))
            if record is not None and record.session is not session:
                self._drop(server_url, record)
                record = None
            created = record is None

            if record is None:
                subscription = await session.create_subscription(candidate, self._on_notification)
                record = SubscriptionRecord(
                    server_url=server_url,
                    broker=broker,
                    topic=topic,
                    publisher=publisher,
                    session=session,
                    subscription=subscription,
                )
                records[record.key] = record
                self._records[server_url] = records
                logger.info(
                    "Subscription created",
                    server_url=server_url,
                    broker_url=broker.url,
                    topic=topic,
                    publishing_interval=candidate,
                )
            elif record.publishing_interval > candidate:
                logger.info(
                    "Lowering publishing interval",
                    server_url=server_url,
                    topic=topic,
                    old_interval=record.publishing_interval,
                    new_interval=candidate,
                )
                await record.subscription.set_publishing_interval(candidate)

            results = [
                await self._add_item(record, node_id, item)
                for node_id, item in zip(node_ids, items, strict=True)
            ]

            if created and not record.items:
                # Nothing was created; do not keep an empty subscription around
                await self._remove_record(server_url, record)

        logger.info(
            "Monitored items requested",
            server_url=server_url,
            topic=topic,
            requested=len(results),
            created=sum(results),
        )
        return results

    async def _add_item(
        self,
        record: SubscriptionRecord,
        node_id: ua.NodeId,
        item: MonitorableNode,
    ) -> bool:
        deadband = None
        if item.deadband is not DeadbandMode.NONE:
            deadband = DeadbandFilter(mode=item.deadband, value=item.deadband_value)

        try:
            creation = await record.subscription.add_monitored_item(
                node_id, item.sampling_interval, deadband
            )
        except Exception as e:
            logger.warning(
                "Monitored item request failed",
                server_url=record.server_url,
                node_id=item.node_id,
                error=str(e),
            )
            return False

        if not creation.created:
            logger.warning(
                "Monitored item not created",
                server_url=record.server_url,
                node_id=item.node_id,
                status=creation.status_name,
            )
            await record.subscription.remove_monitored_item(creation.handle)
            return False

        record.items[creation.handle] = MonitoredItemRecord(
            handle=creation.handle,
            source=node_id,
            label=item.node_id,
            sampling_interval=item.sampling_interval,
            deadband=item.deadband,
            deadband_value=item.deadband_value,
        )
        self._index.add(creation.handle, record)
        logger.debug(
            "Monitored item created",
            node_id=format_node_id(node_id),
            handle=creation.handle,
        )
        return True

    async def unmonitor(self, server_url: str, broker_url: str, topic: str) -> bool:
        """Delete the subscription for a triple.

        Returns:
            False if no such subscription exists or the server refused the delete

        Raises:
            UnsupportedBrokerScheme: The broker URL scheme is unknown
        """
        broker = BrokerUrl.parse(broker_url)

        async with self._serialized(server_url):
            record = self._records.get(server_url, {}).get((broker.url, topic))
            if record is None:
                return False
            if not self._is_current(record):
                self._drop(server_url, record)
            elif not await self._remove_record(server_url, record):
                return False

        logger.info(
            "Subscription deleted",
            server_url=server_url,
            broker_url=broker.url,
            topic=topic,
        )
        return True

    async def _remove_record(self, server_url: str, record: SubscriptionRecord) -> bool:
        """Delete a record's protocol subscription and drop it. Caller holds the lock."""
        if not await record.session.delete_subscription(record.subscription):
            return False
        self._drop(server_url, record)
        return True

    def _drop(self, server_url: str, record: SubscriptionRecord) -> None:
        """Forget a record and its index entries without touching the server."""
        if not self._is_current(record):
            logger.info(
                "Dropping subscription of a replaced session",
                server_url=server_url,
                topic=record.topic,
                items=len(record.items),
            )
        for handle in record.items:
            self._index.discard(handle)
        record.items.clear()

        records = self._records.get(server_url, {})
        records.pop(record.key, None)
        if not records:
            self._records.pop(server_url, None)

    async def close(self) -> None:
        """Delete every subscription and forget all records."""
        for server_url in list(self._records):
            async with self._serialized(server_url):
                for record in list(self._records.get(server_url, {}).values()):
                    if self._is_current(record):
                        await self._remove_record(server_url, record)
                    else:
                        self._drop(server_url, record)
        self._records.clear()
        self._index.clear()
