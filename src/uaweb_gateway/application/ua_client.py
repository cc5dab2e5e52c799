"""UA client facade.

The single entry point the API and CLI use. Every operation takes a server
URL and a node id string; sessions are resolved through the Session
Registry and shared across callers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from uaweb_gateway.adapters.southbound.opcua_client.codec import ValueCodec
from uaweb_gateway.adapters.southbound.opcua_client.node_ids import (
    format_node_id,
    parse_node_id,
)
from uaweb_gateway.application.browse import DEFAULT_MAX_DEPTH, BrowseEngine
from uaweb_gateway.application.notification_router import NotificationRouter
from uaweb_gateway.application.session_registry import SessionRegistry
from uaweb_gateway.application.subscription_registry import ItemIndex, SubscriptionRegistry
from uaweb_gateway.domain.errors import WriteRejected
from uaweb_gateway.domain.model.nodes import DeadbandSupport, NodeDetails

if TYPE_CHECKING:
    from collections.abc import Sequence

    from uaweb_gateway.adapters.publishers.factory import PublisherFactory
    from uaweb_gateway.adapters.southbound.opcua_client.ports import ProtocolClientPort
    from uaweb_gateway.domain.model.monitoring import MonitorableNode
    from uaweb_gateway.domain.model.nodes import EdgeDescription, UaValue

logger = structlog.get_logger(__name__)


class UaClient:
    """Read, write, browse and monitor nodes on any number of servers."""

    def __init__(
        self,
        sessions: SessionRegistry,
        subscriptions: SubscriptionRegistry,
        browser: BrowseEngine,
        codec: ValueCodec,
        router: NotificationRouter,
        publishers: PublisherFactory,
    ) -> None:
        self._sessions = sessions
        self._subscriptions = subscriptions
        self._browser = browser
        self._codec = codec
        self._router = router
        self._publishers = publishers

    @classmethod
    def create(
        cls,
        protocol: ProtocolClientPort,
        publishers: PublisherFactory,
        max_browse_depth: int = DEFAULT_MAX_DEPTH,
    ) -> UaClient:
        """Wire the registries, router and browse engine together."""
        sessions = SessionRegistry(protocol)
        index = ItemIndex()
        codec = ValueCodec()
        router = NotificationRouter(index, codec)
        subscriptions = SubscriptionRegistry(
            sessions, publishers, index, router.on_item_notification
        )
        return cls(
            sessions=sessions,
            subscriptions=subscriptions,
            browser=BrowseEngine(max_browse_depth),
            codec=codec,
            router=router,
            publishers=publishers,
        )

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    @property
    def subscriptions(self) -> SubscriptionRegistry:
        return self._subscriptions

    @property
    def router(self) -> NotificationRouter:
        return self._router

    async def read_node(self, server_url: str, node_id: str) -> NodeDetails:
        native = parse_node_id(node_id)
        session = await self._sessions.get_or_create(server_url)
        descriptor = await session.read_node(native)

        value = self._codec.decode(descriptor) if descriptor.is_variable else None
        return NodeDetails(
            node_id=format_node_id(descriptor.node_id),
            node_class=descriptor.node_class.name,
            browse_name=descriptor.browse_name,
            display_name=descriptor.display_name,
            description=descriptor.description,
            value=value,
            status=descriptor.status_name,
        )

    async def read_value(self, server_url: str, node_id: str) -> UaValue:
        native = parse_node_id(node_id)
        session = await self._sessions.get_or_create(server_url)
        descriptor = await session.read_node(native)
        return self._codec.decode(descriptor)

    async def browse(self, server_url: str, node_id: str) -> list[EdgeDescription]:
        native = parse_node_id(node_id)
        session = await self._sessions.get_or_create(server_url)
        return await self._browser.children(session, native)

    async def is_folder(self, server_url: str, node_id: str) -> bool:
        native = parse_node_id(node_id)
        session = await self._sessions.get_or_create(server_url)
        return await self._browser.is_container(session, native)

    async def deadband_modes(self, server_url: str, node_id: str) -> DeadbandSupport:
        native = parse_node_id(node_id)
        session = await self._sessions.get_or_create(server_url)
        descriptor = await session.read_node(native)
        if descriptor.data_type is None:
            # Only variables carry a data type
            return DeadbandSupport.NONE
        return await self._browser.deadband_modes(session, native, descriptor.data_type)

    async def write_value(self, server_url: str, node_id: str, value: Any) -> None:
        """Write a node's Value attribute.

        Raises:
            WriteRejected: The value does not fit the node's type or the
                server answered with a non-good status
        """
        native = parse_node_id(node_id)
        session = await self._sessions.get_or_create(server_url)
        descriptor = await session.read_node(native)
        variant = self._codec.encode(descriptor, value)

        status = await session.write_value(native, variant)
        if not status.startswith("Good"):
            logger.warning(
                "Write rejected",
                server_url=server_url,
                node_id=node_id,
                status=status,
            )
            raise WriteRejected(status)

        logger.info("Value written", server_url=server_url, node_id=node_id)

    async def is_server_available(self, server_url: str) -> bool:
        return await self._sessions.probe_and_recover(server_url)

    async def create_monitored_items(
        self,
        server_url: str,
        items: Sequence[MonitorableNode],
        broker_url: str,
        topic: str,
    ) -> list[bool]:
        return await self._subscriptions.monitor(server_url, items, broker_url, topic)

    async def delete_monitoring(self, server_url: str, broker_url: str, topic: str) -> bool:
        return await self._subscriptions.unmonitor(server_url, broker_url, topic)

    async def close(self) -> None:
        """Stop forwarding, then drop subscriptions, sessions and publishers."""
        await self._router.close()
        await self._subscriptions.close()
        await self._sessions.close_all()
        await self._publishers.close()
