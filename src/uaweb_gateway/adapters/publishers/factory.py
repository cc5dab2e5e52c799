"""Publisher Factory.

Resolves a broker URL to a publisher. One publisher is kept per broker URL
so every subscription publishing to the same broker shares its connection.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from uaweb_gateway.adapters.publishers.base import BrokerScheme, BrokerUrl, Publisher
from uaweb_gateway.adapters.publishers.mqtt import MqttPublisher
from uaweb_gateway.adapters.publishers.websocket import WebSocketPublisher
from uaweb_gateway.domain.errors import UnsupportedBrokerScheme

if TYPE_CHECKING:
    from uaweb_gateway.adapters.northbound.api.websocket.manager import WebSocketManager
    from uaweb_gateway.config.schema import MqttConfig

logger = structlog.get_logger(__name__)


class PublisherFactory:
    """Creates and caches publishers by broker URL."""

    def __init__(self, mqtt_config: MqttConfig, ws_manager: WebSocketManager) -> None:
        self._mqtt_config = mqtt_config
        self._ws_manager = ws_manager
        self._publishers: dict[str, Publisher] = {}
        self._lock = asyncio.Lock()

    @property
    def broker_urls(self) -> list[str]:
        return list(self._publishers)

    async def get(self, broker: BrokerUrl | str) -> Publisher:
        """Return the publisher for a broker, creating it on first use.

        Raises:
            UnsupportedBrokerScheme: Unknown scheme or malformed address
        """
        if isinstance(broker, str):
            broker = BrokerUrl.parse(broker)

        async with self._lock:
            publisher = self._publishers.get(broker.url)
            if publisher is None:
                publisher = await self._create(broker)
                self._publishers[broker.url] = publisher
                logger.info("Publisher created", broker_url=broker.url)
            return publisher

    async def _create(self, broker: BrokerUrl) -> Publisher:
        if broker.scheme is BrokerScheme.MQTT:
            try:
                mqtt_publisher = MqttPublisher(broker.address, self._mqtt_config)
            except ValueError as e:
                raise UnsupportedBrokerScheme(broker.url) from e
            await mqtt_publisher.connect()
            return mqtt_publisher

        return WebSocketPublisher(broker.address, self._ws_manager)

    async def close(self) -> None:
        async with self._lock:
            publishers = list(self._publishers.items())
            self._publishers.clear()

        for broker_url, publisher in publishers:
            try:
                await publisher.close()
            except Exception as e:
                logger.warning("Publisher close failed", broker_url=broker_url, error=str(e))
