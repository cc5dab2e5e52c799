"""Publishers forwarding notification messages to brokers.

Provides:
- MQTT topics via paho-mqtt
- The gateway's WebSocket push channel
"""

from uaweb_gateway.adapters.publishers.base import (
    BrokerScheme,
    BrokerUrl,
    Publisher,
    format_message,
)
from uaweb_gateway.adapters.publishers.factory import PublisherFactory
from uaweb_gateway.adapters.publishers.mqtt import MqttPublisher
from uaweb_gateway.adapters.publishers.websocket import WebSocketPublisher

__all__ = [
    "BrokerScheme",
    "BrokerUrl",
    "MqttPublisher",
    "Publisher",
    "PublisherFactory",
    "WebSocketPublisher",
    "format_message",
]
