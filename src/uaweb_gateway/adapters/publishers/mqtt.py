"""MQTT publisher on paho-mqtt.

paho runs its network loop on its own thread (``loop_start``) and keeps
reconnecting in the background; connection state is handed back to the
event loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import paho.mqtt.client as mqtt
import structlog

if TYPE_CHECKING:
    from uaweb_gateway.config.schema import MqttConfig

logger = structlog.get_logger(__name__)

DEFAULT_MQTT_PORT = 1883


def parse_mqtt_address(address: str) -> tuple[str, int]:
    """Split ``host[:port]`` (optionally prefixed with ``//``) into host and port."""
    address = address.strip().removeprefix("//").rstrip("/")
    if not address:
        raise ValueError("MQTT broker address is empty")

    host, sep, port = address.rpartition(":")
    if not sep or "]" in port:
        return address.strip("[]"), DEFAULT_MQTT_PORT
    return host.strip("[]"), int(port)


class MqttPublisher:
    """Publishes messages to one MQTT broker."""

    def __init__(self, address: str, config: MqttConfig) -> None:
        self._host, self._port = parse_mqtt_address(address)
        self._config = config
        self._client: mqtt.Client | None = None
        self._connected = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def broker(self) -> str:
        return f"{self._host}:{self._port}"

    async def connect(self) -> None:
        """Start connecting and wait up to the configured timeout.

        A broker that is not reachable yet is not an error: paho keeps
        retrying in the background and QoS>0 messages are queued meanwhile.
        """
        self._loop = asyncio.get_running_loop()

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"{self._config.client_id_prefix}-{uuid4().hex[:8]}",
        )
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect

        if self._config.username:
            client.username_pw_set(self._config.username, self._config.password)
        if self._config.tls:
            client.tls_set()

        client.connect_async(self._host, self._port, keepalive=self._config.keepalive_s)
        client.loop_start()
        self._client = client

        try:
            await asyncio.wait_for(self._connected.wait(), timeout=self._config.connect_timeout_s)
        except TimeoutError:
            logger.warning(
                "MQTT broker not reachable yet",
                broker=self.broker,
                timeout_s=self._config.connect_timeout_s,
            )

    async def publish(self, topic: str, message: str) -> None:
        if self._client is None:
            raise ConnectionError(f"MQTT publisher for {self.broker} is not started")

        info = self._client.publish(
            topic,
            message,
            qos=self._config.qos,
            retain=self._config.retain,
        )
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(
                f"MQTT publish to {self.broker}/{topic} failed: {mqtt.error_string(info.rc)}"
            )

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        client.disconnect()
        client.loop_stop()
        self._connected.clear()
        logger.info("MQTT publisher closed", broker=self.broker)

    # =========================================================================
    # paho callbacks (network thread)
    # =========================================================================

    def _set_state(self, connected: bool) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        action = self._connected.set if connected else self._connected.clear
        self._loop.call_soon_threadsafe(action)

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if reason_code.is_failure:
            logger.warning("MQTT connection refused", broker=self.broker, reason=str(reason_code))
            return
        logger.info("Connected to MQTT broker", broker=self.broker)
        self._set_state(True)

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        logger.warning("Disconnected from MQTT broker", broker=self.broker, reason=str(reason_code))
        self._set_state(False)
