"""Monitoring domain models.

A SubscriptionRecord is the gateway-side view of one protocol subscription
shared by every caller that publishes to the same (server, broker, topic).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from uaweb_gateway.domain.model.nodes import DeadbandMode

if TYPE_CHECKING:
    from uaweb_gateway.adapters.publishers.base import BrokerUrl, Publisher
    from uaweb_gateway.adapters.southbound.opcua_client.ports import (
        SubscriptionPort,
        UaSessionPort,
    )


@dataclass(frozen=True)
class MonitorableNode:
    """A node a caller asks to monitor.

    Attributes:
        node_id: Node id string as sent by the caller
        sampling_interval: Requested sampling interval in milliseconds
        deadband: Deadband filter mode
        deadband_value: Deadband threshold (absolute delta or percent of EURange)
    """

    node_id: str
    sampling_interval: float
    deadband: DeadbandMode = DeadbandMode.NONE
    deadband_value: float = 0.0


@dataclass
class MonitoredItemRecord:
    """A monitored item that was created on the server."""

    handle: int
    source: Any  # native ua.NodeId
    label: str
    sampling_interval: float
    deadband: DeadbandMode = DeadbandMode.NONE
    deadband_value: float = 0.0


@dataclass(eq=False)
class SubscriptionRecord:
    """One protocol subscription publishing to one broker topic.

    The publishing interval only ever decreases: it is the minimum sampling
    interval requested by any monitor call for this triple.
    """

    server_url: str
    broker: BrokerUrl
    topic: str
    publisher: Publisher
    session: UaSessionPort
    subscription: SubscriptionPort
    items: dict[int, MonitoredItemRecord] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        """Registry key within a server: (broker url, topic)."""
        return (self.broker.url, self.topic)

    @property
    def publishing_interval(self) -> float:
        return self.subscription.publishing_interval
