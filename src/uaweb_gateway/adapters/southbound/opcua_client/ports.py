"""Ports for the OPC UA protocol client.

Defines the protocol-level operations the gateway core consumes: endpoint
discovery, session establishment, reads, writes, browsing and subscriptions.
The asyncua adapter in ``client.py`` implements them; unit tests substitute
in-memory fakes. Node identifiers use asyncua's native ``ua.NodeId``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from asyncua import ua

    from uaweb_gateway.domain.model.nodes import DeadbandMode


# Called with an item handle and the values buffered for it, in delivery order
ItemNotificationCallback = Callable[[int, "Sequence[ua.DataValue]"], None]


@dataclass(frozen=True)
class Endpoint:
    """A connection endpoint discovered from a server.

    Attributes:
        url: Endpoint URL reported by the server
        security_mode: Message security mode name (None, Sign, SignAndEncrypt)
        security_level: Server-assigned relative security level
        security_policy_uri: Security policy URI
    """

    url: str
    security_mode: str
    security_level: int
    security_policy_uri: str

    @property
    def requires_security(self) -> bool:
        return self.security_mode not in ("None", "None_")

    @property
    def security_policy(self) -> str:
        """Short policy name, e.g. ``Basic256Sha256``."""
        return self.security_policy_uri.rsplit("#", 1)[-1]


@dataclass(frozen=True)
class BrowseEdge:
    """A reference returned by a single browse call."""

    node_id: ua.NodeId
    browse_name: str
    display_name: str
    node_class: ua.NodeClass
    reference_type_id: ua.NodeId


@dataclass(frozen=True)
class ReadResult:
    """Result of reading a single Value attribute."""

    good: bool
    value: Any
    status_name: str = "Good"


@dataclass(frozen=True)
class NodeDescriptor:
    """Attributes of a node read in one round trip.

    data_type, value_rank and value are only set for variable nodes.
    """

    node_id: ua.NodeId
    node_class: ua.NodeClass
    browse_name: str
    display_name: str
    description: str = ""
    data_type: ua.NodeId | None = None
    value_rank: int | None = None
    value: ua.Variant | None = None
    status_name: str = "Good"

    @property
    def is_variable(self) -> bool:
        return self.data_type is not None


@dataclass(frozen=True)
class DeadbandFilter:
    """Data change filter applied to a monitored item."""

    mode: DeadbandMode
    value: float


@dataclass(frozen=True)
class ItemCreation:
    """Outcome of creating one monitored item."""

    handle: int
    created: bool
    status_name: str = "Good"


@runtime_checkable
class SubscriptionPort(Protocol):
    """A live protocol subscription."""

    @property
    def publishing_interval(self) -> float:
        """Current publishing interval in milliseconds."""
        ...

    async def set_publishing_interval(self, interval: float) -> None:
        """Apply a new publishing interval to the live subscription."""
        ...

    async def add_monitored_item(
        self,
        node_id: ua.NodeId,
        sampling_interval: float,
        deadband: DeadbandFilter | None = None,
    ) -> ItemCreation:
        """Create a monitored item on the Value attribute of a node."""
        ...

    async def remove_monitored_item(self, handle: int) -> None:
        """Remove a monitored item from the subscription."""
        ...


@runtime_checkable
class UaSessionPort(Protocol):
    """A live session with one server."""

    async def read_value(self, node_id: ua.NodeId) -> ReadResult:
        ...

    async def read_node(self, node_id: ua.NodeId) -> NodeDescriptor:
        ...

    async def write_value(self, node_id: ua.NodeId, value: ua.Variant) -> str:
        """Write the Value attribute and return the status code name."""
        ...

    async def browse(
        self,
        node_id: ua.NodeId,
        reference_type: ua.NodeId,
        direction: ua.BrowseDirection,
    ) -> list[BrowseEdge]:
        ...

    async def create_subscription(
        self,
        interval: float,
        callback: ItemNotificationCallback,
    ) -> SubscriptionPort:
        ...

    async def delete_subscription(self, subscription: SubscriptionPort) -> bool:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class ProtocolClientPort(Protocol):
    """Factory for sessions: discovery plus session establishment."""

    async def discover_endpoints(self, server_url: str) -> list[Endpoint]:
        """Return the endpoints advertised by a server, in server order."""
        ...

    async def open_session(self, server_url: str, endpoint: Endpoint) -> UaSessionPort:
        """Establish a session against a discovered endpoint."""
        ...
