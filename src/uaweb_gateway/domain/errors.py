"""Error taxonomy for the UA Web Gateway.

Every failure surfaced by the session, browse and subscription layers is one
of these types. None of them are process-fatal; callers receive the error for
the single operation that failed.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all gateway errors."""


class EndpointDiscoveryFailed(GatewayError):
    """No endpoints could be discovered for a server URL."""

    def __init__(self, server_url: str, reason: str = "no endpoints found") -> None:
        super().__init__(f"Endpoint discovery failed for {server_url}: {reason}")
        self.server_url = server_url
        self.reason = reason


class SessionUnavailable(GatewayError):
    """A session could not be established or restored."""

    def __init__(self, server_url: str, reason: str) -> None:
        super().__init__(f"Session unavailable for {server_url}: {reason}")
        self.server_url = server_url
        self.reason = reason


class WriteRejected(GatewayError):
    """The server refused a value write.

    Attributes:
        status_name: Raw OPC UA status code name (e.g. "BadTypeMismatch")
    """

    TYPE_MISMATCH = "BadTypeMismatch"

    def __init__(self, status_name: str) -> None:
        if status_name == self.TYPE_MISMATCH:
            message = (
                "Wrong Type Error: data sent are not of the type expected. "
                "Check your data and try again"
            )
        else:
            message = status_name
        super().__init__(message)
        self.status_name = status_name

    @property
    def is_type_mismatch(self) -> bool:
        return self.status_name == self.TYPE_MISMATCH


class NoTypeDefinition(GatewayError):
    """A node has no HasTypeDefinition reference."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node {node_id} has no type definition")
        self.node_id = node_id


class TypeHierarchyTooDeep(GatewayError):
    """A type hierarchy walk did not reach a terminal type."""

    def __init__(self, start: str, last: str, steps: int) -> None:
        super().__init__(
            f"Type hierarchy from {start} did not terminate after {steps} steps (stopped at {last})"
        )
        self.start = start
        self.last = last
        self.steps = steps


class InvalidNodeId(GatewayError, ValueError):
    """A node identifier string could not be parsed."""


class UnsupportedBrokerScheme(GatewayError, ValueError):
    """A broker URL does not match ``scheme:address`` with a known scheme."""

    def __init__(self, broker_url: str) -> None:
        super().__init__(f"Unsupported broker URL: '{broker_url}'")
        self.broker_url = broker_url
