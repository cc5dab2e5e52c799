"""UA Web Gateway - Multiplexing web clients onto shared OPC UA sessions.

This package provides a gateway that:
- Keeps one OPC UA session per server, shared by every caller
- Reads, writes and browses nodes on behalf of HTTP clients
- Folds monitoring requests into one subscription per server, broker and topic
- Publishes value changes to MQTT brokers or a WebSocket push channel
"""

__version__ = "0.1.0"

__author__ = "UA Web Gateway Team"

from uaweb_gateway.domain.model.nodes import DeadbandSupport, UaValue

__all__ = [
    "DeadbandSupport",
    "UaValue",
    "__version__",
]
