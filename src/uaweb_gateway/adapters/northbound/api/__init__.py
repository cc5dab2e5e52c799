"""HTTP and WebSocket API for the UA Web Gateway."""

from uaweb_gateway.adapters.northbound.api.server import GatewayApiServer, create_app

__all__ = [
    "GatewayApiServer",
    "create_app",
]
