"""API routers.

Provides FastAPI routers for all API endpoints:
- health: Health and readiness checks
- servers: Server availability
- nodes: Node read, write, browse and classification
- monitoring: Broker-bound subscriptions
- ws: WebSocket push channel
"""

from uaweb_gateway.adapters.northbound.api.routers import (
    health,
    monitoring,
    nodes,
    servers,
    ws,
)

__all__ = [
    "health",
    "monitoring",
    "nodes",
    "servers",
    "ws",
]
