"""Server endpoints router."""

from __future__ import annotations

from fastapi import APIRouter, Query

from uaweb_gateway.adapters.northbound.api.dependencies import UaClientDep
from uaweb_gateway.adapters.northbound.api.schemas.common import ServerAvailability

router = APIRouter()


@router.get("/available", response_model=ServerAvailability)
async def server_available(
    ua_client: UaClientDep,
    server_url: str = Query(..., min_length=1, description="OPC UA server URL"),
) -> ServerAvailability:
    """Probe a server, replacing a dead session once if needed."""
    available = await ua_client.is_server_available(server_url)
    return ServerAvailability(server_url=server_url, available=available)
