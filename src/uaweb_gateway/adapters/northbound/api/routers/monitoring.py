"""Monitoring endpoints router.

Creates and deletes broker-bound subscriptions. Items that the server
refuses are reported per item rather than failing the request.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter

from uaweb_gateway.adapters.northbound.api.dependencies import UaClientDep
from uaweb_gateway.adapters.northbound.api.schemas.monitoring import (
    MonitorRequest,
    MonitorResponse,
    UnmonitorRequest,
    UnmonitorResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("", response_model=MonitorResponse)
async def create_monitoring(request: MonitorRequest, ua_client: UaClientDep) -> MonitorResponse:
    """Monitor nodes and publish their value changes to a broker topic."""
    results = await ua_client.create_monitored_items(
        request.server_url,
        [item.to_domain() for item in request.items],
        request.broker_url,
        request.topic,
    )
    return MonitorResponse(results=results, created=sum(results))


@router.delete("", response_model=UnmonitorResponse)
async def delete_monitoring(request: UnmonitorRequest, ua_client: UaClientDep) -> UnmonitorResponse:
    """Delete the subscription publishing to a broker topic."""
    deleted = await ua_client.delete_monitoring(
        request.server_url,
        request.broker_url,
        request.topic,
    )
    if not deleted:
        logger.debug(
            "Nothing to delete",
            server_url=request.server_url,
            broker_url=request.broker_url,
            topic=request.topic,
        )
    return UnmonitorResponse(deleted=deleted)
