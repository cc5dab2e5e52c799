"""Node endpoints router.

Provides endpoints for reading, writing, browsing and classifying nodes.
Every endpoint addresses a node by server URL and node id string.
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Query

from uaweb_gateway.adapters.northbound.api.dependencies import UaClientDep
from uaweb_gateway.adapters.northbound.api.schemas.nodes import (
    BrowseResponse,
    DeadbandResponse,
    EdgeResponse,
    FolderResponse,
    NodeResponse,
    WriteRequest,
    WriteResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter()

ServerUrlQuery = Query(..., min_length=1, description="OPC UA server URL")
NodeIdQuery = Query(..., min_length=1, description="Node id (ns=N;x=...)")


@router.get("/read", response_model=NodeResponse)
async def read_node(
    ua_client: UaClientDep,
    server_url: str = ServerUrlQuery,
    node_id: str = NodeIdQuery,
) -> NodeResponse:
    """Read a node's attributes and, for variables, its value."""
    details = await ua_client.read_node(server_url, node_id)
    return NodeResponse.from_domain(details)


@router.get("/browse", response_model=BrowseResponse)
async def browse_node(
    ua_client: UaClientDep,
    server_url: str = ServerUrlQuery,
    node_id: str = NodeIdQuery,
) -> BrowseResponse:
    """List the hierarchical children of a node in server order."""
    edges = await ua_client.browse(server_url, node_id)
    children = [EdgeResponse.from_domain(edge) for edge in edges]
    return BrowseResponse(node_id=node_id, children=children, count=len(children))


@router.get("/is-folder", response_model=FolderResponse)
async def is_folder(
    ua_client: UaClientDep,
    server_url: str = ServerUrlQuery,
    node_id: str = NodeIdQuery,
) -> FolderResponse:
    """Whether a node's type derives from FolderType."""
    result = await ua_client.is_folder(server_url, node_id)
    return FolderResponse(node_id=node_id, is_folder=result)


@router.get("/deadband", response_model=DeadbandResponse)
async def deadband_modes(
    ua_client: UaClientDep,
    server_url: str = ServerUrlQuery,
    node_id: str = NodeIdQuery,
) -> DeadbandResponse:
    """Deadband modes a variable node supports."""
    support = await ua_client.deadband_modes(server_url, node_id)
    return DeadbandResponse(
        node_id=node_id,
        modes=support.value,
        absolute=support.absolute,
        percent=support.percent,
    )


@router.post("/write", response_model=WriteResponse)
async def write_value(request: WriteRequest, ua_client: UaClientDep) -> WriteResponse:
    """Write a node's value.

    A value that does not match the node's type is rejected with 422.
    """
    await ua_client.write_value(request.server_url, request.node_id, request.value)
    return WriteResponse(
        node_id=request.node_id,
        timestamp=datetime.now(UTC).isoformat(),
    )
