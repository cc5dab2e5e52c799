"""Pydantic schemas for the API.

Provides request/response models for the REST API endpoints.
"""

from uaweb_gateway.adapters.northbound.api.schemas.common import (
    ErrorResponse,
    ServerAvailability,
)
from uaweb_gateway.adapters.northbound.api.schemas.monitoring import (
    MonitorItem,
    MonitorRequest,
    MonitorResponse,
    UnmonitorRequest,
    UnmonitorResponse,
)
from uaweb_gateway.adapters.northbound.api.schemas.nodes import (
    BrowseResponse,
    DeadbandResponse,
    EdgeResponse,
    FolderResponse,
    NodeResponse,
    ValueResponse,
    WriteRequest,
    WriteResponse,
)

__all__ = [
    # Common
    "ErrorResponse",
    "ServerAvailability",
    # Monitoring
    "MonitorItem",
    "MonitorRequest",
    "MonitorResponse",
    "UnmonitorRequest",
    "UnmonitorResponse",
    # Nodes
    "BrowseResponse",
    "DeadbandResponse",
    "EdgeResponse",
    "FolderResponse",
    "NodeResponse",
    "ValueResponse",
    "WriteRequest",
    "WriteResponse",
]
