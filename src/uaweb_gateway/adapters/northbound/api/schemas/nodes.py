"""Node schemas for the API.

Provides request/response models for node read, write and browse
operations and the two node classifications.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from uaweb_gateway.domain.model.nodes import EdgeDescription, NodeDetails, UaValue


class ValueResponse(BaseModel):
    """A decoded node value.

    Attributes:
        value: JSON representation of the value
        type: Builtin OPC UA type name
        is_array: Whether the value is an array
    """

    model_config = ConfigDict(extra="forbid")

    value: Any = Field(..., description="Decoded value")
    type: str = Field(..., description="Builtin type name")
    is_array: bool = Field(default=False, description="Array value")

    @classmethod
    def from_domain(cls, value: UaValue) -> ValueResponse:
        return cls(value=value.value, type=value.type_name, is_array=value.is_array)


class NodeResponse(BaseModel):
    """Attributes of a node."""

    model_config = ConfigDict(extra="forbid")

    node_id: str = Field(..., description="Node id (ns=N;x=...)")
    node_class: str = Field(..., description="Node class name")
    browse_name: str = Field(default="")
    display_name: str = Field(default="")
    description: str = Field(default="")
    value: ValueResponse | None = Field(default=None, description="Value (variables only)")
    status: str = Field(default="Good", description="Status of the value read")

    @classmethod
    def from_domain(cls, details: NodeDetails) -> NodeResponse:
        return cls(
            node_id=details.node_id,
            node_class=details.node_class,
            browse_name=details.browse_name,
            display_name=details.display_name,
            description=details.description,
            value=ValueResponse.from_domain(details.value) if details.value else None,
            status=details.status,
        )


class EdgeResponse(BaseModel):
    """One child reference of a browsed node."""

    model_config = ConfigDict(extra="forbid")

    node_id: str = Field(..., description="Target node id")
    display_name: str = Field(..., description="Target display name")
    node_class: str = Field(..., description="Target node class")
    reference_type_id: str = Field(..., description="Reference type node id")

    @classmethod
    def from_domain(cls, edge: EdgeDescription) -> EdgeResponse:
        return cls(
            node_id=edge.node_id,
            display_name=edge.display_name,
            node_class=edge.node_class,
            reference_type_id=edge.reference_type_id,
        )


class BrowseResponse(BaseModel):
    """Children of a node in server order."""

    model_config = ConfigDict(extra="forbid")

    node_id: str
    children: list[EdgeResponse] = Field(default_factory=list)
    count: int = Field(..., ge=0)


class FolderResponse(BaseModel):
    """Container classification of a node."""

    model_config = ConfigDict(extra="forbid")

    node_id: str
    is_folder: bool


class DeadbandResponse(BaseModel):
    """Deadband modes a variable supports.

    Attributes:
        modes: One of "Absolute, Percentage", "Absolute", "Percentage", "None"
    """

    model_config = ConfigDict(extra="forbid")

    node_id: str
    modes: str
    absolute: bool
    percent: bool


class WriteRequest(BaseModel):
    """Request to write a node's value."""

    model_config = ConfigDict(extra="forbid")

    server_url: str = Field(..., min_length=1, description="OPC UA server URL")
    node_id: str = Field(..., min_length=1, description="Node id (ns=N;x=...)")
    value: Any = Field(..., description="Value to write")


class WriteResponse(BaseModel):
    """Response for a successful write."""

    model_config = ConfigDict(extra="forbid")

    success: bool = Field(default=True)
    node_id: str
    timestamp: str = Field(..., description="ISO 8601 timestamp")
