"""Monitoring schemas for the API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from uaweb_gateway.domain.model.monitoring import MonitorableNode
from uaweb_gateway.domain.model.nodes import DeadbandMode


class MonitorItem(BaseModel):
    """One node to monitor.

    Attributes:
        node_id: Node id string
        sampling_interval: Sampling interval in milliseconds
        deadband: Deadband filter mode
        deadband_value: Absolute delta or percent of EURange
    """

    model_config = ConfigDict(extra="forbid")

    node_id: str = Field(..., min_length=1)
    sampling_interval: float = Field(..., gt=0, description="Sampling interval (ms)")
    deadband: DeadbandMode = Field(default=DeadbandMode.NONE)
    deadband_value: float = Field(default=0.0, ge=0)

    def to_domain(self) -> MonitorableNode:
        return MonitorableNode(
            node_id=self.node_id,
            sampling_interval=self.sampling_interval,
            deadband=self.deadband,
            deadband_value=self.deadband_value,
        )


class MonitorRequest(BaseModel):
    """Monitor nodes and publish their changes to a broker topic."""

    model_config = ConfigDict(extra="forbid")

    server_url: str = Field(..., min_length=1, description="OPC UA server URL")
    broker_url: str = Field(..., min_length=1, description="Broker URL (scheme:address)")
    topic: str = Field(..., min_length=1, description="Topic to publish under")
    items: list[MonitorItem] = Field(..., description="Nodes to monitor")


class MonitorResponse(BaseModel):
    """Per-item creation results, in request order."""

    model_config = ConfigDict(extra="forbid")

    results: list[bool] = Field(default_factory=list)
    created: int = Field(..., ge=0)


class UnmonitorRequest(BaseModel):
    """Stop publishing a (server, broker, topic) triple."""

    model_config = ConfigDict(extra="forbid")

    server_url: str = Field(..., min_length=1)
    broker_url: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)


class UnmonitorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    deleted: bool
