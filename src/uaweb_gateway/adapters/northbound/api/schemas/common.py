"""Response bodies that are not tied to nodes or monitoring."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Body of every non-2xx answer.

    ``error`` names the gateway error class, ``detail`` carries the OPC UA
    status name or the failing field when one is known.
    """

    model_config = ConfigDict(extra="forbid")

    error: str = Field(..., examples=["WriteRejected"])
    message: str
    detail: Any = Field(default=None, examples=["BadTypeMismatch"])


class ServerAvailability(BaseModel):
    model_config = ConfigDict(extra="forbid")

    server_url: str = Field(..., description="OPC UA server URL")
    available: bool = Field(..., description="Server answers with a Running state")
