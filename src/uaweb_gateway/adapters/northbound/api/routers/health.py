"""Liveness and readiness probes."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field

from uaweb_gateway import __version__
from uaweb_gateway.adapters.northbound.api.dependencies import UaClientDep, WsManagerDep

router = APIRouter()


def _now() -> str:
    return datetime.now(UTC).isoformat()


class HealthResponse(BaseModel):
    status: str
    timestamp: str = Field(default_factory=_now, description="ISO 8601 timestamp")
    version: str = __version__


class ReadinessResponse(HealthResponse):
    """What the gateway currently holds open on behalf of its clients."""

    sessions: int = Field(..., ge=0, description="Open OPC UA sessions")
    subscriptions: int = Field(..., ge=0, description="Live (server, broker, topic) records")
    ws_connections: int = Field(..., ge=0, description="Connected push channel clients")


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Answers as long as the process serves HTTP."""
    return HealthResponse(status="healthy")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(ua_client: UaClientDep, ws_manager: WsManagerDep) -> ReadinessResponse:
    server_urls = ua_client.sessions.server_urls
    return ReadinessResponse(
        status="ready",
        sessions=len(server_urls),
        subscriptions=sum(len(ua_client.subscriptions.records(url)) for url in server_urls),
        ws_connections=ws_manager.connection_count,
    )
