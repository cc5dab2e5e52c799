"""FastAPI application and the uvicorn server that hosts it.

All routes are versioned under ``/api/v1``; the WebSocket push channel
lives at ``/api/v1/ws`` next to the REST routes.
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from uaweb_gateway import __version__
from uaweb_gateway.adapters.northbound.api.errors import install_error_handlers
from uaweb_gateway.adapters.northbound.api.routers import (
    health,
    monitoring,
    nodes,
    servers,
    ws,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from uaweb_gateway.adapters.northbound.api.websocket.manager import WebSocketManager
    from uaweb_gateway.application.ua_client import UaClient
    from uaweb_gateway.config.schema import ApiConfig

logger = structlog.get_logger(__name__)

API_PREFIX = "/api/v1"

# Seconds uvicorn gets to drain connections before its task is cancelled
_SHUTDOWN_GRACE_S = 5.0


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("API application starting", routes=len(app.routes))
    yield
    # Push clients are dropped here; sessions belong to the UaClient owner
    await app.state.ws_manager.close()
    logger.info("API application shut down")


def create_app(
    ua_client: UaClient,
    ws_manager: WebSocketManager,
    *,
    cors_origins: list[str] | None = None,
    docs: bool = True,
) -> FastAPI:
    """Build the FastAPI application around a UaClient and a push channel."""
    app = FastAPI(
        title="UA Web Gateway",
        description="Shared OPC UA sessions and subscriptions over HTTP and WebSocket",
        version=__version__,
        lifespan=_lifespan,
        docs_url="/api/docs" if docs else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if docs else None,
    )
    app.state.ua_client = ua_client
    app.state.ws_manager = ws_manager

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["GET", "POST", "DELETE"],
            allow_headers=["*"],
        )

    install_error_handlers(app)

    for router, path, tag in (
        (health.router, "", "health"),
        (servers.router, "/servers", "servers"),
        (nodes.router, "/nodes", "nodes"),
        (monitoring.router, "/monitoring", "monitoring"),
        (ws.router, "", "websocket"),
    ):
        app.include_router(router, prefix=API_PREFIX + path, tags=[tag])

    return app


class GatewayApiServer:
    """Runs the API application under uvicorn as a background task."""

    def __init__(
        self,
        config: ApiConfig,
        ua_client: UaClient,
        ws_manager: WebSocketManager,
    ) -> None:
        self._config = config
        self._ua_client = ua_client
        self._ws_manager = ws_manager
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._serve_task is not None:
            return
        if not self._config.enabled:
            logger.info("API server disabled in configuration")
            return

        app = create_app(
            self._ua_client,
            self._ws_manager,
            cors_origins=self._config.cors_origins,
            docs=self._config.docs,
        )
        # uvicorn logs through the root handler set up by setup_logging
        self._server = uvicorn.Server(
            uvicorn.Config(
                app=app,
                host=self._config.host,
                port=self._config.port,
                log_config=None,
                access_log=False,
            )
        )
        self._serve_task = asyncio.create_task(self._server.serve())
        logger.info("API server started", host=self._config.host, port=self._config.port)

    async def stop(self) -> None:
        if self._serve_task is None or self._server is None:
            return

        self._server.should_exit = True
        try:
            await asyncio.wait_for(self._serve_task, timeout=_SHUTDOWN_GRACE_S)
        except TimeoutError:
            logger.warning("API server did not drain in time, cancelling")
            self._serve_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._serve_task
        finally:
            self._server = None
            self._serve_task = None

        logger.info("API server stopped")
