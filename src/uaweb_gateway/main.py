"""Main entry point for the UA Web Gateway runtime."""

from __future__ import annotations

import asyncio
import os
import signal
from typing import TYPE_CHECKING

import structlog

from uaweb_gateway import __version__
from uaweb_gateway.adapters.northbound.api.server import GatewayApiServer
from uaweb_gateway.adapters.northbound.api.websocket.manager import WebSocketManager
from uaweb_gateway.adapters.publishers.factory import PublisherFactory
from uaweb_gateway.adapters.southbound.opcua_client.client import AsyncuaProtocolClient
from uaweb_gateway.application.ua_client import UaClient
from uaweb_gateway.config.loader import load_config
from uaweb_gateway.observability.logging import setup_logging

if TYPE_CHECKING:
    from pathlib import Path

    from uaweb_gateway.config.schema import GatewayConfig

logger = structlog.get_logger(__name__)


class GatewayRuntime:
    """Owns the shared UaClient and the HTTP server in front of it.

    Sessions are opened lazily by requests, so starting the runtime only
    binds the API. Stopping closes the API first so no request can open
    a session while the UaClient tears the existing ones down.
    """

    def __init__(self, config: GatewayConfig) -> None:
        self.config = config
        self._stopped = asyncio.Event()
        ws_manager = WebSocketManager()
        self._ua_client = UaClient.create(
            AsyncuaProtocolClient(config.client, config.security),
            PublisherFactory(config.mqtt, ws_manager),
            max_browse_depth=config.client.max_browse_depth,
        )
        self._api_server = GatewayApiServer(config.api, self._ua_client, ws_manager)

    @property
    def ua_client(self) -> UaClient:
        return self._ua_client

    async def start(self) -> None:
        logger.info(
            "Starting UA Web Gateway",
            name=self.config.gateway.name,
            version=__version__,
            api_enabled=self.config.api.enabled,
        )
        await self._api_server.start()

    async def stop(self) -> None:
        await self._api_server.stop()
        servers = self._ua_client.sessions.server_urls
        await self._ua_client.close()
        logger.info("UA Web Gateway stopped", closed_sessions=len(servers))

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._stopped.set()


def _configure_logging(config: GatewayConfig) -> None:
    # Environment wins over the file
    setup_logging(
        os.environ.get("UAWEB_LOG_LEVEL") or config.gateway.log_level,
        os.environ.get("UAWEB_LOG_FORMAT") or config.gateway.log_format.value,
    )


async def run_gateway(config_path: Path, override_path: Path | None = None) -> None:
    """Load the configuration and serve until SIGINT or SIGTERM."""
    config = load_config(config_path, override_path=override_path)
    _configure_logging(config)

    runtime = GatewayRuntime(config)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, runtime.request_shutdown)

    try:
        await runtime.start()
        await runtime.wait_stopped()
    finally:
        await runtime.stop()


def main() -> None:
    """Console script entry point."""
    from uaweb_gateway.cli.app import app  # noqa: PLC0415

    app()


if __name__ == "__main__":
    main()
