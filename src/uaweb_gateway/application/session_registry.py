"""Session Registry.

Owns one live OPC UA session per server URL. Sessions are created lazily
on first use, shared by every caller addressing the same URL, and replaced
when a liveness probe finds them dead.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog
from asyncua import ua

from uaweb_gateway.domain.errors import EndpointDiscoveryFailed, SessionUnavailable
from uaweb_gateway.domain.model.nodes import ServerState

if TYPE_CHECKING:
    from uaweb_gateway.adapters.southbound.opcua_client.ports import (
        Endpoint,
        ProtocolClientPort,
        UaSessionPort,
    )

logger = structlog.get_logger(__name__)

# Server_ServerStatus_State (i=2259)
SERVER_STATE_NODE = ua.NodeId(ua.ObjectIds.Server_ServerStatus_State, 0)


@dataclass
class ServerSession:
    """The live session held for one server URL."""

    server_url: str
    endpoint: Endpoint
    session: UaSessionPort


class SessionRegistry:
    """One protocol session per server URL.

    Establishment runs outside the map lock. Concurrent first callers for
    the same URL share a single in-flight establishment; the insert is
    re-checked under the lock and a surplus session is closed instead of
    being kept alongside the registered one.
    """

    def __init__(self, client: ProtocolClientPort) -> None:
        self._client = client
        self._sessions: dict[str, ServerSession] = {}
        self._pending: dict[str, asyncio.Task[ServerSession]] = {}
        self._lock = asyncio.Lock()

    @property
    def server_urls(self) -> list[str]:
        return list(self._sessions)

    def get(self, server_url: str) -> ServerSession | None:
        return self._sessions.get(server_url)

    async def get_or_create(self, server_url: str) -> UaSessionPort:
        """Return the session for a server URL, establishing it on first use.

        Raises:
            EndpointDiscoveryFailed: No endpoints could be discovered
            SessionUnavailable: The session could not be established
        """
        entry = await self._get_or_create_entry(server_url)
        return entry.session

    async def _get_or_create_entry(self, server_url: str) -> ServerSession:
        async with self._lock:
            existing = self._sessions.get(server_url)
            if existing is not None:
                return existing

            task = self._pending.get(server_url)
            if task is None:
                task = asyncio.create_task(
                    self._establish(server_url),
                    name=f"session-{server_url}",
                )
                self._pending[server_url] = task

        # A cancelled caller must not abort establishment for the others
        return await asyncio.shield(task)

    async def _establish(self, server_url: str) -> ServerSession:
        try:
            endpoints = await self._client.discover_endpoints(server_url)
            if not endpoints:
                raise EndpointDiscoveryFailed(server_url)

            # First discovered endpoint wins
            endpoint = endpoints[0]
            session = await self._client.open_session(server_url, endpoint)
            created = ServerSession(server_url=server_url, endpoint=endpoint, session=session)

            async with self._lock:
                existing = self._sessions.get(server_url)
                if existing is None:
                    self._sessions[server_url] = created
                    logger.info(
                        "Session created",
                        server_url=server_url,
                        endpoint_url=endpoint.url,
                        security_mode=endpoint.security_mode,
                    )
                    return created

            logger.info("Discarding surplus session", server_url=server_url)
            await self._close(created)
            return existing
        finally:
            self._pending.pop(server_url, None)

    async def probe_and_recover(self, server_url: str) -> bool:
        """Check a server is reachable, replacing a dead session once.

        Reads the server state through the existing session. If the read
        fails or the server is not running, the entry is evicted and a
        single new session is attempted.

        Returns:
            True if the server now answers with a good Running state
        """
        entry = self._sessions.get(server_url)
        if entry is not None and await self._is_running(entry.session):
            return True

        if entry is not None:
            logger.warning("Session probe failed, recovering", server_url=server_url)
            await self.evict(server_url)

        try:
            session = await self.get_or_create(server_url)
        except (EndpointDiscoveryFailed, SessionUnavailable) as e:
            logger.warning("Session recovery failed", server_url=server_url, error=str(e))
            return False

        return await self._is_running(session)

    async def _is_running(self, session: UaSessionPort) -> bool:
        try:
            result = await session.read_value(SERVER_STATE_NODE)
        except Exception as e:
            logger.debug("Server state read failed", error=str(e))
            return False
        return result.good and result.value == ServerState.RUNNING

    async def evict(self, server_url: str) -> bool:
        """Drop and close the session for a server URL."""
        async with self._lock:
            entry = self._sessions.pop(server_url, None)
        if entry is None:
            return False
        logger.info("Session evicted", server_url=server_url)
        await self._close(entry)
        return True

    async def close_all(self) -> None:
        async with self._lock:
            entries = list(self._sessions.values())
            self._sessions.clear()
        for entry in entries:
            await self._close(entry)
        logger.info("All sessions closed", count=len(entries))

    async def _close(self, entry: ServerSession) -> None:
        try:
            await entry.session.close()
        except Exception as e:
            # The session is being discarded; a dead transport may refuse to close
            logger.debug("Session close failed", server_url=entry.server_url, error=str(e))
