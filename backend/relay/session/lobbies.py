"""Lobby membership: which connections share a lobby code."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from relay.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

# Send failures mean the recipient is going away; its own teardown cleans up.
_SEND_ERRORS = (ConnectionError, RuntimeError, OSError)


class LobbyMembership:
    """Track member connections per lobby code for scoped broadcasting."""

    def __init__(self) -> None:
        self._lobbies: dict[str, dict[str, ConnectionProtocol]] = {}  # lobby_code -> {conn_id -> connection}

    def add(self, lobby_code: str, connection: ConnectionProtocol) -> None:
        if lobby_code not in self._lobbies:
            self._lobbies[lobby_code] = {}
        self._lobbies[lobby_code][connection.connection_id] = connection

    def remove(self, lobby_code: str, connection_id: str) -> bool:
        """Remove a connection from a lobby; empty lobbies are dropped."""
        members = self._lobbies.get(lobby_code)
        if members is None or members.pop(connection_id, None) is None:
            return False
        if not members:
            del self._lobbies[lobby_code]
        return True

    def members(self, lobby_code: str) -> list[str]:
        """Return member connection ids in join order."""
        return list(self._lobbies.get(lobby_code, {}))

    async def broadcast(self, lobby_code: str, event: str, *args: Any, exclude: str | None = None) -> None:  # noqa: ANN401
        """Send an event to every member of a lobby, optionally excluding one."""
        for conn_id, connection in list(self._lobbies.get(lobby_code, {}).items()):
            if conn_id == exclude:
                continue
            with contextlib.suppress(*_SEND_ERRORS):
                await connection.send_event(event, *args)


class LobbyLocks:
    """Per-lobby asyncio locks, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, lobby_code: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(lobby_code, asyncio.Lock())
        self._users[lobby_code] = self._users.get(lobby_code, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[lobby_code] -= 1
            if not self._users[lobby_code]:
                del self._users[lobby_code]
                del self._locks[lobby_code]
