from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

import structlog

from relay.messaging.types import CLOSE_CODES, DisconnectReason, ServerEventType
from relay.session.lobbies import LobbyLocks, LobbyMembership
from relay.session.models import (
    ClientIdentity,
    ConnectionState,
    LobbyInfo,
    RelaySession,
    normalize_client_id,
)
from relay.session.registry import ConnectionRegistry

if TYPE_CHECKING:
    from relay.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()


class SessionManager:
    """Relay state machine: the only owner of identities, lobbies and the connection count.

    Every mutation of a lobby's membership or of its members' identities runs
    under that lobby's lock, so spoof checks and inserts are atomic and
    broadcasts for one lobby go out in the order their events were processed.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, RelaySession] = {}  # connection_id -> RelaySession
        self._registry = ConnectionRegistry()
        self._lobbies = LobbyMembership()
        self._locks = LobbyLocks()
        self._connection_count = 0

    @property
    def connection_count(self) -> int:
        return self._connection_count

    def get_session(self, connection_id: str) -> RelaySession | None:
        return self._sessions.get(connection_id)

    def is_open(self, connection_id: str) -> bool:
        session = self._sessions.get(connection_id)
        return session is not None and not session.is_closed

    def get_identity(self, connection_id: str) -> ClientIdentity | None:
        return self._registry.get(connection_id)

    def lobby_members(self, lobby_code: str) -> list[str]:
        return self._lobbies.members(lobby_code)

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._sessions[connection.connection_id] = RelaySession(connection=connection)
        self._connection_count += 1
        logger.info("total connected", connection_count=self._connection_count)

    async def disconnect(self, connection: ConnectionProtocol) -> None:
        """Transport teardown. Safe to call more than once; the count drops exactly once."""
        session = self._sessions.pop(connection.connection_id, None)
        if session is None:
            return
        session.state = ConnectionState.CLOSED
        await self._release(session)
        self._connection_count -= 1
        logger.info("total connected", connection_count=self._connection_count)

    async def join(
        self,
        connection: ConnectionProtocol,
        lobby_code: str,
        player_id: int,
        client_id: int,
    ) -> None:
        session = self._open_session(connection)
        if session is None:
            return

        if session.lobby_code is not None:
            await self.leave(connection)

        identity = ClientIdentity(player_id=player_id, client_id=normalize_client_id(client_id))
        spoofed_by: str | None = None
        async with self._locks.hold(lobby_code):
            if session.is_closed:
                return
            members = self._lobbies.members(lobby_code)
            spoofed_by = self._registry.find_client_id(members, identity.client_id, exclude=session.connection_id)
            if spoofed_by is None:
                others = self._registry.identities_for(members)
                self._lobbies.add(lobby_code, connection)
                self._registry.set(session.connection_id, identity)
                session.lobby_code = lobby_code
                session.state = ConnectionState.IN_LOBBY

                await self._lobbies.broadcast(
                    lobby_code,
                    ServerEventType.JOIN,
                    session.connection_id,
                    identity.wire(),
                    exclude=session.connection_id,
                )
                await self._send(
                    connection,
                    ServerEventType.SET_CLIENTS,
                    {conn_id: other.wire() for conn_id, other in others.items()},
                )

        if spoofed_by is not None:
            await self.force_disconnect(
                connection,
                DisconnectReason.SPOOF_ATTEMPT,
                trigger_event="join",
                lobby_code=lobby_code,
                player_id=player_id,
                client_id=client_id,
                held_by=spoofed_by,
            )
            return

        logger.info("player joined lobby", lobby_code=lobby_code, player_id=player_id, client_id=client_id)

    async def update_identity(self, connection: ConnectionProtocol, player_id: int, client_id: int) -> None:
        session = self._open_session(connection)
        if session is None:
            return

        lobby_code = session.lobby_code
        if lobby_code is None:
            logger.info("identity update outside a lobby ignored", player_id=player_id, client_id=client_id)
            return

        identity = ClientIdentity(player_id=player_id, client_id=normalize_client_id(client_id))
        spoofed = False
        async with self._locks.hold(lobby_code):
            if session.is_closed or session.lobby_code != lobby_code:
                return
            current = self._registry.get(session.connection_id)
            if current is not None and current.client_id is not None and current.client_id != identity.client_id:
                spoofed = True
            elif self._registry.find_client_id(
                self._lobbies.members(lobby_code),
                identity.client_id,
                exclude=session.connection_id,
            ) is not None:
                spoofed = True
            else:
                self._registry.set(session.connection_id, identity)
                await self._lobbies.broadcast(
                    lobby_code,
                    ServerEventType.SET_CLIENT,
                    session.connection_id,
                    identity.wire(),
                    exclude=session.connection_id,
                )

        if spoofed:
            await self.force_disconnect(
                connection,
                DisconnectReason.SPOOF_ATTEMPT,
                trigger_event="id",
                lobby_code=lobby_code,
                player_id=player_id,
                client_id=client_id,
                registered_client_id=current.client_id if current is not None else None,
            )
            return

        logger.info(
            "identity updated",
            lobby_code=lobby_code,
            player_id=identity.player_id,
            client_id=identity.client_id,
        )

    async def leave(self, connection: ConnectionProtocol) -> None:
        session = self._sessions.get(connection.connection_id)
        if session is None or session.lobby_code is None:
            return
        identity = self._registry.get(session.connection_id)
        lobby_code = session.lobby_code
        await self._release(session)
        if not session.is_closed:
            session.state = ConnectionState.CONNECTED
        logger.info(
            "player left lobby",
            lobby_code=lobby_code,
            player_id=identity.player_id if identity else None,
            client_id=identity.client_id if identity else None,
        )

    async def signal(self, connection: ConnectionProtocol, to: str, data: Any) -> None:  # noqa: ANN401
        """Forward an opaque signaling payload. Unknown or closed targets are dropped."""
        if self._open_session(connection) is None:
            return
        target = self._sessions.get(to)
        if target is None or target.is_closed:
            logger.debug("signal target not found", to=to)
            return
        await self._send(target.connection, ServerEventType.SIGNAL, {"data": data, "from": connection.connection_id})

    async def force_disconnect(
        self,
        connection: ConnectionProtocol,
        reason: DisconnectReason,
        **raw: Any,  # noqa: ANN401
    ) -> None:
        """Stop processing a connection's events, release its state and close the socket.

        The connection count is left to the transport teardown that follows.
        """
        logger.error("forcing disconnect", connection_id=connection.connection_id, reason=reason, **raw)
        session = self._sessions.get(connection.connection_id)
        if session is not None and not session.is_closed:
            session.state = ConnectionState.CLOSED
            await self._release(session)
        with contextlib.suppress(ConnectionError, RuntimeError, OSError):
            await connection.close(code=CLOSE_CODES[reason], reason=reason.value)

    def get_lobby_info(self, lobby_code: str) -> LobbyInfo:
        """Return current members of a lobby; an unknown lobby is simply empty."""
        members = self._lobbies.members(lobby_code)
        return LobbyInfo(
            lobby_code=lobby_code,
            member_count=len(members),
            clients=self._registry.identities_for(members),
        )

    def _open_session(self, connection: ConnectionProtocol) -> RelaySession | None:
        session = self._sessions.get(connection.connection_id)
        if session is None or session.is_closed:
            logger.debug("event for closed connection dropped")
            return None
        return session

    async def _release(self, session: RelaySession) -> None:
        """Drop lobby membership and identity together, under the lobby's lock."""
        lobby_code = session.lobby_code
        if lobby_code is None:
            self._registry.remove(session.connection_id)
            return
        async with self._locks.hold(lobby_code):
            self._lobbies.remove(lobby_code, session.connection_id)
            self._registry.remove(session.connection_id)
            session.lobby_code = None

    @staticmethod
    async def _send(connection: ConnectionProtocol, event: str, *args: Any) -> None:  # noqa: ANN401
        with contextlib.suppress(ConnectionError, RuntimeError, OSError):
            await connection.send_event(event, *args)
