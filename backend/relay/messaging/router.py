from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from relay.messaging.types import (
    DisconnectReason,
    IdentityEvent,
    JoinEvent,
    LeaveEvent,
    MalformedEvent,
    SignalEvent,
    UnknownEvent,
    parse_client_frame,
)

if TYPE_CHECKING:
    from relay.messaging.encoder import DecodeError
    from relay.messaging.protocol import ConnectionProtocol
    from relay.session.manager import SessionManager

logger = structlog.get_logger()


class MessageRouter:
    """
    Routes validated client events to the session manager.

    Frames are validated before any handler runs; a malformed frame never
    reaches the state machine and costs the sender its connection.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(self, connection: ConnectionProtocol, raw: str) -> None:
        if not self._session_manager.is_open(connection.connection_id):
            return

        message = parse_client_frame(raw)

        if isinstance(message, MalformedEvent):
            await self._session_manager.force_disconnect(
                connection,
                DisconnectReason.MALFORMED_INPUT,
                trigger_event=message.event,
                args=message.args,
                error=message.reason,
            )
        elif isinstance(message, UnknownEvent):
            logger.warning("unhandled event ignored", event_name=message.event)
        elif isinstance(message, JoinEvent):
            await self._session_manager.join(
                connection,
                lobby_code=message.lobby_code,
                player_id=message.player_id,
                client_id=message.client_id,
            )
        elif isinstance(message, IdentityEvent):
            await self._session_manager.update_identity(
                connection,
                player_id=message.player_id,
                client_id=message.client_id,
            )
        elif isinstance(message, LeaveEvent):
            await self._session_manager.leave(connection)
        elif isinstance(message, SignalEvent):
            await self._session_manager.signal(connection, to=message.to, data=message.data)

    async def handle_undecodable(self, connection: ConnectionProtocol, error: DecodeError) -> None:
        """Treat a frame that could not even be read as text as malformed input."""
        if not self._session_manager.is_open(connection.connection_id):
            return
        await self._session_manager.force_disconnect(connection, DisconnectReason.MALFORMED_INPUT, error=str(error))

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.disconnect(connection)
