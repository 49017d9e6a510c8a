"""Per-connection state and identity models for the relay."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from relay.messaging.protocol import ConnectionProtocol

# Clients send 2^32 - 1 when they have no game client id to report.
NO_CLIENT_ID = 2**32 - 1


def normalize_client_id(client_id: int) -> int | None:
    return None if client_id == NO_CLIENT_ID else client_id


class ClientIdentity(BaseModel):
    """Who a connection claims to be inside the game session.

    Serialized in camelCase (``playerId``/``clientId``) for the wire.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    player_id: int
    client_id: int | None = None

    def wire(self) -> dict[str, int | None]:
        return self.model_dump(by_alias=True)


class ConnectionState(StrEnum):
    CONNECTED = "connected"
    IN_LOBBY = "in_lobby"
    CLOSED = "closed"


@dataclass
class RelaySession:
    """Relay-side state for one admitted transport connection."""

    connection: ConnectionProtocol
    lobby_code: str | None = None
    state: ConnectionState = ConnectionState.CONNECTED

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED


@dataclass(frozen=True)
class LobbyInfo:
    """Read-only view of a lobby for the introspection endpoint."""

    lobby_code: str
    member_count: int
    clients: dict[str, ClientIdentity]

    def to_response(self) -> dict:
        return {
            "lobby": self.lobby_code,
            "playerCount": self.member_count,
            "clients": {conn_id: identity.wire() for conn_id, identity in self.clients.items()},
        }
