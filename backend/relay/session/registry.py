"""Connection registry: the single source of truth for connection identities."""

from relay.session.models import ClientIdentity


class ConnectionRegistry:
    """Map connection_id -> ClientIdentity for every connection inside a lobby.

    Purely state management. Only the session manager mutates it, and only
    while holding the lock of the lobby the connection belongs to.
    """

    def __init__(self) -> None:
        self._identities: dict[str, ClientIdentity] = {}

    def get(self, connection_id: str) -> ClientIdentity | None:
        return self._identities.get(connection_id)

    def set(self, connection_id: str, identity: ClientIdentity) -> None:
        self._identities[connection_id] = identity

    def remove(self, connection_id: str) -> ClientIdentity | None:
        return self._identities.pop(connection_id, None)

    def identities_for(self, connection_ids: list[str]) -> dict[str, ClientIdentity]:
        """Return identities for the given connections, skipping unregistered ones."""
        return {conn_id: self._identities[conn_id] for conn_id in connection_ids if conn_id in self._identities}

    def find_client_id(self, connection_ids: list[str], client_id: int | None, *, exclude: str) -> str | None:
        """Return the first connection (other than ``exclude``) already holding ``client_id``.

        A null client id never collides.
        """
        if client_id is None:
            return None
        for conn_id in connection_ids:
            if conn_id == exclude:
                continue
            identity = self._identities.get(conn_id)
            if identity is not None and identity.client_id == client_id:
                return conn_id
        return None
