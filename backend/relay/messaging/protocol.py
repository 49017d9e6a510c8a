"""Abstract connection protocol for JSON event frames."""

from abc import ABC, abstractmethod
from typing import Any

from relay.messaging.encoder import encode


class ConnectionProtocol(ABC):
    """
    Abstract interface for a relay client connection.

    This abstraction allows the relay state machine to be tested
    without real WebSocket connections.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique identifier for this connection, also its signaling address."""
        ...

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once the relay has closed this connection."""
        ...

    @abstractmethod
    async def send_text(self, data: str) -> None:
        """
        Send a raw text frame to the client.
        """
        ...

    @abstractmethod
    async def receive_text(self) -> str:
        """
        Receive a raw text frame from the client.

        Raises DecodeError if the frame cannot be read as UTF-8 text.
        """
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the connection.
        """
        ...

    async def send_event(self, event: str, *args: Any) -> None:  # noqa: ANN401
        """
        Send an event with positional arguments to the client.
        """
        await self.send_text(encode(event, *args))
