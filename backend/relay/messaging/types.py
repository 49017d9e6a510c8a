"""Typed relay events and the validation step that precedes every handler."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from relay.messaging.encoder import DecodeError, decode


class ClientEventType(StrEnum):
    JOIN = "join"
    IDENTITY = "id"
    LEAVE = "leave"
    SIGNAL = "signal"


class ServerEventType(StrEnum):
    JOIN = "join"
    SET_CLIENTS = "setClients"
    SET_CLIENT = "setClient"
    SIGNAL = "signal"
    CONNECT_ERROR = "connect_error"


class DisconnectReason(StrEnum):
    UNSUPPORTED_VERSION = "unsupported_version"
    MALFORMED_INPUT = "malformed_input"
    SPOOF_ATTEMPT = "spoof_attempt"


# WebSocket close codes sent with each forced disconnect.
CLOSE_CODES: dict[DisconnectReason, int] = {
    DisconnectReason.UNSUPPORTED_VERSION: 4001,
    DisconnectReason.MALFORMED_INPUT: 4002,
    DisconnectReason.SPOOF_ATTEMPT: 4003,
}


class _PositionalEvent(BaseModel):
    """Event whose wire arguments map positionally onto model fields.

    Strict mode: "1", 1.0, true and null are not accepted where an int is expected.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    positional_args: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def from_args(cls, args: list[Any]) -> Self:
        if len(args) < len(cls.positional_args):
            raise ValueError(f"expected {len(cls.positional_args)} arguments, got {len(args)}")
        return cls.model_validate(dict(zip(cls.positional_args, args, strict=False)))


class JoinEvent(_PositionalEvent):
    positional_args = ("lobby_code", "player_id", "client_id")

    # Game clients pass their lobby code through unchanged, so any non-empty
    # string joins; only the introspection route requires the 6-character form.
    lobby_code: str = Field(min_length=1, max_length=64)
    player_id: int
    client_id: int


class IdentityEvent(_PositionalEvent):
    positional_args = ("player_id", "client_id")

    player_id: int
    client_id: int


class LeaveEvent(_PositionalEvent):
    pass


class SignalEvent(_PositionalEvent):
    """Opaque signaling payload addressed to one connection id."""

    data: Any
    to: str = Field(min_length=1)

    @field_validator("data")
    @classmethod
    def _validate_data(cls, v: Any) -> Any:  # noqa: ANN401
        if v is None or v is False or v == "" or (type(v) in (int, float) and not v):
            raise ValueError("data must not be empty")
        return v

    @classmethod
    def from_args(cls, args: list[Any]) -> Self:
        if not args:
            raise ValueError("expected 1 argument, got 0")
        return cls.model_validate(args[0])


ClientEvent = JoinEvent | IdentityEvent | LeaveEvent | SignalEvent

_EVENT_MODELS: dict[ClientEventType, type[_PositionalEvent]] = {
    ClientEventType.JOIN: JoinEvent,
    ClientEventType.IDENTITY: IdentityEvent,
    ClientEventType.LEAVE: LeaveEvent,
    ClientEventType.SIGNAL: SignalEvent,
}


@dataclass(frozen=True)
class MalformedEvent:
    """Validation result for a frame that must not reach any handler."""

    event: str | None
    args: tuple[Any, ...]
    reason: str


@dataclass(frozen=True)
class UnknownEvent:
    """Validation result for a well-formed frame naming an event nobody handles."""

    event: str


def validate_client_event(event: str, args: list[Any]) -> ClientEvent | MalformedEvent | UnknownEvent:
    """Validate decoded event arguments into a typed event, or tag why they were rejected."""
    try:
        model = _EVENT_MODELS[ClientEventType(event)]
    except ValueError:
        return UnknownEvent(event=event)
    try:
        return model.from_args(args)  # type: ignore[return-value]
    except (ValidationError, ValueError, TypeError) as e:  # fmt: skip
        return MalformedEvent(event=event, args=tuple(args), reason=str(e))


def parse_client_frame(raw: str) -> ClientEvent | MalformedEvent | UnknownEvent:
    """Decode and validate one raw text frame."""
    try:
        event, args = decode(raw)
    except DecodeError as e:
        return MalformedEvent(event=None, args=(raw[:200],), reason=str(e))
    return validate_client_event(event, args)
