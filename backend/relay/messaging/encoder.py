"""
JSON event-frame encoder/decoder for the relay wire format.

Every frame is a JSON array: the event name followed by its positional
arguments, e.g. ``["join", "ABCDEF", 1, 100]``.
"""

import json
from typing import Any


class DecodeError(Exception):
    """Error raised when a frame is not a well-formed event array."""


# Signaling payloads carry SDP blobs; anything larger than this is not a
# legitimate offer/answer/candidate.
MAX_FRAME_LEN = 64 * 1024


def encode(event: str, *args: Any) -> str:  # noqa: ANN401
    """
    Encode an event name and its arguments to a JSON text frame.
    """
    return json.dumps([event, *args], separators=(",", ":"))


def decode(raw: str) -> tuple[str, list[Any]]:
    """
    Decode a JSON text frame into ``(event, args)``.

    Raises DecodeError if the frame is oversized, not JSON, not a non-empty
    array, or does not start with a string event name.
    """
    if len(raw) > MAX_FRAME_LEN:
        raise DecodeError(f"frame too large: {len(raw)} chars (max {MAX_FRAME_LEN})")
    try:
        result = json.loads(raw)
    except (json.JSONDecodeError, RecursionError) as e:  # fmt: skip
        raise DecodeError(f"failed to decode JSON frame: {e}") from e

    if not isinstance(result, list):
        raise DecodeError(f"expected array, got {type(result).__name__}")
    if not result:
        raise DecodeError("empty event frame")
    event, *args = result
    if not isinstance(event, str):
        raise DecodeError(f"expected event name string, got {type(event).__name__}")

    return event, args
