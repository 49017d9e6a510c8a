"""Shared WebSocket test helpers for relay integration tests."""

import json
from typing import Any

USER_AGENT = "CrewLink/1.2.0 (win)"
LOBBY = "ABCDEF"


def send_event(ws, event: str, *args: Any) -> None:  # noqa: ANN401
    """Send one JSON event frame over a test WebSocket."""
    ws.send_text(json.dumps([event, *args]))


def recv_event(ws) -> list[Any]:
    """Receive and decode one JSON event frame from a test WebSocket."""
    return json.loads(ws.receive_text())


def join_lobby(ws, lobby_code: str, player_id: int, client_id: int) -> dict[str, Any]:
    """Join a lobby and return the setClients snapshot the relay answers with."""
    send_event(ws, "join", lobby_code, player_id, client_id)
    event, snapshot = recv_event(ws)
    assert event == "setClients"
    return snapshot
