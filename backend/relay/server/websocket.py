from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from relay.messaging.encoder import DecodeError, encode
from relay.messaging.protocol import ConnectionProtocol
from relay.messaging.types import CLOSE_CODES, DisconnectReason, ServerEventType
from relay.server.admission import UnsupportedVersionError
from shared.logging import bind_connection_context

logger = structlog.get_logger()

if TYPE_CHECKING:
    from relay.messaging.router import MessageRouter
    from relay.server.admission import AdmissionFilter


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())
        self._closed = False

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def closed(self) -> bool:
        return self._closed or self._websocket.application_state == WebSocketState.DISCONNECTED

    async def send_text(self, data: str) -> None:
        try:
            await self._websocket.send_text(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_text(self) -> str:
        message = await self._websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise ConnectionError("WebSocket already disconnected")
        text = message.get("text")
        if text is not None:
            return text
        # Binary frames are only accepted when they carry UTF-8 JSON.
        data = message.get("bytes") or b""
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"binary frame is not valid UTF-8: {e}") from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self._closed = True
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


async def websocket_endpoint(websocket: WebSocket, router: MessageRouter, admission: AdmissionFilter) -> None:
    await websocket.accept()

    user_agent = websocket.headers.get("user-agent", "")
    try:
        client = admission.admit(user_agent)
    except UnsupportedVersionError as e:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await websocket.send_text(_connect_error_frame(e.message))
            reason = DisconnectReason.UNSUPPORTED_VERSION
            await websocket.close(code=CLOSE_CODES[reason], reason=reason.value)
        return

    connection = WebSocketConnection(websocket)
    bind_connection_context(connection.connection_id, client_version=client.version, platform=client.platform)
    logger.info("websocket connected")
    await router.handle_connect(connection)

    try:
        while not connection.closed:
            try:
                raw = await connection.receive_text()
            except DecodeError as e:
                await router.handle_undecodable(connection, e)
                continue
            await router.handle_message(connection, raw)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    except Exception:
        logger.exception("unexpected error in relay websocket")
        await connection.close(code=1011, reason="internal_error")
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()


def _connect_error_frame(message: str) -> str:
    return encode(ServerEventType.CONNECT_ERROR, {"message": message})
