from __future__ import annotations

import time
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.templating import Jinja2Templates

from relay.messaging.router import MessageRouter
from relay.server.admission import AdmissionFilter
from relay.server.settings import RelayServerSettings
from relay.server.websocket import websocket_endpoint
from relay.session.manager import SessionManager
from shared.build_info import build_metadata
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response
    from starlette.websockets import WebSocket

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

LOBBY_CODE_LENGTH = 6


def _uptime(request: Request) -> float:
    return round(time.monotonic() - request.app.state.started_at, 3)


async def index(request: Request) -> Response:
    session_manager: SessionManager = request.app.state.session_manager
    settings: RelayServerSettings = request.app.state.settings
    templates: Jinja2Templates = request.app.state.templates
    return templates.TemplateResponse(
        request,
        "index.html",
        {"connection_count": session_manager.connection_count, "address": settings.address},
    )


async def health(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: RelayServerSettings = request.app.state.settings
    return JSONResponse(
        {
            "uptime": _uptime(request),
            "connectionCount": session_manager.connection_count,
            "address": settings.address,
            "name": settings.name,
            **build_metadata(),
        },
    )


async def lobby_info(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    lobby_code = request.path_params["lobby"]
    if len(lobby_code) != LOBBY_CODE_LENGTH:
        return JSONResponse({"error": "invalid_lobby_code"}, status_code=400)
    return JSONResponse(session_manager.get_lobby_info(lobby_code).to_response())


def create_app(
    settings: RelayServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
    admission: AdmissionFilter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = RelayServerSettings()

    if session_manager is None:
        session_manager = SessionManager()

    if message_router is None:
        message_router = MessageRouter(session_manager)

    if admission is None:
        admission = AdmissionFilter.from_settings(settings)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, admission)

    routes = [
        Route("/", index, methods=["GET"]),
        Route("/health", health, methods=["GET"]),
        Route("/v1/lobby/{lobby}", lobby_info, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    app = Starlette(routes=routes)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager
    app.state.templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
    app.state.started_at = time.monotonic()

    if settings.admit_all_versions:
        logger.warning("client version check disabled", supported_versions=settings.supported_versions)
    logger.info("relay server ready", address=settings.address)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    settings = RelayServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)


def main() -> None:  # pragma: no cover
    """Console entry point: serve the relay over HTTP, or HTTPS when RELAY_HTTPS is set."""
    settings = RelayServerSettings()
    ssl_options: dict[str, str] = {}
    if settings.https:
        ssl_options = {"ssl_keyfile": str(settings.ssl_keyfile), "ssl_certfile": str(settings.ssl_certfile)}
    uvicorn.run(
        "relay.server.app:get_app",
        factory=True,
        host=settings.host,
        port=settings.port or 0,
        log_config=None,
        **ssl_options,
    )


if __name__ == "__main__":  # pragma: no cover
    main()
