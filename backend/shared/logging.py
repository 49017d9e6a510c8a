"""structlog setup for the relay process.

LOG_FORMAT picks ``json`` (one object per line, for log shipping) or
``console`` (the default). LOG_LEVEL takes a standard level name and
defaults to INFO. Both are read on every setup_logging call.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_PREFIX = "relay"
LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

# Frame-level chatter from uvicorn's websocket backends, plus its per-request
# access log, which health checks would otherwise flood.
QUIET_LOGGERS = ("websockets", "wsproto", "uvicorn.access")

_LOG_FORMATS = ("json", "console")


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Log disconnect reasons and event types by their wire value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def _is_test() -> bool:
    return "pytest" in sys.modules


def _log_format() -> str:
    value = os.environ.get("LOG_FORMAT", "").lower() or "console"
    if value not in _LOG_FORMATS:
        raise ValueError(f"Invalid LOG_FORMAT={value!r}. Must be 'json' or 'console'.")
    return value


def _log_level() -> int:
    name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelNamesMapping().get(name)
    if level is None:
        raise ValueError(f"Invalid LOG_LEVEL={name!r}. Must be a standard logging level name.")
    return level


def _formatter(log_format: str, *, colors: bool) -> logging.Formatter:
    # format_exc_info runs here rather than in configure_structlog so a
    # traceback is rendered once per handler.
    renderer = (
        structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer(colors=colors)
    )
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def _log_file_path(log_dir: Path | str) -> Path:
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)
    return directory / f"{LOG_FILE_PREFIX}_{timestamp}.log"


def configure_structlog() -> None:
    """Route structlog events through stdlib logging with connection context merged in."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _serialize_enums,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def bind_connection_context(connection_id: str, **extra: object) -> None:
    """Attach a relay connection id to every log line emitted on this task."""
    structlog.contextvars.bind_contextvars(connection_id=connection_id, **extra)


def setup_logging(log_dir: Path | str | None = None, level: int | None = None) -> Path | None:
    """Install stdout (and, outside tests, optional file) handlers on the root logger.

    Returns the path of the relay log file when one was opened.
    """
    log_format = _log_format()
    configure_structlog()

    root = logging.getLogger()
    root.setLevel(_log_level() if level is None else level)
    root.handlers.clear()
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(_formatter(log_format, colors=sys.stdout.isatty()))
    root.addHandler(stdout_handler)

    if log_dir is None or _is_test():
        return None

    file_path = _log_file_path(log_dir)
    file_handler = logging.FileHandler(file_path)
    file_handler.setFormatter(_formatter(log_format, colors=False))
    root.addHandler(file_handler)
    return file_path
