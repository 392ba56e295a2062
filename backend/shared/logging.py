"""Structured logging for the battle server, built on structlog.

Each socket binds its ``connection_id`` on accept, and joining a session adds
``session_id`` and ``user_id``; every event logged while handling that socket
carries them. Domain values in an event (sprite types, battle actions, battle
effect models) are reduced to plain JSON values before rendering.

Environment variables:
- LOG_FORMAT: "json" for log aggregation, "console" or unset for
  human-readable output.
- LOG_LEVEL: "DEBUG", "INFO" (default), "WARNING", "ERROR", or "CRITICAL".
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
from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_LOG_FORMATS = ("json", "console", "")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Third-party loggers that flood INFO with per-request or per-frame lines.
_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def bind_connection_context(connection_id: str) -> None:
    """Start a fresh log context for one socket."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(connection_id=connection_id)


def bind_participant_context(session_id: int, user_id: int) -> None:
    structlog.contextvars.bind_contextvars(session_id=session_id, user_id=user_id)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()


def to_loggable(value: Any) -> Any:
    """Reduce enums and pydantic models, at any nesting depth, to JSON values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, dict):
        return {k: to_loggable(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [to_loggable(v) for v in value]
    return value


def serialize_domain_values(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    for key, value in event_dict.items():
        event_dict[key] = to_loggable(value)
    return event_dict


def configure_structlog() -> None:
    """Install the processor chain; handlers and levels are left to the caller."""
    # format_exc_info runs in the ProcessorFormatter so tracebacks are rendered once per handler.
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            serialize_domain_values,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _is_test() -> bool:
    return "pytest" in sys.modules


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = os.environ.get(name, default).upper()
    if value not in {c.upper() for c in choices}:
        allowed = ", ".join(repr(c) for c in choices if c)
        msg = f"Invalid {name}={value.lower()!r}. Must be one of {allowed}."
        raise ValueError(msg)
    return value


def _formatter(*, json_mode: bool, colors: bool) -> logging.Formatter:
    renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer(colors=colors)
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | None = None,
) -> Path | None:
    """Configure structlog with stdout and optional file output.

    When log_dir is provided (and we are not under pytest), a datetime-stamped
    log file is created inside it and its path is returned.
    """
    json_mode = _env_choice("LOG_FORMAT", "", _LOG_FORMATS) == "JSON"
    if level is None:
        level = getattr(logging, _env_choice("LOG_LEVEL", "INFO", _LOG_LEVELS))

    configure_structlog()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(_formatter(json_mode=json_mode, colors=sys.stdout.isatty()))
    root_logger.addHandler(stdout_handler)

    if log_dir is None or _is_test():
        return None

    dir_path = Path(log_dir)
    dir_path.mkdir(parents=True, exist_ok=True)
    file_path = dir_path / f"{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"
    file_handler = logging.FileHandler(file_path)
    file_handler.setFormatter(_formatter(json_mode=json_mode, colors=False))
    root_logger.addHandler(file_handler)
    return file_path
