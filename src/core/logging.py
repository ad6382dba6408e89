"""Structured logging with Loguru.

The bootstrap pipeline's logger step calls :func:`setup_logging` and then
registers a logger bound to the request's correlation id. Setup runs once
per process; later calls are no-ops.

Formatter types:
- **console**: Human-readable with inline context (local and development tiers)
- **json**: One JSON document per line (every other tier)

Standard library logging (uvicorn, SQLAlchemy, third-party libraries) is
redirected into Loguru by :class:`InterceptHandler` so every record shares
the same sink and format.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Final, Protocol, cast

from loguru import logger


class _LoggingState:
    """Simple state holder to track if logging has been configured."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()


class LogConfigProtocol(Protocol):
    """Protocol for log configuration objects."""

    @property
    def log_level(self) -> str:
        """Logging level."""
        ...

    @property
    def log_formatter_type(self) -> str | None:
        """Log formatter type."""
        ...


class SettingsProtocol(Protocol):
    """Protocol for settings objects that setup_logging can accept."""

    @property
    def debug(self) -> bool:
        """Debug mode flag."""
        ...

    @property
    def log_config(self) -> LogConfigProtocol:
        """Log configuration."""
        ...


DEFAULT_LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
CORRELATION_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100

# Context fields shown first, in this order
PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "request_id",
    "method",
    "path",
    "route",
    "status_code",
    "duration_ms",
)


def _escape(value: object) -> str:
    return str(value).replace("{", "{{").replace("}", "}}")


def _format_field(key: str, value: object) -> str:
    text = str(value)
    if key == "correlation_id":
        text = text[:CORRELATION_ID_DISPLAY_LENGTH]
    elif key == "duration_ms":
        text = f"{text}ms"
    elif len(text) > MAX_FIELD_VALUE_LENGTH:
        text = text[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    if key in PRIORITY_FIELDS:
        return _escape(text)
    return f"{_escape(key)}={_escape(text)}"


def format_console_with_context(record: dict[str, Any]) -> str:
    """Format a record for the console with its context fields inline.

    Args:
        record: Loguru record to format.

    Returns:
        str: Loguru format string for the record.
    """
    try:
        extra: dict[str, Any] = record.get("extra", {})
        parts = [
            f"<green>{record['time'].strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]}</green>",
            f"<level>{record['level'].name: <8}</level>",
            f"<cyan>{record['name']}:{record['function']}:{record['line']}</cyan>",
        ]

        context = [
            f"[<yellow>{_format_field(key, extra[key])}</yellow>]"
            for key in PRIORITY_FIELDS
            if extra.get(key) is not None
        ]
        context.extend(
            f"[<dim>{_format_field(key, value)}</dim>]"
            for key, value in extra.items()
            if key not in PRIORITY_FIELDS
            and not key.startswith("_")
            and value is not None
        )
        if context:
            parts.append(" ".join(context))

        parts.append(_escape(record.get("message", "")))
        line = " | ".join(parts)
        if record.get("exception"):
            line += "\n{exception}"
    except (AttributeError, TypeError, ValueError, KeyError):
        return DEFAULT_LOG_FORMAT + "\n"
    else:
        return line + "\n"


def serialize_for_json(record: dict[str, Any]) -> str:
    """Format a record as one JSON document.

    Args:
        record: Loguru record to format.

    Returns:
        str: JSON-formatted log entry with newline.
    """
    log_entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    if extra := record.get("extra", {}):
        log_entry.update({k: v for k, v in extra.items() if not k.startswith("_")})

    if exc := record.get("exception"):
        log_entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }

    return json.dumps(log_entry, default=str) + "\n"


class InterceptHandler(logging.Handler):
    """Redirect standard library log records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        """Forward log record to Loguru.

        Args:
            record: Standard library LogRecord to forward.
        """
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside the logging module
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(settings: SettingsProtocol) -> None:
    """Configure Loguru sinks once per process.

    Args:
        settings: Application settings containing log configuration.
    """
    if _state.configured:
        return

    logger.remove()
    formatter_type = settings.log_config.log_formatter_type or "console"

    if formatter_type == "console":
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=settings.log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )
    else:

        def structured_sink(message: object) -> None:
            """Write records through the JSON serializer."""
            if hasattr(message, "record"):
                sys.stdout.write(serialize_for_json(message.record))
                sys.stdout.flush()

        logger.add(
            structured_sink,
            level=settings.log_config.log_level,
            enqueue=True,  # Thread-safe async logging
            diagnose=False,  # No variable values outside development
            backtrace=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [InterceptHandler()]
        uvicorn_logger.propagate = False

    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        log_level=settings.log_config.log_level,
    )
    _state.configured = True
