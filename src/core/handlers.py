"""Process-wide error handlers and the debug verbosity policy.

The first bootstrap step installs an exception handler and an error handler
for the whole process:

- **ExceptionHandler** receives uncaught exceptions from ``sys.excepthook``
  and ``threading.excepthook`` (anything that escapes outside a request).
- **ErrorHandler** receives warnings from ``warnings.showwarning``; warnings
  are Python's non-fatal runtime errors.

Both report through Loguru. Errors raised inside a request are rendered by
the FastAPI exception handlers in ``src.api.middleware.error_handler``,
which read the same debug level to decide how much detail a client sees.
"""

from __future__ import annotations

import sys
import threading
import warnings
from enum import IntEnum
from types import TracebackType
from typing import TextIO

from loguru import logger


class DebugLevel(IntEnum):
    """How much error detail may be exposed, ordered by verbosity."""

    CRUCIAL = 1
    """Generic messages only."""

    LIMITED = 2
    """Error types but no messages or traces."""

    FULL = 3
    """Everything, stack traces included."""


class _HandlerState:
    """Process-wide error exposure policy."""

    def __init__(self) -> None:
        self.debug_level = DebugLevel.CRUCIAL
        self.display_errors = False
        self.error_reporting = False


_state = _HandlerState()


def set_debug_level(level: DebugLevel) -> None:
    """Set the process-wide debug level."""
    _state.debug_level = level


def get_debug_level() -> DebugLevel:
    """Get the process-wide debug level (CRUCIAL until the environment is set)."""
    return _state.debug_level


def set_display_errors(enabled: bool) -> None:  # noqa: FBT001
    """Allow or forbid raw error detail (stack traces) in client responses."""
    _state.display_errors = enabled


def display_errors_enabled() -> bool:
    """Whether raw error detail may reach clients."""
    return _state.display_errors


def enable_error_reporting() -> None:
    """Report every warning, on every tier.

    Internal reporting is independent of what clients see: warnings always
    reach the error handler and the logs, even in production.
    """
    warnings.simplefilter("always")
    _state.error_reporting = True


def error_reporting_enabled() -> bool:
    """Whether maximal internal error reporting is on."""
    return _state.error_reporting


def reset_handler_state() -> None:
    """Restore the default (most restrictive) policy. Used by tests."""
    _state.debug_level = DebugLevel.CRUCIAL
    _state.display_errors = False
    _state.error_reporting = False


class ExceptionHandler:
    """Logs uncaught exceptions before the process or thread dies."""

    def handle(
        self,
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_traceback: TracebackType | None,
    ) -> None:
        """``sys.excepthook`` compatible entry point."""
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.opt(exception=(exc_type, exc_value, exc_traceback)).critical(
            "Uncaught exception: {exception_type}",
            exception_type=exc_type.__name__,
            debug_level=get_debug_level().name,
        )

    def handle_thread(self, args: threading.ExceptHookArgs) -> None:
        """``threading.excepthook`` compatible entry point."""
        if args.exc_value is None:
            return
        self.handle(args.exc_type, args.exc_value, args.exc_traceback)


class ErrorHandler:
    """Routes warnings into the logs."""

    def handle(  # noqa: PLR0913 - mirrors warnings.showwarning
        self,
        message: Warning | str,
        category: type[Warning],
        filename: str,
        lineno: int,
        file: TextIO | None = None,
        line: str | None = None,
    ) -> None:
        """``warnings.showwarning`` compatible entry point."""
        _ = file, line
        logger.warning(
            "{category}: {message}",
            category=category.__name__,
            message=str(message),
            source=f"{filename}:{lineno}",
        )


def install_handlers(
    exception_handler: ExceptionHandler, error_handler: ErrorHandler
) -> None:
    """Install both handlers process-wide.

    Installing again replaces the previous handlers, so calling this once per
    request is harmless.

    Args:
        exception_handler: Receives uncaught exceptions.
        error_handler: Receives warnings.
    """
    sys.excepthook = exception_handler.handle
    threading.excepthook = exception_handler.handle_thread
    warnings.showwarning = error_handler.handle
