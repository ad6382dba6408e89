"""Request context management for correlation IDs and request-scoped services.

Values stored here live in contextvars, so each request handled by the event
loop sees its own copy even though the database engines and the process
registry are shared between requests.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.profiling import DatabaseProfiler

# Context variable for storing correlation ID across async boundaries
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Database profiler of the request being served; SQL listeners record into it
_database_profiler_var: ContextVar[DatabaseProfiler | None] = ContextVar(
    "database_profiler", default=None
)


class RequestContext:
    """Manages request context using contextvars for async-safe storage."""

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        """Set the correlation ID for the current context.

        Args:
            correlation_id: The correlation ID to store in the context.
        """
        _correlation_id_var.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        """Get the correlation ID from the current context.

        Returns:
            str | None: The correlation ID if set, None otherwise.
        """
        return _correlation_id_var.get()

    @staticmethod
    def set_database_profiler(profiler: DatabaseProfiler | None) -> None:
        """Bind the database profiler of the current request.

        Args:
            profiler: The profiler queries should be recorded into.
        """
        _database_profiler_var.set(profiler)

    @staticmethod
    def get_database_profiler() -> DatabaseProfiler | None:
        """Get the database profiler bound to the current request.

        Returns:
            DatabaseProfiler | None: The profiler if one is bound.
        """
        return _database_profiler_var.get()

    @staticmethod
    def clear() -> None:
        """Clear all context variables."""
        _correlation_id_var.set(None)
        _database_profiler_var.set(None)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracking.

    Returns:
        str: A string representation of a UUID4.
    """
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Generate a unique request ID for individual request tracking.

    Returns:
        str: A prefixed UUID4 string in format 'req-<uuid4>'.

    Examples:
        >>> generate_request_id().startswith("req-")
        True
    """
    return f"req-{uuid.uuid4()}"
