"""Type aliases for dynamic data structures throughout the application.

This module centralizes type definitions for data that cannot be statically
typed, providing clear semantic meaning and documentation for these types.

All JSON-like types defined here should be serializable to support logging,
API responses, and persistence layers.
"""

from typing import Any

# JSON-compatible type that represents any valid JSON value
# Used for API responses, request bodies, and serialization
type JsonValue = (
    dict[str, "JsonValue"] | list["JsonValue"] | str | int | float | bool | None
)

# Context dictionary for logging additional information
type LogContext = dict[str, Any]  # JSON-serializable values

# Context dictionary for error details and debugging information
type ErrorContext = dict[str, Any]  # flexible error context

# Ordered (column, direction) pairs a sort key expands to, e.g.
# [("orderCreatedAt", "DESC")]
type SortColumns = list[tuple[str, str]]

# Per-action mapping of signed sort keys ("+createdAt", "-createdAt")
# to the columns they expand to
type SortMap = dict[str, dict[str, SortColumns]]
