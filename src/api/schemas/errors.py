"""Standardized error response schemas.

Every error leaving the API, whether raised while bootstrapping or by a
controller action, is serialized as an :class:`ErrorResponse`. Validation
and conflict errors list their human-readable messages under
``details.errors``.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class ServiceInfo(BaseModel):
    """Service information for error context."""

    name: str = Field(..., description="Name of the service", examples=["Hexgate"])
    version: str = Field(..., description="Version of the service", examples=["0.1.0"])
    environment: str = Field(
        ...,
        description="Deployment tier the service runs in",
        examples=["development", "uat", "production"],
    )


class ErrorResponse(BaseModel):
    """Standardized error response model for API errors."""

    error_code: str = Field(
        ...,
        description="Unique error code identifying the error type",
        examples=["VALIDATION_ERROR", "NOT_FOUND", "APPLICATION_DISABLED"],
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Bad request", "404 - page not found.", "Application disabled!"],
    )

    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details (e.g. the validation messages)",
        examples=[{"errors": ["Invalid `limit` parameter - unsupported value."]}],
    )

    correlation_id: str | None = Field(
        default=None,
        description="Request correlation ID for tracing and debugging",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the error occurred (with timezone)",
    )

    severity: str | None = Field(
        default=None,
        description="Error severity level (LOW, MEDIUM, HIGH, CRITICAL)",
        examples=["LOW", "CRITICAL"],
    )

    service_info: ServiceInfo | None = Field(
        default=None,
        description="Information about the service that generated the error",
    )

    request_id: str | None = Field(
        default=None,
        description="Unique request identifier",
        examples=["req-550e8400-e29b-41d4-a716-446655440000"],
    )

    debug_info: dict[str, Any] | None = Field(
        default=None,
        description="Stack trace and context, only at the FULL debug level",
    )
