"""Global exception handlers for the FastAPI application.

Errors that abort the bootstrap pipeline (unknown tier, disabled
application, failed security verification) and anything a controller raises
that is not a request-terminal error end up here. Request-terminal errors
raised by controller actions are rendered by the bootstrap itself through
:func:`build_error_response`, so both paths produce the same payload.

How much an error response reveals depends on the process-wide debug level
set by the environment step.
"""

import traceback
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from src.api.response import ORJSONResponse
from src.api.schemas.errors import ErrorResponse, ServiceInfo
from src.core.config import Settings, get_settings
from src.core.context import RequestContext, generate_request_id
from src.core.error_context import sanitize_error_context
from src.core.exceptions import (
    ApplicationDisabledError,
    BadRequestError,
    ConflictError,
    ErrorCode,
    HexgateError,
    NotFoundError,
    UnauthorizedError,
)
from src.core.handlers import DebugLevel, display_errors_enabled, get_debug_level
from src.core.registry import ServiceKey

# Checked in order; the first matching class wins
STATUS_CODES: tuple[tuple[type[HexgateError], int], ...] = (
    (BadRequestError, status.HTTP_400_BAD_REQUEST),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ApplicationDisabledError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def get_service_info(settings: Settings) -> ServiceInfo:
    """Create ServiceInfo from application settings.

    Args:
        settings: Application settings

    Returns:
        ServiceInfo: Instance with current service metadata
    """
    return ServiceInfo(
        name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


def get_request_settings(request: Request) -> Settings:
    """Settings of the application serving ``request``.

    Applications built by ``create_app`` carry their settings in the process
    registry; requests without one use the cached application settings.
    """
    app = request.scope.get("app")
    registry = getattr(getattr(app, "state", None), "registry", None)
    if registry is None:
        return get_settings()
    settings: Settings = registry.get(ServiceKey.CONFIG)
    return settings



def get_status_code(exc: HexgateError) -> int:
    """Map a Hexgate error to its HTTP status code."""
    for error_cls, status_code in STATUS_CODES:
        if isinstance(exc, error_cls):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _full_debug_enabled() -> bool:
    return get_debug_level() >= DebugLevel.FULL and display_errors_enabled()


def build_error_response(exc: HexgateError, settings: Settings) -> ErrorResponse:
    """Build the client payload for a Hexgate error.

    Validation and conflict errors carry their message list under
    ``details.errors``. Stack traces are only attached at the FULL debug
    level with display errors on.

    Args:
        exc: The error to render.
        settings: Application settings.

    Returns:
        ErrorResponse: The payload.
    """
    details: dict[str, Any] | None = None
    if isinstance(exc, BadRequestError | ConflictError):
        details = {"errors": exc.errors}
    elif exc.context:
        details = exc.context

    debug_info = None
    if _full_debug_enabled():
        debug_info = {
            "stack_trace": exc.stack_trace,
            "error_context": exc.context,
            "exception_type": type(exc).__name__,
        }
        if exc.cause:
            debug_info["cause"] = {
                "type": type(exc.cause).__name__,
                "message": str(exc.cause),
            }

    return ErrorResponse(
        error_code=exc.error_code,
        message=exc.message,
        details=details,
        correlation_id=RequestContext.get_correlation_id(),
        request_id=generate_request_id(),
        severity=exc.severity.value,
        service_info=get_service_info(settings),
        debug_info=debug_info,
    )


def log_hexgate_error(exc: HexgateError, method: str, path: str) -> None:
    """Log a Hexgate error at a level matching its severity."""
    error_context = sanitize_error_context(
        exc,
        {
            "request_method": method,
            "request_path": path,
            "error_code": exc.error_code,
            "fingerprint": exc.fingerprint,
        },
    )
    log = logger.warning if exc.is_expected else logger.error
    log(
        "Handling {exception_type}: {message}",
        exception_type=type(exc).__name__,
        message=exc.message,
        correlation_id=RequestContext.get_correlation_id(),
        alert=exc.should_alert,
        **error_context,
    )


async def hexgate_error_handler(request: Request, exc: Exception) -> Response:
    """Handle HexgateError exceptions.

    Args:
        request: The FastAPI request that caused the exception
        exc: The HexgateError exception to handle

    Returns:
        Response: ORJSONResponse with error details

    Raises:
        TypeError: If exc is not a HexgateError instance
    """
    if not isinstance(exc, HexgateError):
        raise TypeError(f"Expected HexgateError, got {type(exc).__name__}")

    log_hexgate_error(exc, request.method, request.url.path)
    error_response = build_error_response(exc, get_request_settings(request))
    return ORJSONResponse(
        status_code=get_status_code(exc),
        content=error_response.model_dump(mode="json"),
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle Starlette HTTPException.

    Args:
        request: The FastAPI request that caused the exception
        exc: The HTTPException to handle

    Returns:
        Response: ORJSONResponse with error details

    Raises:
        TypeError: If exc is not an HTTPException instance
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    error_code = ErrorCode.INTERNAL_ERROR.value
    severity = "HIGH"
    if exc.status_code == status.HTTP_400_BAD_REQUEST:
        error_code, severity = ErrorCode.VALIDATION_ERROR.value, "LOW"
    elif exc.status_code == status.HTTP_401_UNAUTHORIZED:
        error_code, severity = ErrorCode.UNAUTHORIZED.value, "HIGH"
    elif exc.status_code == status.HTTP_404_NOT_FOUND:
        error_code, severity = ErrorCode.NOT_FOUND.value, "LOW"
    elif exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
        severity = "MEDIUM"

    correlation_id = RequestContext.get_correlation_id()
    logger.warning(
        "HTTP exception",
        correlation_id=correlation_id,
        **sanitize_error_context(
            exc,
            {
                "status": exc.status_code,
                "method": request.method,
                "path": request.url.path,
            },
        ),
    )

    error_response = ErrorResponse(
        error_code=error_code,
        message=str(exc.detail),
        correlation_id=correlation_id,
        request_id=generate_request_id(),
        severity=severity,
        service_info=get_service_info(get_request_settings(request)),
    )
    return ORJSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(mode="json"),
        headers=exc.headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle any other exception.

    The debug level decides what the client sees: type, message and (with
    display errors on) the stack trace at FULL; only the type at LIMITED;
    a generic message at CRUCIAL.

    Args:
        request: The FastAPI request that caused the exception
        exc: The unhandled exception

    Returns:
        Response: ORJSONResponse with a gated error message
    """
    correlation_id = RequestContext.get_correlation_id()
    logger.exception(
        "Unhandled exception: {exception_type}",
        exception_type=type(exc).__name__,
        correlation_id=correlation_id,
        **sanitize_error_context(
            exc,
            {"request_method": request.method, "request_path": request.url.path},
        ),
    )

    level = get_debug_level()
    details = None
    debug_info = None
    if level >= DebugLevel.FULL:
        message = f"Internal server error: {type(exc).__name__}"
        details = {"error": str(exc), "type": type(exc).__name__}
        if display_errors_enabled():
            debug_info = {
                "stack_trace": traceback.format_tb(exc.__traceback__),
                "error_context": {"error_message": str(exc), "error_args": exc.args},
                "exception_type": type(exc).__name__,
            }
    elif level >= DebugLevel.LIMITED:
        message = f"Internal server error: {type(exc).__name__}"
    else:
        message = "An internal server error occurred"

    error_response = ErrorResponse(
        error_code=ErrorCode.INTERNAL_ERROR.value,
        message=message,
        details=details,
        correlation_id=correlation_id,
        request_id=generate_request_id(),
        severity="CRITICAL",
        service_info=get_service_info(get_request_settings(request)),
        debug_info=debug_info,
    )
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response.model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(HexgateError, hexgate_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered")
