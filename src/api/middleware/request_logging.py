"""HTTP request/response logging with performance monitoring.

Every request is logged on start and completion together with the route
name the dispatcher will select, its duration and response size. Requests
slower than the configured threshold are logged again as warnings. Query
parameters, and request headers when enabled, pass through the sanitizer
before they are logged.
"""

import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.api.routing import resolve_route_name
from src.core.config import LogConfig, Settings
from src.core.error_context import sanitize_dict, sanitize_headers

MAX_USER_AGENT_LENGTH = 200


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and responses.

    Args:
        app: The ASGI application.
        settings: Application settings.
    """

    def __init__(self, app: ASGIApp, *, settings: Settings) -> None:
        super().__init__(app)
        self.settings = settings
        self.log_config: LogConfig = settings.log_config
        self.excluded_paths = set(self.log_config.excluded_paths)

    def _get_client_ip(self, request: Request) -> str:
        """Extract the client IP, trusting proxy headers only in production."""
        if self.settings.environment == "production":
            forwarded_for = request.headers.get("x-forwarded-for")
            if forwarded_for:
                return forwarded_for.split(",")[0].strip()

            real_ip = request.headers.get("x-real-ip")
            if real_ip:
                return real_ip.strip()

        if request.client:
            return request.client.host
        return "unknown"

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process the request and log details.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: The response from the application.

        Raises:
            Exception: Any exception raised by the application is re-raised
                after logging.
        """
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        user_agent = request.headers.get("user-agent", "unknown")

        with logger.contextualize(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            route=resolve_route_name(request.url.path),
            client_host=self._get_client_ip(request),
            user_agent=user_agent[:MAX_USER_AGENT_LENGTH],
        ):
            logger.info(
                "Request started",
                query_params=(
                    sanitize_dict(dict(request.query_params))
                    if request.query_params
                    else None
                ),
            )
            if self.log_config.log_request_headers:
                logger.debug(
                    "Request headers",
                    headers=sanitize_headers(dict(request.headers)),
                )
            start_time = time.perf_counter()

            try:
                response = await call_next(request)
            except Exception as exc:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    "Request failed",
                    duration_ms=round(duration_ms, 2),
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
                response_size=int(response.headers.get("content-length", 0)),
            )
            response.headers["X-Request-ID"] = request_id

            if duration_ms > self.log_config.slow_request_threshold_ms:
                logger.warning(
                    "Slow request detected",
                    duration_ms=round(duration_ms, 2),
                    threshold_ms=self.log_config.slow_request_threshold_ms,
                )

            return response
