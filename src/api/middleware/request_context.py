"""Request context middleware for correlation and request timing.

Runs outermost so everything after it, the bootstrap pipeline included,
sees the request's correlation id. It also stamps the moment the request
entered the application on ``request.state.started_at``; the bootstrap
starts its time profiler from that timestamp, so the profile covers the
middleware stack as well.
"""

import time

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.api.constants import CORRELATION_ID_HEADER
from src.core.context import RequestContext, generate_correlation_id


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to manage request context and correlation IDs."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request with context management.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: Response with correlation ID header.
        """
        request.state.started_at = time.perf_counter()
        correlation_id = (
            request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        )
        RequestContext.set_correlation_id(correlation_id)

        try:
            with logger.contextualize(correlation_id=correlation_id):
                response = await call_next(request)
                response.headers[CORRELATION_ID_HEADER] = correlation_id
                return response
        finally:
            RequestContext.clear()
