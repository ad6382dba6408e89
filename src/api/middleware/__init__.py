"""FastAPI middleware and exception handlers.

- **RequestContextMiddleware**: Correlation ids and the request start time
- **RequestLoggingMiddleware**: Structured request logging with timings
- **error_handler**: Status mapping and the JSON error payload for every
  exception that leaves the bootstrap pipeline

Middleware run in reverse order of registration, so the request context is
set up before the request is logged.
"""
