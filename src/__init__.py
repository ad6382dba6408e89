"""Hexgate - request bootstrap and dispatch layer for FastAPI services.

Hexgate brings every HTTP request through a fixed, fail-fast initialization
pipeline and then hands it to a controller action selected by the first
segment of the request path.

Architecture Overview:
- **Core Layer**: Service registry, configuration, environment policy,
  profiling, error handling and logging
- **API Layer**: Bootstrap pipeline, route dispatch, controllers and the
  FastAPI host application
- **Infrastructure Layer**: Database shard management and query profiling

Route units live in a routes package (``src.routes`` by default); each module
is registered under its capitalized name and binds controller actions to path
patterns for the requests it serves.
"""
