"""FastAPI application initialization and configuration module.

FastAPI is the host: it owns the server loop, the middleware stack and the
global exception handlers. Every request except the health check reaches a
single catch-all endpoint, which runs the request through a fresh
:class:`~src.api.bootstrap.Bootstrap` built on a child of the process
service registry. Route units are discovered once, when the application is
created.

Middleware are executed in reverse order of registration, so the request
context middleware (correlation id, start timestamp) runs first.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI, Request
from fastapi.responses import Response
from loguru import logger

from src.api.bootstrap import Bootstrap
from src.api.constants import DISPATCH_METHODS
from src.api.middleware.error_handler import register_exception_handlers
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.middleware.request_logging import RequestLoggingMiddleware
from src.api.response import ORJSONResponse
from src.api.routing import RouteTable
from src.api.services import build_service_registry
from src.core.config import Settings, get_settings
from src.core.logging import setup_logging
from src.core.observability import instrument_app, setup_tracing
from src.core.registry import ServiceKey, ServiceRegistry
from src.infrastructure.database.shards import DEFAULT_SHARD, ShardManager


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan events.

    Args:
        app_instance: The FastAPI application instance.

    Yields:
        None: Nothing is yielded, this is just a lifespan context.

    Raises:
        RuntimeError: If the default shard is unreachable during startup.
    """
    shards: ShardManager = app_instance.state.registry.get(ServiceKey.DATABASE)
    is_healthy, error_msg = await shards.check_connection(DEFAULT_SHARD)

    if is_healthy:
        logger.info("Database connection successful")
    else:
        logger.error("Database connection failed during startup: {}", error_msg)
        msg = f"Database connection failed: {error_msg}"
        raise RuntimeError(msg)

    logger.info(
        "Application startup complete - {} v{}",
        app_instance.title,
        app_instance.version,
    )

    yield

    logger.bind(engines=shards.describe()).info("Application shutdown initiated")
    await shards.close()
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None,
    registry: ServiceRegistry | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use
            get_settings().
        registry: Optional process registry. Built from the settings when
            omitted.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    setup_logging(settings)
    setup_tracing(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    application.state.registry = registry or build_service_registry(settings)
    application.state.routes = RouteTable.discover(
        settings.routing_config.routes_package
    )

    # Register exception handlers BEFORE middleware
    register_exception_handlers(application)

    application.add_middleware(RequestLoggingMiddleware, settings=settings)
    application.add_middleware(RequestContextMiddleware)

    @application.get("/health")
    async def health() -> dict[str, object]:
        """Health check endpoint reporting the connectivity of every shard.

        Returns:
            dict[str, object]: Overall status and per-shard connectivity.
        """
        shards: ShardManager = application.state.registry.get(ServiceKey.DATABASE)
        databases: dict[str, bool] = {}

        for shard in shards.shard_names:
            is_healthy, error_msg = await shards.check_connection(shard)
            databases[shard] = is_healthy
            if is_healthy:
                pool = cast("Any", shards.get_engine(shard).pool)
                logger.bind(
                    metric_type="db.pool.health",
                    shard=shard,
                    checked_out=pool.checkedout(),
                    size=pool.size(),
                    overflow=pool.overflow(),
                ).info("Database pool health check")
            else:
                logger.warning(
                    "Database health check failed for shard {}: {}", shard, error_msg
                )

        status = "healthy" if all(databases.values()) else "degraded"
        return {"status": status, "databases": databases}

    @application.api_route(
        "/{path:path}", methods=DISPATCH_METHODS, include_in_schema=False
    )
    async def dispatch(request: Request) -> Response:
        """Run the request through the bootstrap pipeline."""
        body = await request.body()
        bootstrap = Bootstrap(application.state.registry.child())
        bootstrap.init(
            request,
            body,
            routes=application.state.routes,
            start=getattr(request.state, "started_at", None),
        )
        return await bootstrap.run()

    instrument_app(application, settings)

    return application


app = create_app()
