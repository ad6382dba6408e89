"""Request lifecycle bootstrap pipeline.

Every request runs through one :class:`Bootstrap`. Its initialization is a
fixed, fail-fast sequence of steps; each step obtains a collaborator from the
request's service registry, registers it for the code that runs later, and
marks a milestone on the time profiler:

1. error handling      (process-wide exception and warning handlers)
2. profilers           ``profiler_init``
3. environment         ``env_init``
4. configuration       ``conf_init``
5. request             ``request_init``
6. response            ``response_init``
7. logger              ``logger_init``
8. command queue       ``queue_init`` (only when a broker connection exists)
9. database            ``db_init``
10. security           ``security_init``
11. routes             ``routes_init``

The first step that raises aborts the pipeline; the error propagates to the
application's exception handlers. Once initialized, :meth:`Bootstrap.run`
dispatches the request, renders request-terminal errors raised by the
action, and concludes: the profiler is stopped and the response flushed
exactly once.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Self

from loguru import logger

from src.api.constants import RESPONSE_TIME_HEADER
from src.api.middleware.error_handler import (
    build_error_response,
    get_status_code,
    log_hexgate_error,
)
from src.api.request import ApiRequest
from src.api.routing import RouteDispatcher, RouteTable
from src.core.context import RequestContext
from src.core.environment import resolve_policy
from src.core.exceptions import ApplicationDisabledError, RequestError
from src.core.handlers import (
    enable_error_reporting,
    install_handlers,
    set_debug_level,
    set_display_errors,
)
from src.core.logging import setup_logging
from src.core.observability import trace_operation
from src.core.registry import ServiceKey, ServiceRegistry

if TYPE_CHECKING:
    from loguru import Logger
    from starlette.requests import Request
    from starlette.responses import Response

    from src.api.response import ApiResponse
    from src.core.config import Settings
    from src.core.profiling import DatabaseProfiler, TimeProfiler


class BootstrapState(StrEnum):
    """Lifecycle state of a bootstrap pipeline."""

    CREATED = "created"
    READY = "ready"
    ABORTED = "aborted"


class Bootstrap:
    """Initializes, runs and concludes one request.

    Args:
        registry: The request's service registry, usually a child of the
            process registry.
    """

    def __init__(self, registry: ServiceRegistry) -> None:
        self.registry = registry
        self.state = BootstrapState.CREATED
        self.config: Settings | None = None
        self.time_profiler: TimeProfiler | None = None
        self.database_profiler: DatabaseProfiler | None = None
        self.request: ApiRequest | None = None
        self.response: ApiResponse | None = None
        self.logger: Logger | None = None
        self.dispatcher: RouteDispatcher | None = None
        self._concluded = False
        self._output: Response | None = None

    def _milestone(self, key: str, description: str) -> None:
        if self.time_profiler is not None:
            self.time_profiler.add_milestone(key, description)

    def _require_request(self) -> ApiRequest:
        if self.request is None:
            msg = "Request is not set up"
            raise RuntimeError(msg)
        return self.request

    def set_up_error_handling(self) -> Self:
        """Install the exception and error handlers process-wide."""
        install_handlers(
            self.registry.get(ServiceKey.EXCEPTION_HANDLER),
            self.registry.get(ServiceKey.ERROR_HANDLER),
        )
        return self

    def set_up_profilers(self, start: float | None = None) -> Self:
        """Start the time profiler and bind the database profiler.

        Args:
            start: ``perf_counter`` timestamp the request started at; now
                when omitted.

        Returns:
            Self: The pipeline, for chaining.
        """
        self.time_profiler = self.registry.get(ServiceKey.TIME_PROFILER).begin(start)
        self.database_profiler = self.registry.get(ServiceKey.DATABASE_PROFILER)
        self.registry.register(ServiceKey.TIME_PROFILER, self.time_profiler)
        self.registry.register(ServiceKey.DATABASE_PROFILER, self.database_profiler)
        RequestContext.set_database_profiler(self.database_profiler)

        self._milestone("profiler_init", "Profilers initialized.")
        return self

    def set_up_environment(self) -> Self:
        """Apply the error exposure policy of the deployment tier.

        Raises:
            UnrecognizedEnvironmentError: If the tier is not a known one.
        """
        environment = self.registry.get(ServiceKey.ENVIRONMENT)
        self.registry.register(ServiceKey.ENVIRONMENT, environment)

        tier = environment.get_current_environment()
        policy = resolve_policy(tier)
        set_debug_level(policy.debug_level)
        set_display_errors(policy.display_errors)
        enable_error_reporting()

        self._milestone("env_init", f"Environment initialized ({tier}).")
        return self

    def set_up_config(self) -> Self:
        """Register the configuration and check the application switch.

        Raises:
            ApplicationDisabledError: If ``global.enabled`` is missing or off.
        """
        self.config = self.registry.get(ServiceKey.CONFIG)
        self.registry.register(ServiceKey.CONFIG, self.config)

        if not self.config["global"].get("enabled"):
            raise ApplicationDisabledError

        self._milestone("conf_init", "Config initialized.")
        return self

    def set_up_request(self, http_request: Request, body: bytes = b"") -> Self:
        """Build and register the request view.

        Args:
            http_request: The incoming Starlette request.
            body: Its raw body.

        Returns:
            Self: The pipeline, for chaining.
        """
        self.request = ApiRequest.from_http(http_request, body)
        self.registry.register(ServiceKey.REQUEST, self.request)

        self._milestone("request_init", "Request initialized.")
        return self

    def set_up_response(self) -> Self:
        """Build and register the response accumulator."""
        self.response = self.registry.get(ServiceKey.RESPONSE)
        self.registry.register(ServiceKey.RESPONSE, self.response)

        self._milestone("response_init", "Response initialized.")
        return self

    def set_up_logger(self) -> Self:
        """Configure logging and register the request's logger."""
        config = self.config or self.registry.get(ServiceKey.CONFIG)
        setup_logging(config)

        self.logger = logger.bind(
            correlation_id=RequestContext.get_correlation_id(),
            path=self.request.path if self.request else None,
        )
        self.registry.register(ServiceKey.LOGGER, self.logger)

        self._milestone("logger_init", "Logger initialized.")
        return self

    def set_up_queue(self) -> Self:
        """Expose the broker connection as the command queue, when there is one."""
        if not self.registry.is_registered(ServiceKey.RABBITMQ_CONNECTION):
            return self

        connection = self.registry.get(ServiceKey.RABBITMQ_CONNECTION)
        self.registry.register(ServiceKey.COMMAND_QUEUE, connection)

        self._milestone("queue_init", "Queue initialized.")
        return self

    def set_up_database(self) -> Self:
        """Register the database shard manager."""
        shards = self.registry.get(ServiceKey.DATABASE)
        self.registry.register(ServiceKey.DATABASE, shards)

        self._milestone("db_init", "Database shard manager initialized.")
        return self

    def set_up_security(self) -> Self:
        """Verify the request.

        Raises:
            UnauthorizedError: If verification fails.
        """
        security = self.registry.get(ServiceKey.SECURITY)
        self.registry.register(ServiceKey.SECURITY, security)
        security.verify()

        self._milestone("security_init", "Security checks passed.")
        return self

    def set_up_routes(self, routes: RouteTable) -> Self:
        """Load the route unit serving the request.

        Args:
            routes: Route units known to the application.

        Returns:
            Self: The pipeline, for chaining.
        """
        self.dispatcher = RouteDispatcher(self.registry, routes).set_up(
            self._require_request()
        )

        self._milestone(
            "routes_init", f"Routes initialized ({self.dispatcher.route_name})."
        )
        return self

    def init(
        self,
        http_request: Request,
        body: bytes,
        routes: RouteTable,
        start: float | None = None,
    ) -> Self:
        """Run every initialization step in order.

        Args:
            http_request: The incoming Starlette request.
            body: Its raw body.
            routes: Route units known to the application.
            start: ``perf_counter`` timestamp the request started at.

        Returns:
            Self: The initialized pipeline.

        Raises:
            RuntimeError: If the pipeline was already initialized.
            Exception: Whatever the failing step raised; the pipeline is
                left ABORTED.
        """
        if self.state is not BootstrapState.CREATED:
            msg = f"Bootstrap cannot be initialized in state {self.state}"
            raise RuntimeError(msg)

        with trace_operation("bootstrap.init", path=http_request.url.path):
            try:
                (
                    self.set_up_error_handling()
                    .set_up_profilers(start)
                    .set_up_environment()
                    .set_up_config()
                    .set_up_request(http_request, body)
                    .set_up_response()
                    .set_up_logger()
                    .set_up_queue()
                    .set_up_database()
                    .set_up_security()
                    .set_up_routes(routes)
                )
            except Exception as exc:
                self.state = BootstrapState.ABORTED
                logger.warning(
                    "Bootstrap aborted: {error_type}", error_type=type(exc).__name__
                )
                raise

        self.state = BootstrapState.READY
        return self

    def _render_error(self, exc: RequestError) -> None:
        request = self._require_request()
        log_hexgate_error(exc, request.method, request.path)
        config = self.config or self.registry.get(ServiceKey.CONFIG)
        if self.response is not None:
            self.response.render(
                build_error_response(exc, config), get_status_code(exc)
            )

    async def run(self) -> Response:
        """Dispatch the request and conclude it.

        Returns:
            Response: The flushed Starlette response.

        Raises:
            RuntimeError: If the pipeline is not initialized.
        """
        if self.state is not BootstrapState.READY or self.dispatcher is None:
            msg = f"Bootstrap cannot run in state {self.state}"
            raise RuntimeError(msg)

        try:
            await self.dispatcher.dispatch()
        except RequestError as exc:
            self._render_error(exc)
        finally:
            output = self.conclude()

        if output is None:
            msg = "Response was not flushed"
            raise RuntimeError(msg)
        return output

    def conclude(self) -> Response | None:
        """Stop the time profiler, log the profile and flush the response.

        Only the first call does anything; later calls return the response
        flushed by the first.

        Returns:
            Response | None: The flushed response, or None when the pipeline
                never got to set one up.
        """
        if self._concluded:
            logger.debug("Bootstrap already concluded")
            return self._output
        self._concluded = True

        if self.time_profiler is not None:
            if self.time_profiler.is_running:
                self.time_profiler.end()
            if self.response is not None:
                self.response.set_header(
                    RESPONSE_TIME_HEADER, f"{self.time_profiler.elapsed_ms:.3f}ms"
                )

        self._log_profile()
        RequestContext.set_database_profiler(None)

        if self.response is not None:
            self._output = self.response.output()
        return self._output

    def _log_profile(self) -> None:
        if self.time_profiler is None:
            return
        log = self.logger or logger
        log.info(
            "Request profile",
            duration_ms=self.time_profiler.elapsed_ms,
            milestones=self.time_profiler.summary(),
            query_count=self.database_profiler.query_count
            if self.database_profiler
            else 0,
            query_time_ms=self.database_profiler.total_ms
            if self.database_profiler
            else 0.0,
        )
