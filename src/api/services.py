"""Process-wide service registry with the default collaborators.

The registry built here is shared by every request. Request-scoped services
(profilers, response, security manager, fallback controller) are bound as
transient factories: each request's child registry gets fresh instances,
built against that child so they can read the request registered in it.
The environment reader and the database shard manager are shared and built
once, on first use.
"""

from src.api.controllers.fallback import FallbackController
from src.api.response import ApiResponse
from src.api.security import SecurityManager
from src.core.config import Settings, get_settings
from src.core.environment import ServerEnvironment
from src.core.handlers import ErrorHandler, ExceptionHandler
from src.core.profiling import DatabaseProfiler, TimeProfiler
from src.core.registry import ServiceKey, ServiceRegistry
from src.infrastructure.database.shards import ShardManager


def _server_environment(registry: ServiceRegistry) -> ServerEnvironment:
    return ServerEnvironment(registry.get(ServiceKey.CONFIG))


def _shard_manager(registry: ServiceRegistry) -> ShardManager:
    return ShardManager(registry.get(ServiceKey.CONFIG))


def _security_manager(registry: ServiceRegistry) -> SecurityManager:
    config: Settings = registry.get(ServiceKey.CONFIG)
    return SecurityManager(config.security_config, registry.get(ServiceKey.REQUEST))


def build_service_registry(settings: Settings | None = None) -> ServiceRegistry:
    """Create the process registry.

    Args:
        settings: Settings to serve as the configuration; the cached
            application settings when omitted.

    Returns:
        ServiceRegistry: The registry, ready to hand out child registries.
    """
    registry = ServiceRegistry()
    registry.register(ServiceKey.CONFIG, settings or get_settings())
    registry.register(ServiceKey.EXCEPTION_HANDLER, ExceptionHandler())
    registry.register(ServiceKey.ERROR_HANDLER, ErrorHandler())

    registry.register_factory(ServiceKey.ENVIRONMENT, _server_environment, shared=True)
    registry.register_factory(ServiceKey.DATABASE, _shard_manager, shared=True)

    registry.register_factory(ServiceKey.TIME_PROFILER, lambda _: TimeProfiler())
    registry.register_factory(ServiceKey.DATABASE_PROFILER, lambda _: DatabaseProfiler())
    registry.register_factory(ServiceKey.RESPONSE, lambda _: ApiResponse())
    registry.register_factory(ServiceKey.SECURITY, _security_manager)
    registry.register_factory(
        ServiceKey.FALLBACK_CONTROLLER, FallbackController.from_registry
    )
    return registry
