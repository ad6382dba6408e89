"""Keyed service registry shared by the bootstrap pipeline and controllers.

The registry is an explicit dependency-injection container: the host builds
one process-wide instance at startup and every request gets a child registry
from it. Registrations made while bootstrapping a request land in the child,
so concurrent requests never see each other's request, response or profilers,
while lookups fall through to the process registry for shared services such
as the configuration or the database shard manager.

Services can be registered as ready instances or as factories. A factory is
called with the registry that asked for the service:

- **transient** factories build a new service on every lookup, so a factory
  registered on the process registry can still read request-local services
  from the child that asked;
- **shared** factories build the service once and cache it in the registry
  that owns the factory.

All mutation and factory construction happens under a re-entrant lock, so
bootstrap may race safely with other requests.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from loguru import logger

from src.core.exceptions import NotRegisteredError

type ServiceFactory = Callable[[ServiceRegistry], Any]


class ServiceKey(StrEnum):
    """Canonical registry keys."""

    CONFIG = "hexgate.config"
    ENVIRONMENT = "hexgate.environment"
    REQUEST = "hexgate.request"
    RESPONSE = "hexgate.response"
    LOGGER = "hexgate.logger"
    TIME_PROFILER = "hexgate.profiler.time"
    DATABASE_PROFILER = "hexgate.profiler.database"
    DATABASE = "hexgate.database"
    SECURITY = "hexgate.security"
    RABBITMQ_CONNECTION = "hexgate.rabbitmq.connection"
    COMMAND_QUEUE = "hexgate.command_queue"
    EXCEPTION_HANDLER = "hexgate.handler.exception"
    ERROR_HANDLER = "hexgate.handler.error"
    FALLBACK_CONTROLLER = "hexgate.controller.fallback"


@dataclass(frozen=True, slots=True)
class _FactoryBinding:
    factory: ServiceFactory
    shared: bool


class ServiceRegistry:
    """Process or request scoped store of service instances.

    Args:
        parent: Registry to fall back to for keys this one does not bind.
    """

    def __init__(self, parent: ServiceRegistry | None = None) -> None:
        self._parent = parent
        self._instances: dict[str, Any] = {}
        self._factories: dict[str, _FactoryBinding] = {}
        self._lock = threading.RLock()

    @property
    def parent(self) -> ServiceRegistry | None:
        """The registry lookups fall back to."""
        return self._parent

    def register(self, key: str, instance: object) -> None:
        """Bind an instance to a key, replacing any previous binding.

        Args:
            key: Registry key.
            instance: The service instance.
        """
        with self._lock:
            self._instances[key] = instance

    def register_factory(
        self, key: str, factory: ServiceFactory, *, shared: bool = False
    ) -> None:
        """Bind a factory that builds the service on lookup.

        Args:
            key: Registry key.
            factory: Callable receiving the requesting registry.
            shared: Build once and cache instead of building on every lookup.
        """
        with self._lock:
            self._factories[key] = _FactoryBinding(factory, shared)

    def get(self, key: str) -> Any:  # noqa: ANN401 - services are heterogeneous
        """Resolve a service.

        Args:
            key: Registry key.

        Returns:
            Any: The registered or constructed service.

        Raises:
            NotRegisteredError: If neither this registry nor an ancestor
                provides the key.
        """
        return self._resolve(key, requester=self)

    def is_registered(self, key: str) -> bool:
        """Check whether a key resolves, without constructing anything.

        Args:
            key: Registry key.

        Returns:
            bool: True if an instance or factory is bound here or upstream.
        """
        with self._lock:
            if key in self._instances or key in self._factories:
                return True
        return self._parent is not None and self._parent.is_registered(key)

    def child(self) -> ServiceRegistry:
        """Create a request-scoped registry reading through to this one.

        Returns:
            ServiceRegistry: The new child registry.
        """
        return ServiceRegistry(parent=self)

    def _resolve(self, key: str, requester: ServiceRegistry) -> Any:  # noqa: ANN401
        with self._lock:
            if key in self._instances:
                return self._instances[key]

            binding = self._factories.get(key)
            if binding is not None and binding.shared:
                # Shared services are built against their owner registry
                instance = binding.factory(self)
                self._instances[key] = instance
                logger.debug("Constructed shared service {}", key)
                return instance

        if binding is not None:
            return binding.factory(requester)

        if self._parent is not None:
            return self._parent._resolve(key, requester)  # noqa: SLF001

        raise NotRegisteredError(key)
