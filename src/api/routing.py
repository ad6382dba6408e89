"""Route resolution and per-request dispatch.

Routes are grouped in *route units*: one module per first URL path segment.
A request for ``/orders/42`` selects the ``Orders`` unit, which registers the
controller actions it serves on a fresh :class:`UnitRouter`. Matching uses
Starlette's routing engine, so unit paths use the usual Starlette syntax
(``/orders/{order_id:int}``).

Units are collected at startup into a :class:`RouteTable`; nothing is
imported while serving a request. Whatever the unit registers, the
dispatcher always adds the fallback action that answers unmatched requests.
"""

from __future__ import annotations

import importlib
import pkgutil
import string
from collections.abc import Awaitable, Callable
from functools import partial
from typing import TYPE_CHECKING, Any, Self

from loguru import logger
from starlette.routing import Match, Route

from src.api.constants import NOT_FOUND_ACTION
from src.core.constants import GENERIC_ROUTE
from src.core.registry import ServiceKey, ServiceRegistry

if TYPE_CHECKING:
    from src.api.controllers.base import Controller
    from src.api.request import ApiRequest

type ActionEndpoint = Callable[[ServiceRegistry], Awaitable[None]]
type RouteUnit = Callable[[UnitRouter, ApiRequest], None]

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def resolve_route_name(uri: str) -> str:
    """Derive the route unit name from a request URI.

    The query string is dropped, the path lower-cased and the first segment
    after one leading slash kept. Only its first character is upper-cased,
    so ``/ORDERS/1?x=1`` gives ``Orders``. An empty segment gives
    ``Generic``. Case mapping only touches ASCII letters.

    Args:
        uri: Request path, optionally with a query string.

    Returns:
        str: The route name.
    """
    path = uri.split("?", 1)[0].translate(_ASCII_LOWER)
    path = path.removeprefix("/")
    segment = path.split("/", 1)[0]
    if not segment:
        return GENERIC_ROUTE
    first = segment[0]
    if first in string.ascii_lowercase:
        first = first.upper()
    return first + segment[1:]


class RouteTable:
    """Route names mapped to their route units."""

    def __init__(self) -> None:
        self._units: dict[str, RouteUnit] = {}

    def register(self, name: str, unit: RouteUnit) -> None:
        """Bind a route unit to a route name, replacing any previous one."""
        self._units[name] = unit

    def get(self, name: str) -> RouteUnit | None:
        """Return the unit of a route name, if any."""
        return self._units.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._units

    @property
    def names(self) -> list[str]:
        """Registered route names, sorted."""
        return sorted(self._units)

    @classmethod
    def discover(cls, package: str) -> RouteTable:
        """Build a table from every module of a routes package.

        A module ``orders`` providing ``setup(router, request)`` is
        registered as the ``Orders`` unit. Modules without ``setup`` are
        skipped.

        Args:
            package: Dotted name of the routes package.

        Returns:
            RouteTable: The populated table.
        """
        table = cls()
        root = importlib.import_module(package)
        for module_info in pkgutil.iter_modules(root.__path__):
            if module_info.name.startswith("_"):
                continue
            module = importlib.import_module(f"{package}.{module_info.name}")
            unit = getattr(module, "setup", None)
            if not callable(unit):
                logger.warning(
                    "Route module {} has no setup function, skipped", module.__name__
                )
                continue
            table.register(resolve_route_name(module_info.name), unit)

        logger.info("Discovered {} route units in {}", len(table.names), package)
        return table


async def _invoke_action(
    controller_cls: type[Controller], action: str, registry: ServiceRegistry
) -> None:
    controller = controller_cls.from_registry(registry)
    await controller.remap(action)


async def _invoke_fallback(registry: ServiceRegistry) -> None:
    controller = registry.get(ServiceKey.FALLBACK_CONTROLLER)
    await controller.remap(NOT_FOUND_ACTION)


class UnitRouter:
    """Routes registered by one route unit for one request."""

    def __init__(self) -> None:
        self._routes: list[tuple[Route, ActionEndpoint]] = []
        self._not_found: ActionEndpoint | None = None

    def add(
        self,
        method: str,
        path: str,
        controller_cls: type[Controller],
        action: str,
    ) -> Self:
        """Map a method and path pattern to a controller action.

        Args:
            method: HTTP method.
            path: Starlette path pattern.
            controller_cls: Controller class serving the action.
            action: Action name in the controller's dispatch table.

        Returns:
            Self: The router, for chaining.
        """
        endpoint = partial(_invoke_action, controller_cls, action)
        route = Route(path, endpoint, methods=[method.upper()])
        self._routes.append((route, endpoint))
        return self

    def get(self, path: str, controller_cls: type[Controller], action: str) -> Self:
        """Register a GET action."""
        return self.add("GET", path, controller_cls, action)

    def post(self, path: str, controller_cls: type[Controller], action: str) -> Self:
        """Register a POST action."""
        return self.add("POST", path, controller_cls, action)

    def put(self, path: str, controller_cls: type[Controller], action: str) -> Self:
        """Register a PUT action."""
        return self.add("PUT", path, controller_cls, action)

    def patch(self, path: str, controller_cls: type[Controller], action: str) -> Self:
        """Register a PATCH action."""
        return self.add("PATCH", path, controller_cls, action)

    def delete(self, path: str, controller_cls: type[Controller], action: str) -> Self:
        """Register a DELETE action."""
        return self.add("DELETE", path, controller_cls, action)

    def not_found(self, handler: ActionEndpoint) -> Self:
        """Set the handler run when no route matches."""
        self._not_found = handler
        return self

    @property
    def not_found_handler(self) -> ActionEndpoint | None:
        """The handler run when no route matches."""
        return self._not_found

    def __len__(self) -> int:
        return len(self._routes)

    def match(
        self, request: ApiRequest
    ) -> tuple[ActionEndpoint, dict[str, Any]] | None:
        """Find the action for a request.

        Args:
            request: The request view.

        Returns:
            tuple[ActionEndpoint, dict[str, Any]] | None: The endpoint and
                the converted path parameters, or None when no route
                matches both path and method.
        """
        scope = {
            "type": "http",
            "path": request.path,
            "root_path": "",
            "method": request.method,
        }
        for route, endpoint in self._routes:
            match, child_scope = route.matches(scope)
            if match is Match.FULL:
                return endpoint, dict(child_scope.get("path_params", {}))
        return None


class RouteDispatcher:
    """Selects the route unit for a request and runs the matched action.

    Args:
        registry: The request's service registry.
        routes: Route units known to the application.
    """

    def __init__(self, registry: ServiceRegistry, routes: RouteTable) -> None:
        self._registry = registry
        self._routes = routes
        self._router = UnitRouter()
        self._request: ApiRequest | None = None
        self.route_name: str | None = None

    @property
    def router(self) -> UnitRouter:
        """The per-request router."""
        return self._router

    def set_up(self, request: ApiRequest) -> Self:
        """Load the request's route unit and register the fallback.

        Args:
            request: The request view.

        Returns:
            Self: The dispatcher, for chaining.
        """
        self._request = request
        self.route_name = resolve_route_name(request.uri)

        unit = self._routes.get(self.route_name)
        if unit is not None:
            unit(self._router, request)
        else:
            logger.debug("No route unit for {}", self.route_name)

        self._router.not_found(_invoke_fallback)
        return self

    async def dispatch(self) -> None:
        """Run the matched action, or the fallback when nothing matches.

        Raises:
            RuntimeError: If :meth:`set_up` was not called.
        """
        if self._request is None:
            msg = "Route dispatcher is not set up"
            raise RuntimeError(msg)

        matched = self._router.match(self._request)
        if matched is None:
            logger.debug(
                "No route matched {} {}", self._request.method, self._request.path
            )
            handler = self._router.not_found_handler or _invoke_fallback
            await handler(self._registry)
            return

        endpoint, path_params = matched
        self._registry.register(
            ServiceKey.REQUEST, self._request.with_path_params(path_params)
        )
        await endpoint(self._registry)
