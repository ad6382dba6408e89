"""Unit tests for route resolution and dispatch."""

from collections.abc import Callable
from typing import Any

import pytest
from pytest_mock import MockerFixture

from src.api.controllers.base import Action, Controller
from src.api.request import ApiRequest
from src.api.response import ApiResponse
from src.api.routing import RouteDispatcher, RouteTable, UnitRouter, resolve_route_name
from src.core.config import Settings
from src.core.environment import ServerEnvironment
from src.core.exceptions import NotFoundError
from src.core.registry import ServiceKey, ServiceRegistry

type ApiRequestFactory = Callable[..., ApiRequest]


class OrdersController(Controller):
    """Records which action ran and with which order id."""

    calls: list[tuple[str, Any]] = []

    def actions(self) -> dict[str, Action]:
        return {"list": self.list_orders, "show": self.show}

    async def list_orders(self) -> None:
        self.calls.append(("list", None))
        self.response.render({"orders": []})

    def show(self) -> None:
        self.calls.append(("show", self.request.get("order_id")))


def orders_unit(router: UnitRouter, request: ApiRequest) -> None:
    router.get("/orders", OrdersController, "list")
    router.get("/orders/{order_id:int}", OrdersController, "show")


@pytest.fixture(autouse=True)
def reset_calls() -> None:
    """Forget actions recorded by previous tests."""
    OrdersController.calls = []


@pytest.fixture
def registry(mock_settings: Settings) -> ServiceRegistry:
    """Request registry with the collaborators controllers need."""
    registry = ServiceRegistry()
    registry.register(ServiceKey.CONFIG, mock_settings)
    registry.register(ServiceKey.ENVIRONMENT, ServerEnvironment(mock_settings))
    registry.register(ServiceKey.RESPONSE, ApiResponse())
    return registry


@pytest.fixture
def routes() -> RouteTable:
    """Table holding the orders unit."""
    table = RouteTable()
    table.register("Orders", orders_unit)
    return table


@pytest.mark.unit
class TestResolveRouteName:
    """Route name derivation."""

    @pytest.mark.parametrize(
        ("uri", "expected"),
        [
            ("/orders", "Orders"),
            ("/orders/42?x=1", "Orders"),
            ("/ORDERS/42", "Orders"),
            ("/orderItems/1", "Orderitems"),
            ("/", "Generic"),
            ("", "Generic"),
            ("/?page=2", "Generic"),
            ("//orders", "Generic"),
            ("orders", "Orders"),
            ("/ßtrasse", "ßtrasse"),
            ("/ÉMILE/1", "Émile"),
            ("/été", "été"),
        ],
    )
    def test_route_names(self, uri: str, expected: str) -> None:
        """The first path segment, ASCII lower-cased, first letter upper."""
        assert resolve_route_name(uri) == expected


@pytest.mark.unit
class TestRouteTable:
    """Route unit registration and discovery."""

    def test_register_and_lookup(self) -> None:
        """Units are found by name."""
        table = RouteTable()
        table.register("Orders", orders_unit)

        assert "Orders" in table
        assert table.get("Orders") is orders_unit
        assert table.get("Missing") is None
        assert table.names == ["Orders"]

    def test_discover(self) -> None:
        """Modules exposing setup are registered by route name."""
        table = RouteTable.discover("src.routes")

        assert "Generic" in table
        assert callable(table.get("Generic"))

    def test_discover_unknown_package(self) -> None:
        """A missing package fails at startup."""
        with pytest.raises(ModuleNotFoundError):
            RouteTable.discover("src.no_such_routes")


@pytest.mark.unit
class TestUnitRouter:
    """Per-request matching."""

    def test_match_with_converted_params(
        self, make_api_request: ApiRequestFactory
    ) -> None:
        """Path parameters are converted by the route pattern."""
        router = UnitRouter()
        orders_unit(router, make_api_request())

        matched = router.match(make_api_request("/orders/42"))

        assert matched is not None
        assert matched[1] == {"order_id": 42}
        assert len(router) == 2

    def test_method_must_match(self, make_api_request: ApiRequestFactory) -> None:
        """A path match with the wrong method is no match."""
        router = UnitRouter().post("/orders", OrdersController, "list")

        assert router.match(make_api_request("/orders", method="GET")) is None
        assert router.match(make_api_request("/orders", method="POST")) is not None

    def test_converter_rejects(self, make_api_request: ApiRequestFactory) -> None:
        """Segments that fail conversion do not match."""
        router = UnitRouter().get("/orders/{order_id:int}", OrdersController, "show")

        assert router.match(make_api_request("/orders/abc")) is None

    @pytest.mark.parametrize("method", ["put", "patch", "delete"])
    def test_method_helpers(
        self, method: str, make_api_request: ApiRequestFactory
    ) -> None:
        """Each helper registers its own method."""
        router = UnitRouter()
        getattr(router, method)("/orders", OrdersController, "list")

        request = make_api_request("/orders", method=method.upper())
        assert router.match(request) is not None


@pytest.mark.unit
class TestRouteDispatcher:
    """Unit loading and dispatch."""

    async def test_dispatches_matched_action(
        self,
        registry: ServiceRegistry,
        routes: RouteTable,
        make_api_request: ApiRequestFactory,
    ) -> None:
        """The matched action runs with path parameters in the request."""
        dispatcher = RouteDispatcher(registry, routes).set_up(
            make_api_request("/orders/7")
        )

        await dispatcher.dispatch()

        assert dispatcher.route_name == "Orders"
        assert OrdersController.calls == [("show", 7)]
        assert registry.get(ServiceKey.REQUEST).path_params == {"order_id": 7}

    async def test_awaits_async_actions(
        self,
        registry: ServiceRegistry,
        routes: RouteTable,
        make_api_request: ApiRequestFactory,
    ) -> None:
        """Coroutine actions are awaited."""
        dispatcher = RouteDispatcher(registry, routes).set_up(
            make_api_request("/orders")
        )

        await dispatcher.dispatch()

        assert OrdersController.calls == [("list", None)]
        assert registry.get(ServiceKey.RESPONSE).content == {"orders": []}

    async def test_unmatched_runs_fallback(
        self,
        registry: ServiceRegistry,
        routes: RouteTable,
        make_api_request: ApiRequestFactory,
        mocker: MockerFixture,
    ) -> None:
        """Unmatched requests run the fallback controller's notFound action."""
        fallback = mocker.Mock()
        fallback.remap = mocker.AsyncMock()
        registry.register(ServiceKey.FALLBACK_CONTROLLER, fallback)
        dispatcher = RouteDispatcher(registry, routes).set_up(
            make_api_request("/orders/7", method="DELETE")
        )

        await dispatcher.dispatch()

        fallback.remap.assert_awaited_once_with("notFound")
        assert OrdersController.calls == []

    async def test_unknown_unit_runs_fallback(
        self,
        registry: ServiceRegistry,
        routes: RouteTable,
        make_api_request: ApiRequestFactory,
        mocker: MockerFixture,
    ) -> None:
        """Requests without a route unit only have the fallback."""
        fallback = mocker.Mock()
        fallback.remap = mocker.AsyncMock(side_effect=NotFoundError("missing"))
        registry.register(ServiceKey.FALLBACK_CONTROLLER, fallback)
        dispatcher = RouteDispatcher(registry, routes).set_up(
            make_api_request("/customers")
        )

        assert len(dispatcher.router) == 0
        assert dispatcher.router.not_found_handler is not None
        with pytest.raises(NotFoundError):
            await dispatcher.dispatch()

    async def test_fallback_replaces_unit_handler(
        self,
        registry: ServiceRegistry,
        make_api_request: ApiRequestFactory,
        mocker: MockerFixture,
    ) -> None:
        """A not-found handler set by a unit is replaced by the fallback."""
        unit_handler = mocker.AsyncMock()
        fallback = mocker.Mock()
        fallback.remap = mocker.AsyncMock()
        registry.register(ServiceKey.FALLBACK_CONTROLLER, fallback)
        table = RouteTable()
        table.register("Orders", lambda router, _: router.not_found(unit_handler))

        dispatcher = RouteDispatcher(registry, table).set_up(
            make_api_request("/orders")
        )
        await dispatcher.dispatch()

        unit_handler.assert_not_awaited()
        fallback.remap.assert_awaited_once()

    async def test_dispatch_requires_set_up(
        self, registry: ServiceRegistry, routes: RouteTable
    ) -> None:
        """Dispatching before set_up is a programming error."""
        with pytest.raises(RuntimeError, match="not set up"):
            await RouteDispatcher(registry, routes).dispatch()
