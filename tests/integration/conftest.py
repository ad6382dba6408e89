"""Fixtures for integration tests.

The application is assembled with :func:`create_app` against the route units
in ``tests.integration.routes``. The shard manager is mocked, so no database
is needed; ASGITransport does not run the lifespan either.
"""

import os
from collections.abc import AsyncGenerator, Callable, Generator
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pytest_mock import MockerFixture, MockType

from src.api.main import create_app
from src.api.services import build_service_registry
from src.core.config import get_settings
from src.core.error_context import _get_sensitive_fields
from src.core.registry import ServiceKey

type ClientFactory = Callable[..., AbstractAsyncContextManager[AsyncClient]]

ENV_PREFIXES = (
    "APP_",
    "API_",
    "ENVIRONMENT",
    "DEBUG",
    "GLOBAL_CONFIG__",
    "LOG_CONFIG__",
    "OBSERVABILITY_CONFIG__",
    "DATABASE_CONFIG__",
    "SECURITY_CONFIG__",
    "ROUTING_CONFIG__",
)

BASE_ENV = {
    "APP_NAME": "Hexgate Integration",
    "APP_VERSION": "2.0.0",
    "ENVIRONMENT": "development",
    "DEBUG": "false",
    "GLOBAL_CONFIG__ENABLED": "true",
    "OBSERVABILITY_CONFIG__ENABLE_TRACING": "false",
    "ROUTING_CONFIG__ROUTES_PACKAGE": "tests.integration.routes",
    "ROUTING_CONFIG__REDIRECTS": '{"/legacy-orders": "/orders"}',
}


@pytest.fixture(autouse=True)
def integration_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Start every test from the base environment and fresh caches."""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)

    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture
def mock_shards(mocker: MockerFixture) -> MockType:
    """Shard manager whose shards all answer."""
    shards = mocker.Mock()
    shards.shard_names = ["default"]
    shards.check_connection = mocker.AsyncMock(return_value=(True, None))
    shards.close = mocker.AsyncMock()
    return shards


@pytest.fixture
def make_client(
    monkeypatch: pytest.MonkeyPatch, mock_shards: MockType
) -> ClientFactory:
    """Build a client for an application created from the environment.

    Keyword arguments are extra environment variables applied before the
    settings are loaded.
    """

    @asynccontextmanager
    async def _make(**env: str) -> AsyncGenerator[AsyncClient]:
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        get_settings.cache_clear()

        settings = get_settings()
        registry = build_service_registry(settings)
        registry.register(ServiceKey.DATABASE, mock_shards)
        app: FastAPI = create_app(settings, registry)

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client

    return _make
