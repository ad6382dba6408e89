"""Shared fixtures for unit tests."""

import os
from collections.abc import Callable, Generator
from typing import Any

import pytest
from pytest_mock import MockerFixture, MockType
from starlette.requests import Request

from src.api.request import ApiRequest
from src.api.response import ApiResponse
from src.core.config import LogConfig, Settings, get_settings
from src.core.context import RequestContext
from src.core.environment import ServerEnvironment
from src.core.error_context import _get_sensitive_fields

type HttpRequestFactory = Callable[..., Request]
type ApiRequestFactory = Callable[..., ApiRequest]


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Provide Settings built from test environment variables.

    Returns:
        Settings: Enabled development settings with tracing off.
    """
    monkeypatch.setenv("APP_NAME", "TestApp")
    monkeypatch.setenv("APP_VERSION", "1.0.0")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("GLOBAL_CONFIG__ENABLED", "true")
    monkeypatch.setenv("OBSERVABILITY_CONFIG__ENABLE_TRACING", "false")
    return Settings()


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    """Clear cached settings and sensitive fields around each test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[pytest.MonkeyPatch]:
    """Remove application variables from the environment for each test.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    original_env = os.environ.copy()

    env_prefixes = [
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
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)

    yield monkeypatch

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def clean_context() -> Generator[None]:
    """Clear the request context before and after each test."""
    RequestContext.clear()
    yield
    RequestContext.clear()


@pytest.fixture
def mock_get_settings(mocker: MockerFixture) -> MockType:
    """Mock get_settings in error_context with custom sensitive fields.

    Args:
        mocker: Pytest mocker fixture.

    Returns:
        MockType: Mock get_settings function.
    """
    mock_settings = mocker.Mock(spec=Settings)
    mock_log_config = mocker.Mock(spec=LogConfig)
    mock_log_config.sensitive_fields = ["custom_secret", "my_password", "api_token"]
    mock_settings.log_config = mock_log_config

    mock_get_settings_fn = mocker.patch("src.core.error_context.get_settings")
    mock_get_settings_fn.return_value = mock_settings
    _get_sensitive_fields.cache_clear()
    return mock_get_settings_fn


@pytest.fixture
def make_http_request() -> HttpRequestFactory:
    """Factory for bare Starlette requests.

    Returns:
        HttpRequestFactory: Builds a request from method, path, query and
            headers.
    """

    def _make(
        method: str = "GET",
        path: str = "/",
        query: str = "",
        headers: dict[str, str] | None = None,
    ) -> Request:
        scope: dict[str, Any] = {
            "type": "http",
            "method": method,
            "scheme": "http",
            "server": ("testserver", 80),
            "root_path": "",
            "path": path,
            "query_string": query.encode(),
            "headers": [
                (key.lower().encode(), value.encode())
                for key, value in (headers or {}).items()
            ],
        }
        return Request(scope)

    return _make


@pytest.fixture
def make_api_request() -> ApiRequestFactory:
    """Factory for request views with query parameters.

    Returns:
        ApiRequestFactory: Builds an ApiRequest from path, method, query,
            body and headers.
    """

    def _make(
        path: str = "/",
        method: str = "GET",
        query: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> ApiRequest:
        return ApiRequest(
            method=method,
            path=path,
            uri=path,
            headers={k.lower(): v for k, v in (headers or {}).items()},
            query=query or {},
            body=body or {},
        )

    return _make


@pytest.fixture
def controller_kwargs(mock_settings: Settings) -> dict[str, Any]:
    """Collaborators for constructing controllers, minus the request."""
    return {
        "response": ApiResponse(),
        "config": mock_settings,
        "environment": ServerEnvironment(mock_settings),
    }
