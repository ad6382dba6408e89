"""Unit tests for the main.py entry point."""

import pytest
from pytest_mock import MockerFixture, MockType

import main
from src.core.config import Settings


@pytest.fixture
def mock_uvicorn(mocker: MockerFixture) -> MockType:
    """Mock uvicorn.run so no server starts."""
    return mocker.patch("main.uvicorn.run")


@pytest.fixture
def patched_settings(mocker: MockerFixture, mock_settings: Settings) -> Settings:
    """Serve the test settings from get_settings and silence setup."""
    mocker.patch("main.get_settings", return_value=mock_settings)
    mocker.patch("main.setup_logging")
    return mock_settings


@pytest.mark.unit
class TestMain:
    """Server start-up."""

    @pytest.mark.parametrize(
        ("env_port", "expected_port"),
        [("8080", 8080), (None, 8000)],
    )
    def test_port_precedence(
        self,
        env_port: str | None,
        expected_port: int,
        mock_uvicorn: MockType,
        patched_settings: Settings,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """PORT overrides the configured API port."""
        _ = patched_settings
        if env_port is None:
            monkeypatch.delenv("PORT", raising=False)
        else:
            monkeypatch.setenv("PORT", env_port)

        main.main()

        assert mock_uvicorn.call_args.kwargs["port"] == expected_port

    def test_runs_application_module(
        self, mock_uvicorn: MockType, patched_settings: Settings
    ) -> None:
        """Uvicorn serves src.api.main:app, reloading only in debug mode."""
        main.main()

        args, kwargs = mock_uvicorn.call_args
        assert args == ("src.api.main:app",)
        assert kwargs["reload"] is patched_settings.debug
        assert kwargs["host"] == patched_settings.api_host

    def test_log_config_routes_uvicorn_to_loguru(self) -> None:
        """Uvicorn loggers use the intercept handler without propagation."""
        config = main.build_log_config("WARNING")

        loggers = config["loggers"]
        assert isinstance(loggers, dict)
        assert set(loggers) == {"uvicorn", "uvicorn.error", "uvicorn.access"}
        assert all(entry["level"] == "WARNING" for entry in loggers.values())
        assert all(entry["propagate"] is False for entry in loggers.values())
