"""Root conftest.py for the Hexgate test suite.

Project-wide fixtures and pytest configuration. The bootstrap pipeline
changes process-wide state (exception hooks, warning display, the debug
level), so every test gets that state restored afterwards.
"""

import sys
import threading
import warnings
from collections.abc import Generator

import pytest
from loguru import logger

from src.core.handlers import reset_handler_state
from src.core.logging import _state


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )


@pytest.fixture(autouse=True)
def restore_process_hooks() -> Generator[None]:
    """Restore exception hooks, warning display and the debug policy."""
    excepthook = sys.excepthook
    thread_excepthook = threading.excepthook
    showwarning = warnings.showwarning
    filters = warnings.filters[:]
    reset_handler_state()

    yield

    sys.excepthook = excepthook
    threading.excepthook = thread_excepthook
    warnings.showwarning = showwarning
    warnings.filters[:] = filters
    reset_handler_state()


@pytest.fixture(autouse=True)
def keep_logging_configured() -> Generator[None]:
    """Keep setup_logging from installing stdout sinks during tests.

    Tests exercising setup_logging itself reset the flag explicitly.
    """
    _state.configured = True
    yield
    _state.configured = True
    logger.remove()
