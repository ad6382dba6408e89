"""Deployment tier detection and the error exposure policy per tier."""

from dataclasses import dataclass
from typing import Final

from src.core.config import Settings
from src.core.exceptions import UnrecognizedEnvironmentError
from src.core.handlers import DebugLevel


@dataclass(frozen=True, slots=True)
class EnvironmentPolicy:
    """Error exposure settings derived from the deployment tier."""

    debug_level: DebugLevel
    display_errors: bool


ENVIRONMENT_POLICIES: Final[dict[str, EnvironmentPolicy]] = {
    "local": EnvironmentPolicy(DebugLevel.FULL, display_errors=True),
    "development": EnvironmentPolicy(DebugLevel.FULL, display_errors=True),
    "staging": EnvironmentPolicy(DebugLevel.FULL, display_errors=True),
    "uat": EnvironmentPolicy(DebugLevel.LIMITED, display_errors=False),
    "production": EnvironmentPolicy(DebugLevel.CRUCIAL, display_errors=False),
}


def resolve_policy(environment: str) -> EnvironmentPolicy:
    """Map a deployment tier to its error exposure policy.

    Args:
        environment: The tier name, compared exactly.

    Returns:
        EnvironmentPolicy: The policy for the tier.

    Raises:
        UnrecognizedEnvironmentError: If the tier is not a known one.
    """
    policy = ENVIRONMENT_POLICIES.get(environment)
    if policy is None:
        raise UnrecognizedEnvironmentError(environment)
    return policy


class ServerEnvironment:
    """Reports the tier the server runs in, as configured in the settings.

    Args:
        settings: Application settings (``ENVIRONMENT`` variable).
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get_current_environment(self) -> str:
        """Return the configured tier name."""
        return self._settings.environment
