"""Request verification run by the bootstrap security step.

Verification is a shared API-key check: the request must carry one of the
configured keys in the configured header. It is skipped when no keys are
configured or when the request's route is exempt.
"""

import hmac

from loguru import logger

from src.api.request import ApiRequest
from src.api.routing import resolve_route_name
from src.core.config import SecurityConfig
from src.core.exceptions import UnauthorizedError


class SecurityManager:
    """Verifies a single request against the security configuration.

    Args:
        config: Security section of the settings.
        request: The request view.
    """

    def __init__(self, config: SecurityConfig, request: ApiRequest) -> None:
        self._config = config
        self._request = request

    @property
    def is_enforced(self) -> bool:
        """Whether this request has to present an API key."""
        if not self._config.api_keys:
            return False
        route = resolve_route_name(self._request.uri)
        return route not in self._config.exempt_routes

    def verify(self) -> None:
        """Check the request's API key.

        Raises:
            UnauthorizedError: If the key is missing or not accepted.
        """
        if not self.is_enforced:
            return

        presented = self._request.header(self._config.header_name)
        if not presented:
            raise UnauthorizedError(
                f"Missing {self._config.header_name} header",
                context={"path": self._request.path},
            )

        if not any(
            hmac.compare_digest(presented.encode(), key.encode())
            for key in self._config.api_keys
        ):
            logger.warning("Rejected API key", path=self._request.path)
            raise UnauthorizedError(
                "Invalid API key", context={"path": self._request.path}
            )
