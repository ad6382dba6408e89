"""Controller answering requests no route unit action matched."""

from loguru import logger
from starlette import status

from src.api.constants import NOT_FOUND_ACTION, PAGE_NOT_FOUND_MESSAGE
from src.api.controllers.base import Action, Controller


class FallbackController(Controller):
    """Redirects known legacy paths, answers 404 for everything else.

    Redirects come from ``routing_config.redirects`` and are matched on the
    exact request path, with or without a trailing slash.
    """

    def actions(self) -> dict[str, Action]:
        """Only the not-found action."""
        return {NOT_FOUND_ACTION: self.not_found}

    def not_found(self) -> None:
        """Redirect permanently when configured, otherwise respond 404."""
        redirects = self.config.routing_config.redirects
        path = self.request.path
        location = redirects.get(path) or redirects.get(path.rstrip("/") or "/")
        if location is None:
            self.respond_to_not_found(PAGE_NOT_FOUND_MESSAGE)

        logger.info("Redirecting {} to {}", path, location)
        self.response.redirect(location, status.HTTP_301_MOVED_PERMANENTLY)
