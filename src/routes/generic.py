"""Route unit for the root path."""

from typing import Any

from src.api.controllers.base import Action, Controller
from src.api.request import ApiRequest
from src.api.routing import UnitRouter


class IndexController(Controller):
    """Describes the running service."""

    def actions(self) -> dict[str, Action]:
        """Only the index action."""
        return {"index": self.index}

    async def index(self) -> None:
        """Respond with the service name, version and tier."""
        info: dict[str, Any] = {
            "app_name": self.config.app_name,
            "version": self.config.app_version,
            "environment": self.environment.get_current_environment(),
        }
        self.response.render(info)


def setup(router: UnitRouter, request: ApiRequest) -> None:
    """Register the root path."""
    _ = request
    router.get("/", IndexController, "index")
