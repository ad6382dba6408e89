"""Controllers serving the actions route units register."""

from src.api.controllers.base import Controller
from src.api.controllers.fallback import FallbackController

__all__ = ["Controller", "FallbackController"]
