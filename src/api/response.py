"""Response accumulator flushed once at the end of the request lifecycle.

Controllers never build Starlette responses themselves. They set the status,
headers and content on the request's :class:`ApiResponse`; the bootstrap
finalizer flushes it into a Starlette response exactly once.

JSON content is serialized with orjson through :class:`ORJSONResponse`,
which handles datetimes, UUIDs, dataclasses and Pydantic models.
"""

from typing import Any, Self

import orjson
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel
from starlette import status
from starlette.responses import Response

from src.core.types import JsonValue


class ORJSONResponse(JSONResponse):
    """JSON response serialized with orjson, keys sorted."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - accepts any JSON-serializable content
        """Render the content as JSON using orjson.

        Args:
            content: The content to serialize to JSON.

        Returns:
            bytes: The JSON-encoded bytes.
        """
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json")
        return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)


class ResponseAlreadySentError(RuntimeError):
    """Raised when a response is flushed a second time."""


class ApiResponse:
    """Mutable status, headers and content of the response being built."""

    def __init__(self) -> None:
        self.status_code: int = status.HTTP_200_OK
        self.headers: dict[str, str] = {}
        self.content: JsonValue | BaseModel | None = None
        self._sent = False

    @property
    def is_sent(self) -> bool:
        """Whether :meth:`output` has already run."""
        return self._sent

    def render(
        self,
        content: JsonValue | BaseModel,
        status_code: int = status.HTTP_200_OK,
    ) -> Self:
        """Set JSON content and status.

        Args:
            content: JSON-serializable content or a Pydantic model.
            status_code: HTTP status code.

        Returns:
            Self: The response, for chaining.
        """
        self.content = content
        self.status_code = status_code
        return self

    def redirect(
        self, location: str, status_code: int = status.HTTP_302_FOUND
    ) -> Self:
        """Turn the response into a body-less redirect."""
        self.content = None
        self.status_code = status_code
        self.headers["Location"] = location
        return self

    def set_header(self, name: str, value: str) -> Self:
        """Set a response header, replacing any previous value."""
        self.headers[name] = value
        return self

    def output(self) -> Response:
        """Flush into a Starlette response.

        Returns:
            Response: ``ORJSONResponse`` when there is content, an empty
                response otherwise.

        Raises:
            ResponseAlreadySentError: If the response was already flushed.
        """
        if self._sent:
            msg = "Response already sent"
            raise ResponseAlreadySentError(msg)
        self._sent = True

        logger.debug("Sending response with status {}", self.status_code)
        if self.content is None:
            return Response(status_code=self.status_code, headers=self.headers)
        return ORJSONResponse(
            content=self.content, status_code=self.status_code, headers=self.headers
        )
