"""Base class of every API controller.

A controller serves the actions a route unit maps to it. It receives its
collaborators explicitly (request, response, configuration and environment)
and exposes its actions through an explicit dispatch table, :meth:`actions`.

Actions end in one of two ways: they fill the response and return, or they
call one of the ``respond_to_*`` shortcuts, which raise a request-terminal
error. The bootstrap renders that error into the response, so nothing after
the call runs.

Example:
    >>> class OrdersController(Controller):
    ...     sort_map = {"list": {"-createdAt": [("created_at", "DESC")]}}
    ...
    ...     def actions(self):
    ...         return {"list": self.list_orders}
    ...
    ...     async def list_orders(self) -> None:
    ...         self.validate_sorting("list").validate_pagination()
    ...         self.response.render({"orders": []})
"""

from __future__ import annotations

import inspect
import re
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar, Final, NoReturn, Self

from src.api.constants import PAGE_NOT_FOUND_MESSAGE
from src.api.request import ApiRequest
from src.api.response import ApiResponse
from src.core.config import Settings
from src.core.constants import DEFAULT_MAX_LIMIT, INT64_MAX, INT64_MIN
from src.core.environment import ServerEnvironment
from src.core.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
)
from src.core.registry import ServiceKey, ServiceRegistry
from src.core.types import SortColumns, SortMap

type Action = Callable[[], Awaitable[None] | None]

INVALID_SORT_MESSAGE: Final[str] = "Invalid `sort` parameter - unsupported value."
INVALID_LIMIT_MESSAGE: Final[str] = "Invalid `limit` parameter - unsupported value."
INVALID_OFFSET_MESSAGE: Final[str] = "Invalid `offset` parameter - unsupported value."
INTEGER_RANGE_INFO: Final[str] = (
    f"It must be 64-bit integer between {INT64_MIN} and {INT64_MAX}"
)

_DECIMAL_INTEGER = re.compile(r"[+-]?(0|[1-9][0-9]*)")


def parse_integer(
    value: object, min_value: int = INT64_MIN, max_value: int = INT64_MAX
) -> int | None:
    """Strictly parse a request value as a decimal integer.

    Strings may carry surrounding whitespace and one sign but no leading
    zeros. Integral floats are accepted, booleans never are.

    Args:
        value: Raw parameter value.
        min_value: Smallest accepted value.
        max_value: Largest accepted value.

    Returns:
        int | None: The integer, or None when the value is not one or is
            out of range.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        number = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if not _DECIMAL_INTEGER.fullmatch(text):
            return None
        number = int(text)
    else:
        return None

    if not min_value <= number <= max_value:
        return None
    return number


class Controller:
    """Base controller with action dispatch and request validation helpers.

    Attributes:
        max_limit: Largest accepted ``limit`` parameter.
        sort_map: Per-subset mapping of accepted ``sort`` values to the
            (column, direction) pairs they expand to.
    """

    max_limit: ClassVar[int] = DEFAULT_MAX_LIMIT
    sort_map: ClassVar[SortMap] = {}

    def __init__(
        self,
        *,
        request: ApiRequest,
        response: ApiResponse,
        config: Settings,
        environment: ServerEnvironment,
    ) -> None:
        self.request = request
        self.response = response
        self.config = config
        self.environment = environment

    @classmethod
    def from_registry(cls, registry: ServiceRegistry) -> Self:
        """Build the controller from the request's registry."""
        return cls(
            request=registry.get(ServiceKey.REQUEST),
            response=registry.get(ServiceKey.RESPONSE),
            config=registry.get(ServiceKey.CONFIG),
            environment=registry.get(ServiceKey.ENVIRONMENT),
        )

    def actions(self) -> dict[str, Action]:
        """Action names mapped to the methods serving them."""
        return {}

    async def remap(self, action_name: str) -> None:
        """Run an action by name.

        Args:
            action_name: Key in :meth:`actions`.

        Raises:
            NotFoundError: If the controller has no such action.
        """
        action = self.actions().get(action_name)
        if action is None:
            self.respond_to_not_found(PAGE_NOT_FOUND_MESSAGE)

        result = action()
        if inspect.isawaitable(result):
            await result

    def respond_to_bad_request(self, errors: list[str] | None = None) -> NoReturn:
        """Halt the action with a 400 response listing ``errors``."""
        raise BadRequestError(errors)

    def respond_to_unauthorized(self, message: str) -> NoReturn:
        """Halt the action with a 401 response."""
        raise UnauthorizedError(message)

    def respond_to_not_found(self, message: str) -> NoReturn:
        """Halt the action with a 404 response."""
        raise NotFoundError(message)

    def respond_to_conflict(self, errors: list[str] | None = None) -> NoReturn:
        """Halt the action with a 409 response listing ``errors``."""
        raise ConflictError(errors)

    def validate_sorting(self, subset: str) -> Self:
        """Check the ``sort`` parameter against a subset of the sort map.

        The subset itself must exist in :attr:`sort_map`; a missing ``sort``
        parameter is accepted.

        Args:
            subset: Sort map entry, usually the action name.

        Returns:
            Self: The controller, for chaining.

        Raises:
            BadRequestError: If the subset or the requested sort is unknown.
        """
        options = self.sort_map.get(subset)
        if options is None:
            self.respond_to_bad_request([INVALID_SORT_MESSAGE])

        sort = self.request.get("sort")
        if sort is not None and (not isinstance(sort, str) or sort not in options):
            self.respond_to_bad_request([INVALID_SORT_MESSAGE])
        return self

    def sort_columns(self, subset: str) -> SortColumns:
        """The (column, direction) pairs of the requested sort.

        Call :meth:`validate_sorting` first. Returns an empty list when no
        sort was requested.
        """
        sort = self.request.get("sort")
        if sort is None:
            return []
        return list(self.sort_map[subset][sort])

    def validate_pagination(self) -> Self:
        """Check the optional ``limit`` and ``offset`` parameters.

        ``limit`` must be an integer between 1 and :attr:`max_limit`,
        ``offset`` a non-negative integer.

        Returns:
            Self: The controller, for chaining.

        Raises:
            BadRequestError: If either parameter is invalid.
        """
        limit = self.request.get("limit")
        if limit is not None and parse_integer(limit, 1, self.max_limit) is None:
            self.respond_to_bad_request([INVALID_LIMIT_MESSAGE])

        offset = self.request.get("offset")
        if offset is not None and parse_integer(offset, 0) is None:
            self.respond_to_bad_request([INVALID_OFFSET_MESSAGE])
        return self

    def get_integer_parameter(self, name: str) -> int:
        """Read a required 64-bit integer parameter.

        Args:
            name: Parameter name (path, query or body).

        Returns:
            int: The parsed value.

        Raises:
            BadRequestError: If the parameter is missing or not an integer.
        """
        value: Any = self.request.get(name)
        if value is None:
            self.respond_to_bad_request(
                [f"`{name}` is required but missing. {INTEGER_RANGE_INFO}"]
            )

        number = parse_integer(value)
        if number is None:
            self.respond_to_bad_request(
                [f"Invalid `{name}` value. {INTEGER_RANGE_INFO}"]
            )
        return number
