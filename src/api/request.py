"""Immutable view of the HTTP request handed to controllers."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl

import orjson
from starlette.requests import Request

from src.api.constants import (
    FORM_URLENCODED_CONTENT_TYPE,
    JSON_CONTENT_TYPES,
    REQUEST_BODY_METHODS,
)
from src.core.exceptions import BadRequestError


def _content_type(headers: Mapping[str, str]) -> str:
    return headers.get("content-type", "").split(";", 1)[0].strip().lower()


def parse_body(method: str, headers: Mapping[str, str], body: bytes) -> dict[str, Any]:
    """Decode a request body into named parameters.

    JSON objects and url-encoded forms are understood; any other payload
    yields no parameters.

    Args:
        method: HTTP method of the request.
        headers: Lower-cased request headers.
        body: Raw request body.

    Returns:
        dict[str, Any]: Body parameters.

    Raises:
        BadRequestError: If a JSON body is malformed or not an object, or a
            form body is not UTF-8.
    """
    if method not in REQUEST_BODY_METHODS or not body:
        return {}

    content_type = _content_type(headers)
    if content_type in JSON_CONTENT_TYPES:
        try:
            payload = orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise BadRequestError(["Request body is not valid JSON."]) from e
        if not isinstance(payload, dict):
            raise BadRequestError(["Request body must be a JSON object."])
        return payload

    if content_type == FORM_URLENCODED_CONTENT_TYPE:
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise BadRequestError(["Request body is not valid UTF-8."]) from e
        return dict(parse_qsl(text, keep_blank_values=True))

    return {}


@dataclass(frozen=True, slots=True)
class ApiRequest:
    """What a controller may read from the current HTTP request.

    Parameters are looked up by name across path, query and body, in that
    order. Path parameters only exist once the dispatcher has matched a
    route; it attaches them through :meth:`with_path_params`.
    """

    method: str
    path: str
    uri: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    body: Mapping[str, Any] = field(default_factory=dict)
    path_params: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_http(cls, request: Request, body: bytes = b"") -> ApiRequest:
        """Build the view from a Starlette request and its already read body.

        Args:
            request: The incoming Starlette request.
            body: The raw body (read by the endpoint before bootstrapping).

        Returns:
            ApiRequest: The request view.
        """
        headers = {key.lower(): value for key, value in request.headers.items()}
        method = request.method.upper()
        path = request.url.path
        query_string = request.url.query
        return cls(
            method=method,
            path=path,
            uri=f"{path}?{query_string}" if query_string else path,
            headers=headers,
            query=dict(request.query_params),
            body=parse_body(method, headers, body),
        )

    def get(self, name: str, default: Any = None) -> Any:  # noqa: ANN401
        """Look a parameter up in path, query and body parameters.

        Args:
            name: Parameter name.
            default: Returned when the parameter is absent everywhere.

        Returns:
            Any: The first value found.
        """
        for source in (self.path_params, self.query, self.body):
            if name in source:
                return source[name]
        return default

    def header(self, name: str, default: str | None = None) -> str | None:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def with_path_params(self, path_params: Mapping[str, Any]) -> ApiRequest:
        """Return a copy carrying the matched route's path parameters."""
        return dataclasses.replace(self, path_params=dict(path_params))
