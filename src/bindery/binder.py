"""Bind request sources into typed destinations.

Binding runs in a fixed order: path params, query params, then the body. Each
pass may overwrite values written by the previous one, but only for the fields
it resolves. Use the single-source functions to bind one origin in isolation.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from .config import BinderConfig
from .decoders import MIME_APPLICATION_JSON, MIME_APPLICATION_XML, decode_json, decode_xml
from .exceptions import UnsupportedMediaType
from .populate import bind_data
from .requests import MIME_APPLICATION_FORM, MIME_MULTIPART_FORM, Request, parse_form, parse_query

logger = logging.getLogger(__name__)

MIME_TEXT_XML = "text/xml"


class Binder(Protocol):
    def bind(self, request: Request, destination: Any, *, value_type: Any = None) -> None: ...


class DefaultBinder:
    """Default :class:`Binder` implementation."""

    def __init__(self, config: BinderConfig | None = None) -> None:
        self.config = config or BinderConfig()

    def bind_path(self, request: Request, destination: Any, *, value_type: Any = None) -> None:
        """Bind path params into fields tagged ``param``.

        ``value_type`` selects what mapping destinations receive, see
        :func:`~bindery.populate.bind_data`.
        """

        bind_data(destination, request.path_values, "param", value_type=value_type)

    def bind_query(self, request: Request, destination: Any, *, value_type: Any = None) -> None:
        """Bind query params into fields tagged ``query``."""

        query = parse_query(request.raw_query, max_fields=self.config.max_query_params)
        bind_data(destination, query, "query", value_type=value_type)

    def bind_headers(self, request: Request, destination: Any, *, value_type: Any = None) -> None:
        """Bind headers into fields tagged ``header``."""

        bind_data(destination, request.headers, "header", value_type=value_type)

    def bind_body(self, request: Request, destination: Any, *, value_type: Any = None) -> None:
        """Bind the request body according to its content type.

        JSON and XML bodies are decoded and merged, form bodies are bound into
        fields tagged ``form``. An empty body is never an error.
        """

        body = request.read_body(max_bytes=self.config.max_body_bytes)
        if not body:
            logger.debug("empty request body, skipping body pass")
            return
        content_type = request.content_type
        if content_type.startswith(MIME_APPLICATION_JSON):
            decode_json(body, destination, content_type=content_type)
        elif content_type.startswith((MIME_APPLICATION_XML, MIME_TEXT_XML)):
            decode_xml(body, destination, content_type=content_type)
        elif content_type.startswith((MIME_APPLICATION_FORM, MIME_MULTIPART_FORM)):
            form = parse_form(body, content_type, max_fields=self.config.max_form_fields)
            bind_data(destination, form, "form", value_type=value_type)
        else:
            logger.debug("no body decoder for content type %r", content_type)
            raise UnsupportedMediaType(content_type)

    def bind(self, request: Request, destination: Any, *, value_type: Any = None) -> None:
        """Bind path params, query params and the body, in that order."""

        self.bind_path(request, destination, value_type=value_type)
        self.bind_query(request, destination, value_type=value_type)
        self.bind_body(request, destination, value_type=value_type)


_default_binder = DefaultBinder()


def bind_path(request: Request, destination: Any, *, value_type: Any = None) -> None:
    _default_binder.bind_path(request, destination, value_type=value_type)


def bind_query(request: Request, destination: Any, *, value_type: Any = None) -> None:
    _default_binder.bind_query(request, destination, value_type=value_type)


def bind_headers(request: Request, destination: Any, *, value_type: Any = None) -> None:
    _default_binder.bind_headers(request, destination, value_type=value_type)


def bind_body(request: Request, destination: Any, *, value_type: Any = None) -> None:
    _default_binder.bind_body(request, destination, value_type=value_type)


def bind(request: Request, destination: Any, *, value_type: Any = None) -> None:
    """Bind every request source into ``destination`` with the default configuration."""

    _default_binder.bind(request, destination, value_type=value_type)


__all__ = [
    "Binder",
    "DefaultBinder",
    "MIME_TEXT_XML",
    "bind",
    "bind_body",
    "bind_headers",
    "bind_path",
    "bind_query",
]
