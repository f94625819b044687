"""Binding exception types."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Sequence

import msgspec


class BinderyError(Exception):
    """Base error type."""


class HTTPError(BinderyError):
    """Structured HTTP error that is msgspec serializable."""

    def __init__(self, status: int, detail: Any) -> None:
        code = HTTPStatus(status)
        super().__init__(int(code), detail)
        self.status = int(code)
        self.detail = detail
        self.reason = code.phrase

    def to_response_body(self) -> bytes:
        return msgspec.json.encode({"error": {"status": self.status, "reason": self.reason, "detail": self.detail}})


class BindingError(HTTPError):
    """Raised when request data cannot be bound into a destination.

    ``detail`` is a mapping whose ``"detail"`` entry is a stable snake_case code
    followed by the context describing the failure.
    """

    status_code: HTTPStatus = HTTPStatus.BAD_REQUEST
    code = "binding_error"

    def __init__(self, **context: Any) -> None:
        super().__init__(self.status_code, {"detail": self.code, **context})


class UnsupportedMediaType(BindingError):
    status_code = HTTPStatus.UNSUPPORTED_MEDIA_TYPE
    code = "unsupported_media_type"

    def __init__(self, content_type: str) -> None:
        super().__init__(content_type=content_type)
        self.content_type = content_type


class MalformedBody(BindingError):
    """Wraps a structured decoder failure."""

    code = "malformed_body"

    def __init__(self, content_type: str, error: str, *, line: int | None = None) -> None:
        context: dict[str, Any] = {"content_type": content_type, "error": error}
        if line is not None:
            context["line"] = line
        super().__init__(**context)
        self.content_type = content_type
        self.error = error
        self.line = line


class AnnotationConflict(BindingError):
    """An embedded field carries a key for the active source tag."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    code = "annotation_conflict"

    def __init__(self, field: str, tag: str) -> None:
        super().__init__(field=field, tag=tag)
        self.field = field
        self.tag = tag


class UnsupportedDestinationShape(BindingError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    code = "unsupported_destination_shape"

    def __init__(self, destination: type[Any], tag: str) -> None:
        super().__init__(destination=destination.__name__, tag=tag)
        self.destination = destination
        self.tag = tag


class UnknownFieldKind(BindingError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    code = "unknown_field_kind"

    def __init__(self, source: str, annotation: Any) -> None:
        super().__init__(source=source, annotation=repr(annotation))
        self.source = source
        self.annotation = annotation


class ConversionFailure(BindingError):
    """A raw value could not be converted into the expected kind."""

    code = "conversion_failure"

    def __init__(self, kind: str, value: str, *, source: str) -> None:
        super().__init__(source=source, expected=kind, value=value)
        self.kind = kind
        self.value = value
        self.source = source


class MissingRequiredValue(BindingError):
    code = "missing_required_value"

    def __init__(self, field: str) -> None:
        super().__init__(field=field)
        self.field = field


class DelimiterArityMismatch(BindingError):
    code = "delimiter_arity_mismatch"

    def __init__(self, field: str, delimiter: str, values: Sequence[str]) -> None:
        super().__init__(field=field, delimiter=delimiter, values=list(values))
        self.field = field
        self.delimiter = delimiter
        self.values = list(values)


__all__ = [
    "AnnotationConflict",
    "BinderyError",
    "BindingError",
    "ConversionFailure",
    "DelimiterArityMismatch",
    "HTTPError",
    "MalformedBody",
    "MissingRequiredValue",
    "UnknownFieldKind",
    "UnsupportedDestinationShape",
    "UnsupportedMediaType",
]
