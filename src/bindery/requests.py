"""Request primitives."""

from __future__ import annotations

from email.parser import BytesParser
from email.policy import HTTP
from http import HTTPStatus
from typing import BinaryIO, Mapping, MutableMapping, Sequence
from urllib.parse import parse_qsl

from .exceptions import HTTPError, MalformedBody

MIME_APPLICATION_FORM = "application/x-www-form-urlencoded"
MIME_MULTIPART_FORM = "multipart/form-data"

_MAX_QUERY_PARAMS = 1024
_MAX_FORM_FIELDS = 1024

SourceValues = MutableMapping[str, list[str]]


def parse_query(raw: str, *, max_fields: int = _MAX_QUERY_PARAMS) -> SourceValues:
    """Parse a query string into ``{key: [values]}`` keeping blank values."""

    parsed: SourceValues = {}
    try:
        pairs = parse_qsl(raw, keep_blank_values=True, max_num_fields=max_fields)
    except ValueError as exc:
        raise HTTPError(HTTPStatus.BAD_REQUEST, {"detail": "too_many_query_parameters"}) from exc
    for key, value in pairs:
        parsed.setdefault(key, []).append(value)
    return parsed


def _parse_urlencoded(body: bytes, content_type: str, max_fields: int) -> SourceValues:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedBody(content_type, str(exc)) from exc
    parsed: SourceValues = {}
    try:
        pairs = parse_qsl(text, keep_blank_values=True, max_num_fields=max_fields)
    except ValueError as exc:
        raise HTTPError(HTTPStatus.BAD_REQUEST, {"detail": "too_many_form_fields"}) from exc
    for key, value in pairs:
        parsed.setdefault(key, []).append(value)
    return parsed


def _parse_multipart(body: bytes, content_type: str, max_fields: int) -> SourceValues:
    header = f"Content-Type: {content_type}\r\n\r\n".encode("latin-1")
    message = BytesParser(policy=HTTP).parsebytes(header + body)
    if not message.is_multipart():
        raise MalformedBody(content_type, "multipart: boundary not found")
    parsed: SourceValues = {}
    count = 0
    for part in message.iter_parts():
        if part.get_content_disposition() != "form-data":
            continue
        name = part.get_param("name", header="content-disposition")
        if not name or part.get_filename() is not None:
            # file uploads are not form values
            continue
        count += 1
        if count > max_fields:
            raise HTTPError(HTTPStatus.BAD_REQUEST, {"detail": "too_many_form_fields"})
        payload = part.get_payload(decode=True) or b""
        charset = part.get_content_charset() or "utf-8"
        parsed.setdefault(str(name), []).append(payload.decode(charset, errors="replace"))
    return parsed


def parse_form(body: bytes, content_type: str, *, max_fields: int = _MAX_FORM_FIELDS) -> SourceValues:
    """Parse a form body, urlencoded or multipart, into ``{key: [values]}``."""

    if content_type.startswith(MIME_MULTIPART_FORM):
        return _parse_multipart(body, content_type, max_fields)
    return _parse_urlencoded(body, content_type, max_fields)


def _normalize_headers(headers: Mapping[str, str | Sequence[str]] | None) -> dict[str, list[str]]:
    normalized: dict[str, list[str]] = {}
    for name, value in (headers or {}).items():
        values = [value] if isinstance(value, str) else list(value)
        normalized.setdefault(name, []).extend(values)
    return normalized


class Request:
    """Normalized view of the request parts consumed by binders."""

    __slots__ = (
        "_body",
        "_body_stream",
        "_form",
        "_max_query_params",
        "_query_params",
        "_raw_query",
        "headers",
        "path_params",
    )

    def __init__(
        self,
        *,
        headers: Mapping[str, str | Sequence[str]] | None = None,
        path_params: Mapping[str, str] | None = None,
        query_string: str | None = None,
        body: bytes | None = None,
        body_stream: BinaryIO | None = None,
        max_query_params: int = _MAX_QUERY_PARAMS,
    ) -> None:
        if body is not None and body_stream is not None:
            raise ValueError("Request body and body_stream are mutually exclusive")
        self.headers = _normalize_headers(headers)
        self.path_params = dict(path_params or {})
        self._raw_query = query_string or ""
        self._body: bytes | None = body
        self._body_stream = body_stream
        self._form: SourceValues | None = None
        self._max_query_params = max_query_params
        self._query_params: SourceValues | None = None

    @property
    def query_params(self) -> SourceValues:
        if self._query_params is None:
            self._query_params = parse_query(self._raw_query, max_fields=self._max_query_params)
        return self._query_params

    @property
    def path_values(self) -> dict[str, list[str]]:
        return {key: [value] for key, value in self.path_params.items()}

    @property
    def raw_query(self) -> str:
        """Return the raw query string for the request."""

        return self._raw_query

    def header(self, name: str, default: str | None = None) -> str | None:
        """Return the first value of header ``name`` matched case-insensitively."""

        lowered = name.lower()
        for key in sorted(self.headers):
            if key.lower() == lowered and self.headers[key]:
                return self.headers[key][0]
        return default

    @property
    def content_type(self) -> str:
        return self.header("content-type", "") or ""

    def read_body(self, *, max_bytes: int | None = None) -> bytes:
        """Return the request body, reading the stream at most once."""

        if self._body is None:
            declared = self.header("content-length")
            if max_bytes is not None and declared and declared.isdigit() and int(declared) > max_bytes:
                raise HTTPError(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, {"detail": "request_body_too_large"})
            stream = self._body_stream
            if stream is None:
                self._body = b""
            else:
                raw = stream.read() if max_bytes is None else stream.read(max_bytes + 1)
                self._body = bytes(raw or b"")
                self._body_stream = None
        body = self._body
        if max_bytes is not None and len(body) > max_bytes:
            raise HTTPError(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, {"detail": "request_body_too_large"})
        return body

    def form(self, *, max_fields: int = _MAX_FORM_FIELDS, max_bytes: int | None = None) -> SourceValues:
        """Return the form fields carried by the body, or an empty mapping."""

        if self._form is None:
            content_type = self.content_type
            body = self.read_body(max_bytes=max_bytes)
            is_form = content_type.startswith((MIME_APPLICATION_FORM, MIME_MULTIPART_FORM))
            self._form = parse_form(body, content_type, max_fields=max_fields) if body and is_form else {}
        return self._form

    def form_values(self, *, max_fields: int = _MAX_FORM_FIELDS, max_bytes: int | None = None) -> SourceValues:
        """Return body form fields followed by query values for the same key."""

        form = self.form(max_fields=max_fields, max_bytes=max_bytes)
        merged: SourceValues = {key: list(values) for key, values in form.items()}
        for key, values in self.query_params.items():
            merged.setdefault(key, []).extend(values)
        return merged


__all__ = [
    "MIME_APPLICATION_FORM",
    "MIME_MULTIPART_FORM",
    "Request",
    "parse_form",
    "parse_query",
]
