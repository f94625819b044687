"""Structured body decoders.

Both decoders merge into an existing destination instead of building a new
one, so fields the body does not mention keep the values earlier passes wrote.
When a field has no ``json``/``xml`` key its attribute name is used.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping

import lxml.etree as LET
import msgspec

from .exceptions import MalformedBody
from .fields import FieldSpec, is_struct_type, struct_fields
from .typing_utils import (
    Kind,
    TextUnmarshaler,
    convert_primitive,
    fit_kind,
    has_hook,
    kind_of,
    plain_type,
    sequence_element,
    unwrap_optional,
)

logger = logging.getLogger(__name__)

MIME_APPLICATION_JSON = "application/json"
MIME_APPLICATION_XML = "application/xml"

_SKIP = "-"


def _unsupported(content_type: str, destination: Any) -> MalformedBody:
    return MalformedBody(content_type, f"unsupported type error: type={type(destination).__name__}")


# JSON


def decode_json(body: bytes, destination: Any, *, content_type: str = MIME_APPLICATION_JSON) -> None:
    """Decode a JSON ``body`` and merge it into ``destination``."""

    try:
        payload = msgspec.json.decode(body)
    except msgspec.DecodeError as exc:
        raise MalformedBody(content_type, str(exc)) from exc
    _merge_json(destination, payload, content_type)


def _match_key(payload: Mapping[str, Any], key: str) -> str | None:
    if key in payload:
        return key
    folded = key.casefold()
    for candidate in sorted(payload):
        if candidate.casefold() == folded:
            return candidate
    return None


def _merge_json(destination: Any, payload: Any, content_type: str) -> None:
    if isinstance(destination, MutableMapping):
        if not isinstance(payload, dict):
            raise MalformedBody(content_type, f"cannot unmarshal {type(payload).__name__} into mapping")
        destination.update(payload)
        return
    if isinstance(destination, list):
        if not isinstance(payload, list):
            raise MalformedBody(content_type, f"cannot unmarshal {type(payload).__name__} into list")
        destination[:] = payload
        return
    if not is_struct_type(type(destination)):
        raise _unsupported(content_type, destination)
    if not isinstance(payload, dict):
        raise MalformedBody(
            content_type,
            f"cannot unmarshal {type(payload).__name__} into {type(destination).__name__}",
        )
    for spec in struct_fields(type(destination)):
        if not spec.settable:
            continue
        if spec.embedded and not spec.key("json"):
            nested = getattr(destination, spec.name, None)
            if nested is not None:
                _merge_json(nested, payload, content_type)
            continue
        key = spec.key("json") or spec.name
        if key == _SKIP:
            continue
        matched = _match_key(payload, key)
        if matched is None:
            continue
        value = payload[matched]
        current = getattr(destination, spec.name, None)
        inner, optional = unwrap_optional(spec.annotation)
        if value is None and not optional:
            continue
        if (
            isinstance(value, dict)
            and current is not None
            and is_struct_type(inner)
            and not has_hook(inner)
        ):
            _merge_json(current, value, content_type)
            continue
        setattr(destination, spec.name, _convert_json(value, spec, content_type))


def _convert_json(value: Any, spec: FieldSpec, content_type: str) -> Any:
    return _json_value(value, spec.annotation, spec.name, content_type)


def _json_value(value: Any, annotation: Any, name: str, content_type: str) -> Any:
    inner, optional = unwrap_optional(annotation)
    if value is None and optional:
        return None
    base = plain_type(inner)
    if isinstance(value, str) and base is not None and issubclass(base, TextUnmarshaler):
        return convert_primitive(value, inner, source=f"json:{name}")
    if not has_hook(inner):
        if isinstance(value, dict) and is_struct_type(inner):
            return _build_json(inner, value, content_type)
        sequence = sequence_element(inner)
        if sequence is not None and isinstance(value, list):
            container, element = sequence
            return container([_json_value(item, element, name, content_type) for item in value])
    try:
        converted = msgspec.convert(value, type=annotation)
    except msgspec.ValidationError as exc:
        raise MalformedBody(content_type, f"{exc} (field {name!r})") from exc
    kind = kind_of(inner)
    if kind is not None and converted is not None:
        converted = fit_kind(kind, converted, value=str(value), source=f"json:{name}")
    return converted


def _build_json(cls: type[Any], payload: dict[str, Any], content_type: str) -> Any:
    # types without settable fields or a no-argument constructor go through msgspec
    if any(spec.settable for spec in struct_fields(cls)):
        try:
            instance = cls()
        except TypeError as exc:
            logger.debug("building %s without its constructor: %s", cls.__name__, exc)
        else:
            _merge_json(instance, payload, content_type)
            return instance
    try:
        return msgspec.convert(payload, type=cls)
    except (msgspec.ValidationError, TypeError) as exc:
        raise MalformedBody(content_type, f"{exc} (type {cls.__name__!r})") from exc


# XML


def _xml_parser() -> LET.XMLParser:
    return LET.XMLParser(resolve_entities=False, no_network=True)


def decode_xml(body: bytes, destination: Any, *, content_type: str = MIME_APPLICATION_XML) -> None:
    """Parse an XML ``body`` and merge the root element into ``destination``."""

    try:
        root = LET.fromstring(body, _xml_parser())
    except LET.XMLSyntaxError as exc:
        raise MalformedBody(
            content_type,
            f"syntax error: line={exc.lineno}, error={exc.msg}",
            line=exc.lineno,
        ) from exc
    if not is_struct_type(type(destination)):
        raise _unsupported(content_type, destination)
    _merge_xml(destination, root, content_type)


def _local_name(element: Any) -> str | None:
    if not isinstance(element.tag, str):
        return None
    return LET.QName(element).localname


def _xml_key(spec: FieldSpec) -> tuple[str, str]:
    raw = spec.key("xml")
    if raw == _SKIP:
        return "", "skip"
    name, _, options = raw.partition(",")
    name = name or spec.name
    if options == "attr":
        return name, "attr"
    if options == "chardata":
        return name, "chardata"
    return name, "element"


def _text_for(annotation: Any, text: str) -> str:
    inner, _ = unwrap_optional(annotation)
    kind = kind_of(inner)
    if kind is None or kind is Kind.STRING:
        return text
    return text.strip()


def _merge_xml(destination: Any, element: Any, content_type: str) -> None:
    for spec in struct_fields(type(destination)):
        if not spec.settable:
            continue
        current = getattr(destination, spec.name, None)
        value = _read_xml_field(spec, element, current, content_type)
        if value is not msgspec.UNSET:
            setattr(destination, spec.name, value)


def _read_xml_field(spec: FieldSpec, element: Any, current: Any, content_type: str) -> Any:
    inner, _ = unwrap_optional(spec.annotation)
    if spec.embedded:
        if current is not None:
            _merge_xml(current, element, content_type)
            return msgspec.UNSET
        return _instantiate(inner, element, content_type)
    name, mode = _xml_key(spec)
    source = f"xml:{name}"
    if mode == "skip":
        return msgspec.UNSET
    if mode == "attr":
        raw = element.get(name)
        if raw is None:
            return msgspec.UNSET
        return convert_primitive(_text_for(spec.annotation, raw), spec.annotation, source=source)
    if mode == "chardata":
        return convert_primitive(_text_for(spec.annotation, element.text or ""), spec.annotation, source=source)
    matches = [child for child in element if _local_name(child) == name]
    if not matches:
        return msgspec.UNSET
    sequence = sequence_element(inner)
    if sequence is not None and not has_hook(inner):
        container, item_type = sequence
        return container([_element_value(item_type, child, None, content_type, source) for child in matches])
    return _element_value(spec.annotation, matches[-1], current, content_type, source)


def _element_value(annotation: Any, element: Any, current: Any, content_type: str, source: str) -> Any:
    inner, _ = unwrap_optional(annotation)
    if is_struct_type(inner) and not has_hook(inner):
        if current is not None and isinstance(current, inner):
            _merge_xml(current, element, content_type)
            return current
        return _instantiate(inner, element, content_type)
    text = "".join(element.itertext())
    return convert_primitive(_text_for(annotation, text), annotation, source=source)


def _instantiate(cls: type[Any], element: Any, content_type: str) -> Any:
    values: dict[str, Any] = {}
    for spec in struct_fields(cls):
        if not spec.settable:
            continue
        value = _read_xml_field(spec, element, None, content_type)
        if value is not msgspec.UNSET:
            values[spec.name] = value
    try:
        return cls(**values)
    except TypeError as exc:
        raise MalformedBody(content_type, f"cannot build {cls.__name__}: {exc}") from exc


__all__ = ["MIME_APPLICATION_JSON", "MIME_APPLICATION_XML", "decode_json", "decode_xml"]
