"""Shared conversion helpers.

Every raw request value is a string. The helpers here turn one string (or the
ordered list of strings bound to one key) into the Python value a destination
field declares, dispatching to caller hooks first and falling back to the
fixed set of scalar kinds.

Hook priority is fixed: ``unmarshal_params`` (whole value list), then
``unmarshal_param`` (first value), then ``unmarshal_text`` (first value as
bytes), then kind-based conversion.
"""

from __future__ import annotations

import math
import re
import struct
import types
from collections.abc import MutableSequence, Sequence
from enum import Enum
from typing import Annotated, Any, Protocol, Union, get_args, get_origin, runtime_checkable

import msgspec

from .exceptions import ConversionFailure, UnknownFieldKind


class Kind(str, Enum):
    BOOL = "bool"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    INT = "int"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT = "uint"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    STRING = "string"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


Int8 = Annotated[int, Kind.INT8]
Int16 = Annotated[int, Kind.INT16]
Int32 = Annotated[int, Kind.INT32]
Int64 = Annotated[int, Kind.INT64]
Uint = Annotated[int, Kind.UINT]
Uint8 = Annotated[int, Kind.UINT8]
Uint16 = Annotated[int, Kind.UINT16]
Uint32 = Annotated[int, Kind.UINT32]
Uint64 = Annotated[int, Kind.UINT64]
Float32 = Annotated[float, Kind.FLOAT32]
Float64 = Annotated[float, Kind.FLOAT64]

_SIGNED_BITS = {Kind.INT: 64, Kind.INT8: 8, Kind.INT16: 16, Kind.INT32: 32, Kind.INT64: 64}
_UNSIGNED_BITS = {Kind.UINT: 64, Kind.UINT8: 8, Kind.UINT16: 16, Kind.UINT32: 32, Kind.UINT64: 64}

_ZERO_LITERALS = {
    Kind.BOOL: "false",
    Kind.FLOAT32: "0.0",
    Kind.FLOAT64: "0.0",
    **{kind: "0" for kind in (*_SIGNED_BITS, *_UNSIGNED_BITS)},
}

_BOOL_LITERALS = {
    "1": True,
    "t": True,
    "T": True,
    "TRUE": True,
    "true": True,
    "True": True,
    "0": False,
    "f": False,
    "F": False,
    "FALSE": False,
    "false": False,
    "False": False,
}

_SIGNED_PATTERN = re.compile(r"[+-]?[0-9]+")
_UNSIGNED_PATTERN = re.compile(r"[0-9]+")
_FLOAT_PATTERN = re.compile(
    r"[+-]?(?:(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)

_SEQUENCE_CONTAINERS: dict[Any, type[Any]] = {
    list: list,
    tuple: tuple,
    Sequence: list,
    MutableSequence: list,
}


@runtime_checkable
class ParamUnmarshaler(Protocol):
    """Decode one raw request value into ``self``."""

    def unmarshal_param(self, param: str) -> None: ...


@runtime_checkable
class ParamsUnmarshaler(Protocol):
    """Decode every raw value bound to a key into ``self``."""

    def unmarshal_params(self, params: list[str]) -> None: ...


@runtime_checkable
class TextUnmarshaler(Protocol):
    """Generic text decoding hook."""

    def unmarshal_text(self, data: bytes) -> None: ...


def split_annotated(annotation: Any) -> tuple[Any, tuple[Any, ...]]:
    """Return the base type and metadata of an ``Annotated`` form."""

    if get_origin(annotation) is Annotated:
        return annotation.__origin__, tuple(annotation.__metadata__)
    return annotation, ()


def unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Strip one ``| None`` level from ``annotation``."""

    base, _ = split_annotated(annotation)
    origin = get_origin(base)
    if origin is Union or origin is types.UnionType:
        options = get_args(base)
        remaining = [option for option in options if option is not type(None)]
        if len(remaining) == 1 and len(remaining) != len(options):
            return remaining[0], True
    return annotation, False


def plain_type(annotation: Any) -> type[Any] | None:
    base, _ = split_annotated(annotation)
    if get_origin(base) is None and isinstance(base, type):
        return base
    return None


def kind_of(annotation: Any) -> Kind | None:
    """Return the scalar kind declared by ``annotation``."""

    base, metadata = split_annotated(annotation)
    for item in metadata:
        if isinstance(item, Kind):
            return item
    if base is bool:
        return Kind.BOOL
    if base is int:
        return Kind.INT
    if base is float:
        return Kind.FLOAT64
    if base is str:
        return Kind.STRING
    return None


def sequence_element(annotation: Any) -> tuple[type[Any], Any] | None:
    """Return ``(container, element)`` when ``annotation`` is a homogeneous sequence."""

    base, _ = split_annotated(annotation)
    container = _SEQUENCE_CONTAINERS.get(get_origin(base))
    args = get_args(base)
    if container is None or not args:
        return None
    if container is tuple and (len(args) != 2 or args[1] is not Ellipsis):
        return None
    return container, args[0]


def has_hook(annotation: Any) -> bool:
    """Return ``True`` if the type implements any decoding hook."""

    base = plain_type(annotation)
    if base is None:
        return False
    return any(issubclass(base, hook) for hook in (ParamsUnmarshaler, ParamUnmarshaler, TextUnmarshaler))


def _run_hook(base: type[Any], method: str, argument: Any, raw: str, *, source: str, current: Any = None) -> Any:
    try:
        target = current if isinstance(current, base) else base()
        getattr(target, method)(argument)
    except (TypeError, ValueError) as exc:
        raise ConversionFailure(base.__name__, raw, source=source) from exc
    return target


def unmarshal_multiple(annotation: Any, values: Sequence[str], *, source: str, current: Any = None) -> Any:
    """Dispatch ``values`` to a multi-value hook, or return ``msgspec.UNSET``.

    The hook runs on ``current`` when it is an instance of the hook type,
    otherwise on a new instance.
    """

    inner, _ = unwrap_optional(annotation)
    base = plain_type(inner)
    if base is None or not issubclass(base, ParamsUnmarshaler):
        return msgspec.UNSET
    return _run_hook(base, "unmarshal_params", list(values), ",".join(values), source=source, current=current)


def unmarshal_single(annotation: Any, value: str, *, source: str, current: Any = None) -> Any:
    """Dispatch ``value`` to a single-value or text hook, or return ``msgspec.UNSET``."""

    inner, _ = unwrap_optional(annotation)
    base = plain_type(inner)
    if base is None:
        return msgspec.UNSET
    if issubclass(base, ParamUnmarshaler):
        return _run_hook(base, "unmarshal_param", value, value, source=source, current=current)
    if issubclass(base, TextUnmarshaler):
        return _run_hook(base, "unmarshal_text", value.encode(), value, source=source, current=current)
    return msgspec.UNSET


def fit_kind(kind: Kind, number: Any, *, value: str, source: str) -> Any:
    """Range-check ``number`` against the bit width of ``kind``."""

    if kind is Kind.FLOAT32:
        try:
            return struct.unpack("<f", struct.pack("<f", number))[0]
        except OverflowError as exc:
            raise ConversionFailure(kind.value, value, source=source) from exc
    if kind in _SIGNED_BITS:
        bits = _SIGNED_BITS[kind]
        low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    elif kind in _UNSIGNED_BITS:
        low, high = 0, (1 << _UNSIGNED_BITS[kind]) - 1
    else:
        return number
    if not low <= number <= high:
        raise ConversionFailure(kind.value, value, source=source)
    return number


def parse_kind(kind: Kind, value: str, *, source: str) -> Any:
    """Parse ``value`` as ``kind``; an empty string yields the kind's zero value."""

    if kind is Kind.STRING:
        return value
    raw = value or _ZERO_LITERALS[kind]
    if kind is Kind.BOOL:
        literal = _BOOL_LITERALS.get(raw)
        if literal is None:
            raise ConversionFailure(kind.value, value, source=source)
        return literal
    if kind in (Kind.FLOAT32, Kind.FLOAT64):
        if _FLOAT_PATTERN.fullmatch(raw) is None:
            raise ConversionFailure(kind.value, value, source=source)
        number = float(raw)
        if math.isinf(number) and "inf" not in raw.lower():
            raise ConversionFailure(kind.value, value, source=source)
        return fit_kind(kind, number, value=value, source=source)
    pattern = _SIGNED_PATTERN if kind in _SIGNED_BITS else _UNSIGNED_PATTERN
    if pattern.fullmatch(raw) is None:
        raise ConversionFailure(kind.value, value, source=source)
    return fit_kind(kind, int(raw), value=value, source=source)


def convert_primitive(value: str, annotation: Any, *, source: str) -> Any:
    """Convert a string ``value`` into ``annotation`` raising :class:`BindingError` on failure."""

    inner, _ = unwrap_optional(annotation)
    hooked = unmarshal_single(inner, value, source=source)
    if hooked is not msgspec.UNSET:
        return hooked
    kind = kind_of(inner)
    if kind is None:
        raise UnknownFieldKind(source, annotation)
    return parse_kind(kind, value, source=source)


def convert_values(values: Sequence[str], annotation: Any, *, source: str, current: Any = None) -> Any:
    """Convert every raw value bound to one key into ``annotation``.

    Sequence annotations receive one element per raw value; scalar annotations
    only see the first value. Hooks run on ``current``, the value the field
    already holds, when it has the hook type.
    """

    inner, _ = unwrap_optional(annotation)
    hooked = unmarshal_multiple(inner, values, source=source, current=current)
    if hooked is not msgspec.UNSET:
        return hooked
    hooked = unmarshal_single(inner, values[0], source=source, current=current)
    if hooked is not msgspec.UNSET:
        return hooked
    sequence = sequence_element(inner)
    if sequence is not None:
        container, element = sequence
        return container([convert_primitive(value, element, source=source) for value in values])
    return convert_primitive(values[0], inner, source=source)


__all__ = [
    "Float32",
    "Float64",
    "Int16",
    "Int32",
    "Int64",
    "Int8",
    "Kind",
    "ParamUnmarshaler",
    "ParamsUnmarshaler",
    "TextUnmarshaler",
    "Uint",
    "Uint16",
    "Uint32",
    "Uint64",
    "Uint8",
    "convert_primitive",
    "convert_values",
    "fit_kind",
    "has_hook",
    "kind_of",
    "parse_kind",
    "plain_type",
    "sequence_element",
    "split_annotated",
    "unmarshal_multiple",
    "unmarshal_single",
    "unwrap_optional",
]
