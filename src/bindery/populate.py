"""Populate destination objects from normalized ``{key: [values]}`` sources."""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping, Sequence

from .exceptions import AnnotationConflict, UnsupportedDestinationShape
from .fields import is_struct_type, struct_fields
from .typing_utils import convert_values, has_hook, sequence_element, unwrap_optional

logger = logging.getLogger(__name__)

SourceMap = Mapping[str, Sequence[str]]

# Sources that only ever carry flat strings; a non-struct destination simply
# means the data is expected in the body.
_FLAT_TAGS = frozenset({"param", "query", "header"})


def lookup(data: SourceMap, key: str) -> Sequence[str] | None:
    """Return the values bound to ``key``, falling back to a case-insensitive match.

    Case variants are scanned in lexicographic key order so the first match is
    deterministic.
    """

    values = data.get(key)
    if values:
        return values
    if values is not None:
        return None
    folded = key.casefold()
    for candidate in sorted(data):
        if candidate.casefold() == folded:
            return data[candidate] or None
    return None


def _map_writer(value_type: Any) -> Any:
    if value_type is None or value_type is Any or value_type is object:
        return list
    if value_type is str:
        return lambda values: values[0]
    sequence = sequence_element(value_type)
    if sequence is not None and sequence[1] is str:
        return list
    return None


def _bind_mapping(destination: MutableMapping[str, Any], data: SourceMap, value_type: Any) -> None:
    writer = _map_writer(value_type)
    if writer is None:
        logger.debug("ignoring mapping destination with element type %r", value_type)
        return
    for key, values in data.items():
        if values:
            destination[key] = writer(values)


def bind_data(destination: Any, data: SourceMap, tag: str, *, value_type: Any = None) -> None:
    """Bind ``data`` into ``destination`` using the ``tag`` key of each field.

    Only fields carrying an explicit key for ``tag`` are written. Mapping
    destinations receive every entry; ``value_type`` selects whether the first
    value (``str``), the full list (``list[str]``), or the raw list (``Any``) is
    stored.
    """

    if destination is None or not data:
        return
    if isinstance(destination, MutableMapping):
        _bind_mapping(destination, data, value_type)
        return
    if not is_struct_type(type(destination)):
        if tag in _FLAT_TAGS:
            logger.debug("skipping %s pass for non-struct destination %s", tag, type(destination).__name__)
            return
        raise UnsupportedDestinationShape(type(destination), tag)
    _bind_struct(destination, data, tag)


def _bind_struct(destination: Any, data: SourceMap, tag: str) -> None:
    for spec in struct_fields(type(destination)):
        if not spec.settable:
            continue
        key = spec.key(tag)
        if spec.embedded and key:
            raise AnnotationConflict(spec.name, tag)
        if not key:
            # untagged structs may still hold tagged fields
            inner, _ = unwrap_optional(spec.annotation)
            if is_struct_type(inner) and not has_hook(inner):
                bind_data(getattr(destination, spec.name, None), data, tag)
            continue
        values = lookup(data, key)
        if values is None:
            continue
        current = getattr(destination, spec.name, None)
        value = convert_values(values, spec.annotation, source=f"{tag}:{key}", current=current)
        setattr(destination, spec.name, value)


__all__ = ["SourceMap", "bind_data", "lookup"]
