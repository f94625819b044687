"""Field annotations and per-type field descriptor tables."""

from __future__ import annotations

import dataclasses
import inspect
from functools import lru_cache
from typing import Annotated, Any, ClassVar, Mapping, get_origin, get_type_hints

import msgspec
from msgspec import structs

from .typing_utils import split_annotated, unwrap_optional

SOURCE_TAGS = ("param", "query", "header", "json", "xml", "form")


class Tags(msgspec.Struct, frozen=True):
    """Per-source input keys for one destination field.

    Attach with ``Annotated``::

        class Filter(msgspec.Struct):
            id: Annotated[int, Tags(param="id", query="id", json="id")] = 0
    """

    param: str | None = None
    query: str | None = None
    header: str | None = None
    json: str | None = None
    xml: str | None = None
    form: str | None = None
    embedded: bool = False

    def key(self, tag: str) -> str:
        return getattr(self, tag, None) or ""


EMBEDDED = Tags(embedded=True)


class FieldSpec(msgspec.Struct, frozen=True):
    """Descriptor for one field of a destination type."""

    name: str
    annotation: Any
    tags: Tags
    settable: bool

    @property
    def embedded(self) -> bool:
        return self.tags.embedded

    def key(self, tag: str) -> str:
        return self.tags.key(tag)


def _merge_tags(metadata: tuple[Any, ...]) -> Tags | None:
    found: Tags | None = None
    extra: dict[str, Any] = {}
    for item in metadata:
        if isinstance(item, Tags):
            found = item
        elif isinstance(item, msgspec.Meta) and item.extra:
            extra.update({tag: item.extra[tag] for tag in SOURCE_TAGS if tag in item.extra})
    if not extra:
        return found
    base = structs.asdict(found) if found is not None else {}
    return Tags(**{**extra, **{key: value for key, value in base.items() if value}})


def _strip_tags(annotation: Any) -> tuple[Any, Tags]:
    base, metadata = split_annotated(annotation)
    tags = _merge_tags(metadata)
    if tags is None:
        inner, optional = unwrap_optional(base)
        if optional:
            _, inner_metadata = split_annotated(inner)
            tags = _merge_tags(inner_metadata)
    remaining = tuple(item for item in metadata if not isinstance(item, Tags))
    if remaining:
        base = Annotated[(base, *remaining)]
    return base, tags or Tags()


def _is_frozen(cls: type[Any]) -> bool:
    if issubclass(cls, msgspec.Struct):
        return bool(cls.__struct_config__.frozen)
    params = getattr(cls, "__dataclass_params__", None)
    return bool(params is not None and params.frozen)


def is_struct_type(annotation: Any) -> bool:
    """Return ``True`` if ``annotation`` is a type the populator can walk."""

    if get_origin(annotation) is not None or not isinstance(annotation, type):
        return False
    if issubclass(annotation, msgspec.Struct) or dataclasses.is_dataclass(annotation):
        return True
    if annotation.__module__ == "builtins" or issubclass(annotation, Mapping):
        return False
    return any(inspect.get_annotations(klass) for klass in annotation.__mro__[:-1])


@lru_cache(maxsize=None)
def struct_fields(cls: type[Any]) -> tuple[FieldSpec, ...]:
    """Return the field descriptors of ``cls`` in declaration order."""

    hints = get_type_hints(cls, include_extras=True)
    if issubclass(cls, msgspec.Struct):
        names: tuple[str, ...] = cls.__struct_fields__
    elif dataclasses.is_dataclass(cls):
        names = tuple(field.name for field in dataclasses.fields(cls))
    else:
        names = tuple(name for name, hint in hints.items() if get_origin(hint) is not ClassVar)
    frozen = _is_frozen(cls)
    specs: list[FieldSpec] = []
    for name in names:
        annotation, tags = _strip_tags(hints.get(name, Any))
        specs.append(
            FieldSpec(
                name=name,
                annotation=annotation,
                tags=tags,
                settable=not frozen and not name.startswith("_"),
            )
        )
    return tuple(specs)


def field_annotation(cls: type[Any], name: str) -> Any:
    """Return the annotation declared for ``name`` on ``cls``, or ``None``."""

    if not is_struct_type(cls):
        return None
    for spec in struct_fields(cls):
        if spec.name == name:
            return spec.annotation
    return None


__all__ = [
    "EMBEDDED",
    "SOURCE_TAGS",
    "FieldSpec",
    "Tags",
    "field_annotation",
    "is_struct_type",
    "struct_fields",
]
