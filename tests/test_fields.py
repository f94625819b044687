from __future__ import annotations

import dataclasses
from typing import Annotated, ClassVar, Optional

import msgspec

from bindery.fields import EMBEDDED, Tags, field_annotation, is_struct_type, struct_fields
from bindery.typing_utils import Int8, Kind, kind_of


class Page(msgspec.Struct):
    number: Annotated[int, Tags(query="page")] = 0


class Listing(msgspec.Struct):
    page: Annotated[Page, EMBEDDED] = msgspec.field(default_factory=Page)
    limit: Annotated[Int8, Tags(query="limit", json="limit")] = 10
    cursor: Annotated[str, msgspec.Meta(extra={"query": "after", "header": "X-Cursor"})] = ""
    search: Annotated[Optional[str], Tags(query="q")] = None
    sort: Optional[Annotated[str, Tags(query="sort")]] = None


class Frozen(msgspec.Struct, frozen=True):
    name: Annotated[str, Tags(query="name")] = ""


@dataclasses.dataclass
class Plain:
    name: Annotated[str, Tags(form="name")] = ""
    _secret: Annotated[str, Tags(form="secret")] = ""
    registry: ClassVar[dict[str, str]] = {}


class Labelled:
    label: Annotated[str, Tags(header="X-Label")] = ""
    count: ClassVar[int] = 0


def test_struct_fields_declaration_order_and_tags() -> None:
    specs = struct_fields(Listing)
    assert [spec.name for spec in specs] == ["page", "limit", "cursor", "search", "sort"]
    page, limit, cursor, search, sort = specs
    assert page.embedded
    assert page.key("query") == ""
    assert limit.key("query") == "limit"
    assert limit.key("form") == ""
    assert kind_of(limit.annotation) is Kind.INT8
    assert cursor.key("query") == "after"
    assert cursor.key("header") == "X-Cursor"
    assert search.key("query") == "q"
    assert sort.key("query") == "sort"
    assert limit.settable


def test_tags_are_cached_per_type() -> None:
    assert struct_fields(Listing) is struct_fields(Listing)


def test_frozen_types_are_not_settable() -> None:
    assert [spec.settable for spec in struct_fields(Frozen)] == [False]


def test_dataclass_and_plain_classes_skip_classvars() -> None:
    name, secret = struct_fields(Plain)
    assert name.name == "name"
    assert name.settable
    assert secret.name == "_secret"
    assert not secret.settable
    assert [spec.name for spec in struct_fields(Labelled)] == ["label"]


def test_is_struct_type() -> None:
    assert is_struct_type(Listing)
    assert is_struct_type(Plain)
    assert is_struct_type(Labelled)
    assert not is_struct_type(int)
    assert not is_struct_type(dict)
    assert not is_struct_type(list[int])
    assert not is_struct_type(Optional[Listing])


def test_field_annotation_lookup() -> None:
    assert field_annotation(Plain, "name") is str
    assert field_annotation(Plain, "missing") is None
    assert field_annotation(dict, "name") is None
