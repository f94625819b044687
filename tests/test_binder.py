from __future__ import annotations

import io
import logging
from typing import Annotated, Any

import msgspec
import pytest

from bindery import (
    BinderConfig,
    DefaultBinder,
    Request,
    Tags,
    bind,
    bind_body,
    bind_headers,
    bind_path,
    bind_query,
)
from bindery.exceptions import ConversionFailure, HTTPError, MalformedBody, UnsupportedMediaType


class Item(msgspec.Struct):
    id: Annotated[int, Tags(param="id", query="id", json="id", xml="id", form="id")] = 0
    name: Annotated[str, Tags(query="name", form="name")] = ""
    tags: Annotated[list[str], Tags(query="tag", form="tag")] = []
    note: str = ""


class Trace(msgspec.Struct):
    request_id: Annotated[str, Tags(header="x-request-id")] = ""
    forwarded: Annotated[list[str], Tags(header="X-Forwarded-For")] = []


def test_body_overrides_query_overrides_path() -> None:
    request = Request(
        path_params={"id": "1"},
        query_string="id=2",
        headers={"Content-Type": "application/json"},
        body=b'{"id": 3}',
    )
    item = Item()
    bind(request, item)
    assert item.id == 3


def test_each_pass_only_overwrites_resolved_fields() -> None:
    request = Request(
        path_params={"id": "1"},
        query_string="name=query&tag=a&tag=b",
        headers={"Content-Type": "application/json; charset=utf-8"},
        body=b'{"note": "from body"}',
    )
    item = Item()
    bind(request, item)
    assert item.id == 1
    assert item.name == "query"
    assert item.tags == ["a", "b"]
    assert item.note == "from body"


def test_first_error_stops_later_passes() -> None:
    request = Request(
        path_params={"id": "x"},
        query_string="name=query",
        headers={"Content-Type": "application/json"},
        body=b'{"note": "from body"}',
    )
    item = Item()
    with pytest.raises(ConversionFailure) as captured:
        bind(request, item)
    assert captured.value.source == "param:id"
    assert item.name == ""
    assert item.note == ""


def test_single_source_passes() -> None:
    request = Request(path_params={"id": "5"}, query_string="id=6&name=n")
    from_path, from_query = Item(), Item()
    bind_path(request, from_path)
    bind_query(request, from_query)
    assert (from_path.id, from_path.name) == (5, "")
    assert (from_query.id, from_query.name) == (6, "n")


def test_bind_headers_case_insensitive() -> None:
    request = Request(headers={"X-Request-Id": "abc", "x-forwarded-for": ["10.0.0.1", "10.0.0.2"]})
    trace = Trace()
    bind_headers(request, trace)
    assert trace.request_id == "abc"
    assert trace.forwarded == ["10.0.0.1", "10.0.0.2"]


def test_empty_body_is_noop_for_any_content_type() -> None:
    item = Item(id=9)
    bind_body(Request(headers={"Content-Type": "application/octet-stream"}), item)
    bind_body(Request(body=b""), item)
    assert item.id == 9


def test_unsupported_media_type() -> None:
    with pytest.raises(UnsupportedMediaType) as captured:
        bind_body(Request(headers={"Content-Type": "text/csv"}, body=b"id\n1"), Item())
    assert captured.value.content_type == "text/csv"
    assert captured.value.status == 415


def test_missing_content_type_with_body_is_unsupported() -> None:
    with pytest.raises(UnsupportedMediaType):
        bind_body(Request(body=b"payload"), Item())


@pytest.mark.parametrize("content_type", ["application/xml", "text/xml; charset=utf-8"])
def test_xml_body(content_type: str) -> None:
    item = Item()
    bind_body(Request(headers={"Content-Type": content_type}, body=b"<item><id>4</id><note>n</note></item>"), item)
    assert item.id == 4
    assert item.note == "n"


def test_urlencoded_form_body() -> None:
    item = Item()
    request = Request(
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        body_stream=io.BytesIO(b"id=8&name=form&tag=x&tag=y&note=ignored"),
    )
    bind_body(request, item)
    assert item.id == 8
    assert item.name == "form"
    assert item.tags == ["x", "y"]
    assert item.note == ""


def test_multipart_form_body() -> None:
    body = (
        b"--b1\r\nContent-Disposition: form-data; name=\"id\"\r\n\r\n12\r\n"
        b"--b1\r\nContent-Disposition: form-data; name=\"name\"\r\n\r\nmulti\r\n"
        b"--b1--\r\n"
    )
    item = Item()
    bind_body(Request(headers={"Content-Type": "multipart/form-data; boundary=b1"}, body=body), item)
    assert item.id == 12
    assert item.name == "multi"


def test_form_body_into_non_struct_destination_fails() -> None:
    from bindery.exceptions import UnsupportedDestinationShape

    request = Request(headers={"Content-Type": "application/x-www-form-urlencoded"}, body=b"id=1")
    with pytest.raises(UnsupportedDestinationShape):
        bind_body(request, [])


def test_query_into_non_struct_destination_is_noop() -> None:
    values: list[str] = []
    bind_query(Request(query_string="id=1"), values)
    assert values == []


def test_malformed_json_body() -> None:
    request = Request(headers={"Content-Type": "application/json"}, body=b"{")
    with pytest.raises(MalformedBody):
        bind(request, Item())


def test_config_limits_body_size() -> None:
    binder = DefaultBinder(BinderConfig(max_body_bytes=4))
    request = Request(headers={"Content-Type": "application/json"}, body=b'{"id": 3}')
    with pytest.raises(HTTPError) as captured:
        binder.bind_body(request, Item())
    assert captured.value.status == 413


def test_config_limits_query_params() -> None:
    binder = DefaultBinder(BinderConfig(max_query_params=1))
    with pytest.raises(HTTPError) as captured:
        binder.bind_query(Request(query_string="id=1&name=n"), Item())
    assert captured.value.detail == {"detail": "too_many_query_parameters"}


def test_binding_twice_yields_identical_results() -> None:
    kwargs: dict[str, Any] = {
        "path_params": {"id": "1"},
        "query_string": "id=2&tag=a",
        "headers": {"Content-Type": "application/json"},
        "body": b'{"note": "n"}',
    }
    first, second = Item(), Item()
    bind(Request(**kwargs), first)
    bind(Request(**kwargs), second)
    assert first == second


def test_unsupported_media_type_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="bindery.binder")
    with pytest.raises(UnsupportedMediaType):
        bind_body(Request(headers={"Content-Type": "text/csv"}, body=b"x"), Item())
    assert any("text/csv" in record.getMessage() for record in caplog.records)


@pytest.mark.parametrize(
    ("value_type", "expected"),
    [
        (None, {"a": ["1", "2"], "b": ["3"]}),
        (str, {"a": "1", "b": "3"}),
        (list[str], {"a": ["1", "2"], "b": ["3"]}),
        (int, {}),
    ],
)
def test_mapping_destinations_honour_value_type(value_type: Any, expected: dict[str, Any]) -> None:
    values: dict[str, Any] = {}
    bind_query(Request(query_string="a=1&a=2&b=3"), values, value_type=value_type)
    assert values == expected


def test_value_type_reaches_every_pass() -> None:
    request = Request(
        headers={"Content-Type": "application/x-www-form-urlencoded", "X-Mode": "fast"},
        path_params={"id": "1"},
        query_string="page=2&page=3",
        body=b"name=form",
    )
    values: dict[str, Any] = {}
    DefaultBinder().bind(request, values, value_type=str)
    assert values == {"id": "1", "page": "2", "name": "form"}
    headers: dict[str, Any] = {}
    bind_headers(request, headers, value_type=str)
    assert headers["X-Mode"] == "fast"


class Coordinate:
    def __init__(self, x: int, y: int) -> None:
        self.x = x
        self.y = y

    def unmarshal_param(self, param: str) -> None:
        x, y = param.split(",")
        self.x, self.y = int(x), int(y)


class Marker(msgspec.Struct):
    at: Annotated[Coordinate | None, Tags(query="at")] = None


def test_unbuildable_hook_type_surfaces_as_binding_error() -> None:
    with pytest.raises(ConversionFailure) as captured:
        bind_query(Request(query_string="at=1,2"), Marker())
    assert captured.value.status == 400
    marker = Marker(at=Coordinate(0, 0))
    bind_query(Request(query_string="at=1,2"), marker)
    assert marker.at is not None
    assert (marker.at.x, marker.at.y) == (1, 2)
