"""Fluent, value-by-value binding from a single request source.

Example::

    params = {}
    errors = (
        query_params_binder(request)
        .fail_fast(False)
        .must_int64("id", params)
        .strings("tags", params)
        .bind_with_delimiter("ids", params, ",", annotation=list[int])
        .bind_errors()
    )
"""

from __future__ import annotations

import builtins
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, MutableMapping, Sequence

from .config import BinderConfig
from .exceptions import BindingError, ConversionFailure, DelimiterArityMismatch, MissingRequiredValue
from .fields import field_annotation
from .requests import Request, parse_query
from .typing_utils import (
    Float32,
    Float64,
    Int8,
    Int16,
    Int32,
    Int64,
    Kind,
    ParamUnmarshaler,
    TextUnmarshaler,
    Uint,
    Uint8,
    Uint16,
    Uint32,
    Uint64,
    convert_values,
    parse_kind,
    sequence_element,
    unwrap_optional,
)

logger = logging.getLogger(__name__)

CustomFunc = Callable[[list[str]], "Sequence[Exception] | None"]


def _assign(target: Any, attr: str, value: Any) -> None:
    if isinstance(target, MutableMapping):
        target[attr] = value
    else:
        setattr(target, attr, value)


def _getter(annotation: Any, *, required: bool = False) -> Callable[..., "ValueBinder"]:
    def getter(self: ValueBinder, name: str, target: Any, attr: str | None = None) -> ValueBinder:
        return self._bind(name, target, attr, annotation, required=required)

    mode = "required" if required else "optional"
    getter.__doc__ = f"Bind the {mode} value ``name`` as ``{annotation!r}`` into ``target``."
    return getter


class ValueBinder:
    """Convert values from one source map into caller supplied targets.

    Each getter writes into ``target`` (an attribute, or an item for mappings)
    named ``attr``, defaulting to the source key, and returns the binder so calls
    chain. Optional getters leave the target untouched when the key is absent;
    ``must_`` getters record :class:`MissingRequiredValue`.

    Errors are recorded rather than raised. With fail-fast enabled (the default)
    the first recorded error turns every later call into a no-op. Retrieve the
    outcome with :meth:`bind_error` or :meth:`bind_errors`; both reset the
    binder. Lookups are exact-match only.
    """

    def __init__(self, source: Mapping[str, Sequence[str]], *, origin: str = "query", fail_fast: bool = True) -> None:
        self._source = source
        self._fail_fast = fail_fast
        self._errors: list[BindingError] = []
        self.origin = origin

    def fail_fast(self, enabled: bool = True) -> ValueBinder:
        self._fail_fast = enabled
        return self

    def bind_error(self) -> BindingError | None:
        """Return the first recorded error, if any, and reset the binder."""

        errors = self._reset()
        return errors[0] if errors else None

    def bind_errors(self) -> list[BindingError]:
        """Return every recorded error in order and reset the binder."""

        return self._reset()

    def _reset(self) -> list[BindingError]:
        errors, self._errors = self._errors, []
        return errors

    @property
    def _suppressed(self) -> bool:
        return self._fail_fast and bool(self._errors)

    def _record(self, error: BindingError, *, cause: BaseException | None = None) -> None:
        if cause is not None:
            error.__cause__ = cause
        logger.debug("recorded %s binding %s value", error.code, self.origin)
        self._errors.append(error)

    def _source_label(self, name: str) -> str:
        return f"{self.origin}:{name}"

    def _values(self, name: str, *, required: bool) -> Sequence[str] | None:
        values = self._source.get(name)
        if values:
            return values
        if required:
            self._record(MissingRequiredValue(name))
        return None

    def _convert_into(self, name: str, values: Sequence[str], target: Any, attr: str | None, annotation: Any) -> None:
        try:
            value = convert_values(values, annotation, source=self._source_label(name))
        except BindingError as exc:
            self._record(exc)
            return
        _assign(target, attr or name, value)

    def _bind(self, name: str, target: Any, attr: str | None, annotation: Any, *, required: bool) -> ValueBinder:
        if self._suppressed:
            return self
        values = self._values(name, required=required)
        if values is not None:
            self._convert_into(name, values, target, attr, annotation)
        return self

    string = _getter(str)
    must_string = _getter(str, required=True)
    strings = _getter(list[str])
    must_strings = _getter(list[str], required=True)

    int = _getter(builtins.int)
    must_int = _getter(builtins.int, required=True)
    ints = _getter(list[builtins.int])
    must_ints = _getter(list[builtins.int], required=True)
    int8 = _getter(Int8)
    must_int8 = _getter(Int8, required=True)
    int8s = _getter(list[Int8])
    must_int8s = _getter(list[Int8], required=True)
    int16 = _getter(Int16)
    must_int16 = _getter(Int16, required=True)
    int16s = _getter(list[Int16])
    must_int16s = _getter(list[Int16], required=True)
    int32 = _getter(Int32)
    must_int32 = _getter(Int32, required=True)
    int32s = _getter(list[Int32])
    must_int32s = _getter(list[Int32], required=True)
    int64 = _getter(Int64)
    must_int64 = _getter(Int64, required=True)
    int64s = _getter(list[Int64])
    must_int64s = _getter(list[Int64], required=True)

    uint = _getter(Uint)
    must_uint = _getter(Uint, required=True)
    uints = _getter(list[Uint])
    must_uints = _getter(list[Uint], required=True)
    uint8 = _getter(Uint8)
    must_uint8 = _getter(Uint8, required=True)
    uint8s = _getter(list[Uint8])
    must_uint8s = _getter(list[Uint8], required=True)
    uint16 = _getter(Uint16)
    must_uint16 = _getter(Uint16, required=True)
    uint16s = _getter(list[Uint16])
    must_uint16s = _getter(list[Uint16], required=True)
    uint32 = _getter(Uint32)
    must_uint32 = _getter(Uint32, required=True)
    uint32s = _getter(list[Uint32])
    must_uint32s = _getter(list[Uint32], required=True)
    uint64 = _getter(Uint64)
    must_uint64 = _getter(Uint64, required=True)
    uint64s = _getter(list[Uint64])
    must_uint64s = _getter(list[Uint64], required=True)

    bool = _getter(builtins.bool)
    must_bool = _getter(builtins.bool, required=True)
    bools = _getter(list[builtins.bool])
    must_bools = _getter(list[builtins.bool], required=True)

    float32 = _getter(Float32)
    must_float32 = _getter(Float32, required=True)
    float32s = _getter(list[Float32])
    must_float32s = _getter(list[Float32], required=True)
    float64 = _getter(Float64)
    must_float64 = _getter(Float64, required=True)
    float64s = _getter(list[Float64])
    must_float64s = _getter(list[Float64], required=True)

    def time(self, name: str, target: Any, layout: str, attr: str | None = None) -> ValueBinder:
        """Bind ``name`` parsed with :meth:`datetime.strptime` ``layout``."""

        return self._bind_time(name, target, layout, attr, required=False)

    def must_time(self, name: str, target: Any, layout: str, attr: str | None = None) -> ValueBinder:
        return self._bind_time(name, target, layout, attr, required=True)

    def _bind_time(self, name: str, target: Any, layout: str, attr: str | None, *, required: builtins.bool) -> ValueBinder:
        if self._suppressed:
            return self
        values = self._values(name, required=required)
        if values is None:
            return self
        try:
            parsed = datetime.strptime(values[0], layout)
        except ValueError as exc:
            self._record(ConversionFailure("time", values[0], source=self._source_label(name)), cause=exc)
            return self
        _assign(target, attr or name, parsed)
        return self

    def unix_time(self, name: str, target: Any, attr: str | None = None) -> ValueBinder:
        """Bind ``name`` as seconds since the epoch into an aware UTC datetime."""

        return self._bind_unix_time(name, target, attr, required=False)

    def must_unix_time(self, name: str, target: Any, attr: str | None = None) -> ValueBinder:
        return self._bind_unix_time(name, target, attr, required=True)

    def _bind_unix_time(self, name: str, target: Any, attr: str | None, *, required: builtins.bool) -> ValueBinder:
        if self._suppressed:
            return self
        values = self._values(name, required=required)
        if values is None:
            return self
        source = self._source_label(name)
        try:
            seconds = parse_kind(Kind.INT64, values[0], source=source)
        except BindingError as exc:
            self._record(exc)
            return self
        try:
            moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            self._record(ConversionFailure("unix_time", values[0], source=source), cause=exc)
            return self
        _assign(target, attr or name, moment)
        return self

    def bind_unmarshaler(self, name: str, unmarshaler: ParamUnmarshaler) -> ValueBinder:
        """Feed the first value of ``name`` to ``unmarshaler.unmarshal_param``."""

        return self._bind_hook(name, unmarshaler, text=False, required=False)

    def must_bind_unmarshaler(self, name: str, unmarshaler: ParamUnmarshaler) -> ValueBinder:
        return self._bind_hook(name, unmarshaler, text=False, required=True)

    def bind_text_unmarshaler(self, name: str, unmarshaler: TextUnmarshaler) -> ValueBinder:
        """Feed the first value of ``name`` as bytes to ``unmarshaler.unmarshal_text``."""

        return self._bind_hook(name, unmarshaler, text=True, required=False)

    def must_bind_text_unmarshaler(self, name: str, unmarshaler: TextUnmarshaler) -> ValueBinder:
        return self._bind_hook(name, unmarshaler, text=True, required=True)

    def _bind_hook(self, name: str, unmarshaler: Any, *, text: builtins.bool, required: builtins.bool) -> ValueBinder:
        if self._suppressed:
            return self
        values = self._values(name, required=required)
        if values is None:
            return self
        try:
            if text:
                unmarshaler.unmarshal_text(values[0].encode())
            else:
                unmarshaler.unmarshal_param(values[0])
        except BindingError as exc:
            self._record(exc)
        except (TypeError, ValueError) as exc:
            failure = ConversionFailure(type(unmarshaler).__name__, values[0], source=self._source_label(name))
            self._record(failure, cause=exc)
        return self

    def custom_func(self, name: str, func: CustomFunc) -> ValueBinder:
        """Hand every value of ``name`` to ``func`` and record the errors it returns."""

        return self._bind_custom(name, func, required=False)

    def must_custom_func(self, name: str, func: CustomFunc) -> ValueBinder:
        return self._bind_custom(name, func, required=True)

    def _bind_custom(self, name: str, func: CustomFunc, *, required: builtins.bool) -> ValueBinder:
        if self._suppressed:
            return self
        values = self._values(name, required=required)
        if values is None:
            return self
        for error in func(list(values)) or ():
            if isinstance(error, BindingError):
                self._record(error)
            else:
                failure = ConversionFailure("custom", ",".join(values), source=self._source_label(name))
                self._record(failure, cause=error)
        return self

    def bind_with_delimiter(
        self,
        name: str,
        target: Any,
        delimiter: str,
        attr: str | None = None,
        *,
        annotation: Any = None,
    ) -> ValueBinder:
        """Split every value of ``name`` on ``delimiter`` before converting.

        The destination type comes from ``annotation`` or the type hints of
        ``target`` for ``attr``, defaulting to ``list[str]``. Scalar destinations
        accept a single token only.
        """

        return self._bind_delimited(name, target, delimiter, attr, annotation, required=False)

    def must_bind_with_delimiter(
        self,
        name: str,
        target: Any,
        delimiter: str,
        attr: str | None = None,
        *,
        annotation: Any = None,
    ) -> ValueBinder:
        return self._bind_delimited(name, target, delimiter, attr, annotation, required=True)

    def _bind_delimited(
        self,
        name: str,
        target: Any,
        delimiter: str,
        attr: str | None,
        annotation: Any,
        *,
        required: builtins.bool,
    ) -> ValueBinder:
        if self._suppressed:
            return self
        values = self._values(name, required=required)
        if values is None:
            return self
        if annotation is None:
            annotation = field_annotation(type(target), attr or name) or list[str]
        inner, _ = unwrap_optional(annotation)
        if sequence_element(inner) is not None:
            tokens = [token for value in values for token in value.split(delimiter)]
        else:
            tokens = values[0].split(delimiter)
            if len(tokens) > 1:
                self._record(DelimiterArityMismatch(name, delimiter, values))
                return self
        self._convert_into(name, tokens, target, attr, annotation)
        return self


def query_params_binder(request: Request, *, config: BinderConfig | None = None) -> ValueBinder:
    """Return a :class:`ValueBinder` over the query params of ``request``."""

    config = config or BinderConfig()
    query = parse_query(request.raw_query, max_fields=config.max_query_params)
    return ValueBinder(query, origin="query", fail_fast=config.fail_fast)


def path_params_binder(request: Request, *, config: BinderConfig | None = None) -> ValueBinder:
    """Return a :class:`ValueBinder` over the path params of ``request``."""

    config = config or BinderConfig()
    return ValueBinder(request.path_values, origin="param", fail_fast=config.fail_fast)


def form_fields_binder(request: Request, *, config: BinderConfig | None = None) -> ValueBinder:
    """Return a :class:`ValueBinder` over body form fields, then query values."""

    config = config or BinderConfig()
    form = request.form_values(max_fields=config.max_form_fields, max_bytes=config.max_body_bytes)
    return ValueBinder(form, origin="form", fail_fast=config.fail_fast)


__all__ = [
    "CustomFunc",
    "ValueBinder",
    "form_fields_binder",
    "path_params_binder",
    "query_params_binder",
]
