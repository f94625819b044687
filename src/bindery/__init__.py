"""Bindery annotation-driven request data binding."""

from .binder import Binder, DefaultBinder, bind, bind_body, bind_headers, bind_path, bind_query
from .config import BinderConfig
from .exceptions import (
    AnnotationConflict,
    BinderyError,
    BindingError,
    ConversionFailure,
    DelimiterArityMismatch,
    HTTPError,
    MalformedBody,
    MissingRequiredValue,
    UnknownFieldKind,
    UnsupportedDestinationShape,
    UnsupportedMediaType,
)
from .fields import EMBEDDED, Tags
from .populate import bind_data
from .requests import Request
from .typing_utils import (
    Float32,
    Float64,
    Int8,
    Int16,
    Int32,
    Int64,
    Kind,
    ParamsUnmarshaler,
    ParamUnmarshaler,
    TextUnmarshaler,
    Uint,
    Uint8,
    Uint16,
    Uint32,
    Uint64,
)
from .values import ValueBinder, form_fields_binder, path_params_binder, query_params_binder

__all__ = [
    "EMBEDDED",
    "AnnotationConflict",
    "Binder",
    "BinderConfig",
    "BinderyError",
    "BindingError",
    "ConversionFailure",
    "DefaultBinder",
    "DelimiterArityMismatch",
    "Float32",
    "Float64",
    "HTTPError",
    "Int16",
    "Int32",
    "Int64",
    "Int8",
    "Kind",
    "MalformedBody",
    "MissingRequiredValue",
    "ParamUnmarshaler",
    "ParamsUnmarshaler",
    "Request",
    "Tags",
    "TextUnmarshaler",
    "Uint",
    "Uint16",
    "Uint32",
    "Uint64",
    "Uint8",
    "UnknownFieldKind",
    "UnsupportedDestinationShape",
    "UnsupportedMediaType",
    "ValueBinder",
    "bind",
    "bind_body",
    "bind_data",
    "bind_headers",
    "bind_path",
    "bind_query",
    "form_fields_binder",
    "path_params_binder",
    "query_params_binder",
]
