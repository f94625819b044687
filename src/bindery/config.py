"""Binder configuration objects."""

from __future__ import annotations

from msgspec import Struct


class BinderConfig(Struct, frozen=True):
    """Typed configuration for :class:`~bindery.binder.DefaultBinder` and value binders."""

    max_body_bytes: int | None = 1_048_576
    max_form_fields: int = 1024
    max_query_params: int = 1024
    fail_fast: bool = True
