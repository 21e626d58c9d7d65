"""Extractors that turn request messages into tag fields."""

from __future__ import annotations

import dataclasses
from typing import Any, Callable, Optional

_SCALARS = (bool, int, float, str)


def code_gen_request_field_extractor(full_method: str, req: Any) -> dict[str, Any] | None:
    """Extract fields through the request's own ``extract_request_fields(append_to_map)`` method.

    Returns None when the request has no such method or it yields no fields.
    """
    method = getattr(req, "extract_request_fields", None)
    if not callable(method):
        return None
    fields: dict[str, Any] = {}
    method(fields)
    return fields or None


def tag_based_request_field_extractor(
    tag_name: str,
) -> Callable[[str, Any], Optional[dict[str, Any]]]:
    """Return an extractor driven by dataclass field metadata.

    A field declared as ``field(metadata={tag_name: "meta_tags"})`` is exported
    under the key ``meta_tags`` when it holds a scalar or a non-empty sequence of
    scalars. Nested dataclass instances are searched too.
    """

    def extractor(full_method: str, req: Any) -> dict[str, Any] | None:
        fields: dict[str, Any] = {}
        _reflect_message_tags(req, fields, tag_name)
        return fields or None

    return extractor


def _is_message(value: Any) -> bool:
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _reflect_message_tags(msg: Any, fields: dict[str, Any], tag_name: str) -> None:
    if not _is_message(msg):
        return
    for field in dataclasses.fields(msg):
        if field.name.startswith("_"):
            continue
        value = getattr(msg, field.name)
        if _is_message(value):
            _reflect_message_tags(value, fields, tag_name)
            continue
        if isinstance(value, (bytes, bytearray)):
            scalar = bool(value)
        elif isinstance(value, (list, tuple)):
            scalar = bool(value) and isinstance(value[0], _SCALARS)
        else:
            scalar = isinstance(value, _SCALARS)
        if scalar:
            tag = field.metadata.get(tag_name)
            if tag:
                fields[tag] = value