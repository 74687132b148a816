"""Canonical token serialization used for object hashing.

A value is flattened into a list of string tokens which are joined with
NUL characters. Mapping and struct keys are emitted in sorted order and
absent (``None``) members are left out, so the result is independent of
insertion order and of optional fields that are not set.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

__all__ = ["SerializationError", "to_string", "obj_size"]

_SEPARATOR = "\u0000"
_NULL = "null"
_NUMBER_SIZE = 8
_BOOL_SIZE = 1


class SerializationError(ValueError):
    """Raised when a value cannot be serialized."""


def to_string(value: Any) -> str:
    """Serialize *value* into its canonical NUL-separated string."""
    tokens, _ = _serialize(value)
    return _SEPARATOR.join(tokens)


def obj_size(value: Any) -> int:
    """Return the payload size of *value*.

    Strings count their characters, numbers count 8 and booleans 1;
    nulls, keys and structural markers count nothing.
    """
    _, size = _serialize(value)
    return size


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _serialize(value: Any) -> tuple[list[str], int]:
    if value is None:
        return [_NULL], 0
    if isinstance(value, bool):
        return ["b", "true" if value else "false"], _BOOL_SIZE
    if isinstance(value, int):
        return ["n", str(value)], _NUMBER_SIZE
    if isinstance(value, float):
        return ["n", _format_float(value)], _NUMBER_SIZE
    if isinstance(value, str):
        return ["s", value], len(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        raise SerializationError("serialize bytes not supported")

    to_obj = getattr(value, "to_obj", None)
    if callable(to_obj):
        return _serialize(to_obj())

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _serialize_struct(
            (field.name, getattr(value, field.name))
            for field in dataclasses.fields(value)
        )
    if isinstance(value, Mapping):
        return _serialize_map(value)
    if isinstance(value, (list, tuple)):
        return _serialize_seq(value)

    raise SerializationError(
        f"unsupported type for serialization: {type(value).__name__}"
    )


def _serialize_seq(items: Any) -> tuple[list[str], int]:
    tokens = ["["]
    size = 0
    for item in items:
        item_tokens, item_size = _serialize(item)
        tokens.extend(item_tokens)
        size += item_size
    tokens.append("]")
    return tokens, size


def _serialize_struct(fields: Any) -> tuple[list[str], int]:
    entries: dict[str, list[str]] = {}
    size = 0
    for name, member in fields:
        member_tokens, member_size = _serialize(member)
        if member_tokens == [_NULL]:
            continue
        entries[name] = member_tokens
        size += member_size
    return _emit_sorted(entries), size


def _serialize_map(mapping: Mapping) -> tuple[list[str], int]:
    entries: dict[str, list[str]] = {}
    size = 0
    for key, member in mapping.items():
        key_tokens, _ = _serialize(key)
        if len(key_tokens) != 2 or key_tokens[0] != "s":
            raise SerializationError("only string key map supported")
        member_tokens, member_size = _serialize(member)
        entries[key_tokens[1]] = member_tokens
        size += member_size
    kept = {k: v for k, v in entries.items() if v[:1] != [_NULL]}
    return _emit_sorted(kept), size


def _emit_sorted(entries: dict[str, list[str]]) -> list[str]:
    tokens: list[str] = []
    for key in sorted(entries):
        tokens.append(key)
        tokens.extend(entries[key])
    return tokens