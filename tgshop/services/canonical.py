"""
Canonical serialization of gateway request fields for token signing.

Keys are sorted at every nesting level, keys holding None are skipped and the
Token field never takes part. Top-level values are concatenated in key order;
nested objects and arrays are rendered as compact JSON built the same way.
Host dict ordering is never relied upon.
"""
import json
from collections.abc import Mapping

SIGNATURE_FIELD = "Token"


def _sorted_items(mapping: Mapping) -> list[tuple[str, object]]:
    return sorted(
        (str(key), value)
        for key, value in mapping.items()
        if value is not None and str(key) != SIGNATURE_FIELD
    )


def _scalar(value: object) -> str:
    # bool before int: True is an int too
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value
    raise TypeError(f"cannot canonicalize value of type {type(value).__name__}")


def _json(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        members = (
            json.dumps(key, ensure_ascii=False) + ":" + _json(item)
            for key, item in _sorted_items(value)
        )
        return "{" + ",".join(members) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_json(item) for item in value) + "]"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return _scalar(value)


def render_value(value: object) -> str:
    """Render one top-level value: scalars as plain text, containers as compact JSON."""
    if isinstance(value, (Mapping, list, tuple)):
        return _json(value)
    return _scalar(value)


def canonicalize(fields: Mapping) -> str:
    """
    Deterministic string for `fields`, independent of insertion order.
    The top level is a bare concatenation, so an empty mapping gives "" (nested ones give "{}").

    >>> canonicalize({"b": 1, "a": True, "Token": "x", "c": None})
    'true1'
    """
    return "".join(render_value(value) for _, value in _sorted_items(fields))
