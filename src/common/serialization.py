"""Serialization utilities."""

from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum


def _to_jsonable(value):
    if is_dataclass(value) and not isinstance(value, type):
        return _to_jsonable(asdict(value))
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (frozenset, set)):
        return sorted((_to_jsonable(v) for v in value), key=str)
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return value


def serialize_dataclass(obj) -> dict:
    """Serialize a dataclass to a JSON-ready dict.

    Datetimes become ISO strings, enums their values, sets sorted lists.
    """
    if not is_dataclass(obj):
        raise TypeError(f"Expected a dataclass instance, got {type(obj).__name__}")
    return _to_jsonable(asdict(obj))
