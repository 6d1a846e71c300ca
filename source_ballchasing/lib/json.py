"""JSON helpers backed by orjson."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import orjson


def _default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return float(obj)
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


def dumps(obj: Any) -> str:
    """Dump ``obj`` to a compact JSON string."""
    return orjson.dumps(obj, default=_default).decode("utf-8")


def dumps_line(obj: Any) -> bytes:
    """Dump ``obj`` as one newline-terminated protocol line."""
    return orjson.dumps(obj, default=_default, option=orjson.OPT_APPEND_NEWLINE)


def loads(obj: str | bytes) -> Any:
    """Load a JSON value from a string or bytes."""
    return orjson.loads(obj)


JSONDecodeError = orjson.JSONDecodeError

__all__ = ["dumps", "dumps_line", "loads", "JSONDecodeError"]
