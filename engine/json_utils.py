"""JSON helpers that never fail on values sqlite rows and dataclasses can produce."""

from __future__ import annotations

import dataclasses
import json
from typing import Any


def _default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        to_dict = getattr(value, "to_dict", None)
        if callable(to_dict):
            return to_dict()
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def safe_json_dumps(value: Any, **kwargs: Any) -> str:
    kwargs.setdefault("default", _default)
    kwargs.setdefault("ensure_ascii", False)
    return json.dumps(value, **kwargs)


def safe_json(value: Any) -> Any:
    """Return a plain JSON-compatible copy of ``value``."""
    return json.loads(safe_json_dumps(value))


def loads_or_default(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default
