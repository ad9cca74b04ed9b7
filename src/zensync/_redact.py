"""Helpers for safe debug logging.

Requests to the data API carry bearer tokens, passwords and the user's
own tracker data.  DEBUG logs should show the shape of a request, not its
contents: credentials are masked and stored values are summarised.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "authorization",
        "cookie",
    }
)

# Keys whose values are user data (habit lists, tasks, energy levels).
_USER_DATA_KEYS: frozenset[str] = frozenset({"value"})

_MAX_DEPTH = 8


def summarize_value(value: Any) -> str:
    """Describe a stored JSON value without revealing it, e.g. ``<list:12>``."""
    if value is None:
        return "<null>"
    if isinstance(value, bool):
        return "<bool>"
    if isinstance(value, (int, float)):
        return "<number>"
    if isinstance(value, str):
        return f"<str:{len(value)}>"
    if isinstance(value, Mapping):
        return f"<object:{len(value)}>"
    if isinstance(value, Sequence):
        return f"<list:{len(value)}>"
    return f"<{type(value).__name__}>"


def redact_for_log(value: Any, *, max_string: int = 256, max_items: int = 20, _depth: int = 0) -> Any:
    """Return a copy of *value* that is safe to put in a DEBUG log.

    Credential fields become ``"<redacted>"``; ``value`` fields (user data)
    become a summary from :func:`summarize_value`.  Long strings and lists
    are truncated.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _CREDENTIAL_KEYS:
                redacted[key] = "<redacted>"
            elif lowered in _USER_DATA_KEYS:
                redacted[key] = summarize_value(v)
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        items = [
            redact_for_log(v, max_string=max_string, max_items=max_items, _depth=_depth + 1)
            for v in value[:max_items]
        ]
        if len(value) > max_items:
            items.append(f"<+{len(value) - max_items} more>")
        return items

    return repr(value)
