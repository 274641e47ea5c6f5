"""Helpers for safe diagnostic logging.

Error metadata is opaque and caller-supplied; it may carry user ids,
emails or auth tokens.  This module redacts sensitive fields before the
metadata is emitted on the live log channel.  Persisted entries keep the
metadata untouched.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

# Compared against keys lowercased with ``_`` and ``-`` removed.
_SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = (
    "password",
    "token",
    "apikey",
    "authorization",
    "cookie",
    "secret",
    "email",
    "phone",
)

_MAX_DEPTH = 20


def _is_sensitive(key: str) -> bool:
    normalized = key.lower().replace("_", "").replace("-", "")
    return any(fragment in normalized for fragment in _SENSITIVE_KEY_FRAGMENTS)


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted, JSON-friendly copy of *value* suitable for logs.

    Mapping keys that look like credentials or contact details are
    replaced by ``"<redacted>"``; long strings are truncated.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        return {
            str(key): "<redacted>"
            if _is_sensitive(str(key))
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }

    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]

    return repr(value)
