"""Redaction for DEBUG logging of request bodies, headers and CRM calls."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

REDACTED = "<redacted>"

# Compared case-insensitively against mapping keys and header names.
SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "x-acx-secret",
        "authorization",
        "cookie",
        "set-cookie",
        "acx_session",
        "session_key",
        "api_key",
        "apikey",
        "token",
    }
)

_MAX_DEPTH = 20


def _is_sensitive(key: Any) -> bool:
    return str(key).lower() in SENSITIVE_KEYS


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Copy *value* with sensitive mapping entries masked and long strings cut."""
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    nested = {"max_string": max_string, "_depth": _depth + 1}
    if isinstance(value, Mapping):
        return {
            str(k): REDACTED if _is_sensitive(k) else redact_for_log(v, **nested)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_for_log(v, **nested) for v in value]
    return repr(value)


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Header map safe to log; repeated headers keep their last value."""
    return {name: REDACTED if _is_sensitive(name) else value for name, value in headers.items()}
