"""Normalization helpers.

Centralizes defensive parsing of caller payloads. Callers (CRM workflows,
the monitoring agent, the dashboard form) send the same facts under many
historical key names and shapes; each canonical field has an ordered alias
list resolved by :func:`resolve_alias`.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

# Containers CRM webhooks use to nest workflow custom values. They take
# precedence over root keys.
CUSTOM_DATA_KEYS: tuple[str, ...] = ("customData", "custom_data", "custom")

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "account": ("account", "account_name"),
    "location": ("location_id", "locationId", "locationID", "location"),
    "uptime": ("uptime", "acx_matrix_uptime"),
    "conversion": ("conversion", "acx_matrix_conversion", "acx_matrix_conversion_"),
    "response_ms": ("response_ms", "response_speed_ms", "response_time_ms"),
    "quotes_recovered": ("quotes_recovered",),
    # acx_integrity is the locked key and wins over the older names.
    "integrity": ("acx_integrity", "integrity", "integrity_status"),
    "run_id": ("run_id", "runId", "test_run_id"),
    "source": ("source",),
    "event_name": ("event_name", "event", "acx_event"),
    "stage": ("stage", "acx_stage"),
    "priority": ("priority",),
    "status": ("status", "acx_status"),
    "event_at": ("event_at", "eventAt"),
    "contact_id": ("contact_id", "contactId", "contact"),
    "opportunity_id": ("opportunity_id", "opportunityId", "opportunity"),
}

OBJECT_VALUE_KEYS: tuple[str, ...] = ("id", "name", "value")
LOCATION_OBJECT_KEYS: tuple[str, ...] = ("id", "location_id", "locationId", "_id", "value", "name")

_INTEGRITY_MAP: dict[str, str] = {
    "ok": "ok",
    "optimal": "ok",
    "degraded": "degraded",
    "critical": "critical",
}
UNKNOWN_INTEGRITY = "unknown"

# What a JS runtime renders for a stringified object; seen in old stored data.
_OBJECT_PLACEHOLDER = "[object Object]"


def is_present(value: Any) -> bool:
    """Return True if *value* counts as supplied by the caller."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def to_str(value: Any, object_keys: Sequence[str] = OBJECT_VALUE_KEYS) -> str:
    """Coerce a payload value to a trimmed string.

    Mappings collapse to the first present sub-field in *object_keys*;
    anything else that is not a scalar becomes ``""``. A container is never
    rendered as its repr.
    """
    if value is None:
        return ""
    if isinstance(value, Mapping):
        for key in object_keys:
            inner = value.get(key)
            if is_present(inner) and not isinstance(inner, (Mapping, list, tuple)):
                return to_str(inner, object_keys)
        return ""
    if isinstance(value, (list, tuple, set)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return ""
        if value.is_integer():
            return str(int(value))
    text = str(value).strip()
    if text == _OBJECT_PLACEHOLDER:
        return ""
    return text


def safe_float(value: Any, default: float = 0.0) -> float:
    """Parse *value* as a float, returning *default* on absence or failure."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.strip()
        if not value or value == "--":
            return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def normalize_integrity(value: Any) -> str:
    """Map a raw integrity value onto ``ok|degraded|critical|unknown``.

    ``optimal`` is a historical alias for ``ok``. Anything unrecognized,
    including empty input, becomes ``unknown``.
    """
    text = to_str(value).lower()
    return _INTEGRITY_MAP.get(text, UNKNOWN_INTEGRITY)


def extract_location(value: Any) -> str:
    """Extract a location id from a scalar or one of the object shapes."""
    return to_str(value, LOCATION_OBJECT_KEYS)


def payload_sources(payload: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Containers searched for aliases, in precedence order."""
    sources: list[Mapping[str, Any]] = []
    for key in CUSTOM_DATA_KEYS:
        nested = payload.get(key)
        if isinstance(nested, Mapping) and nested:
            sources.append(nested)
            break
    sources.append(payload)
    return sources


def resolve_alias(sources: Sequence[Mapping[str, Any]], field: str) -> Any:
    """Return the first present value for *field* across *sources*.

    Each source is searched in full (all aliases, in order) before the next.
    Returns ``None`` when no alias is present anywhere.
    """
    aliases = FIELD_ALIASES[field]
    for source in sources:
        for alias in aliases:
            value = source.get(alias)
            if is_present(value):
                return value
    return None
