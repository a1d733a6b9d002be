"""Build canonical :class:`~acxmatrix.models.event.Event` records from payloads."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from acxmatrix._constants import DEFAULT_ACCOUNT
from acxmatrix.ingestion.normalize import (
    extract_location,
    normalize_integrity,
    payload_sources,
    resolve_alias,
    safe_float,
    to_str,
)
from acxmatrix.models.event import METRIC_FIELDS, Event

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

_TEXT_FIELDS: tuple[str, ...] = (
    "event_name",
    "stage",
    "priority",
    "status",
    "event_at",
    "contact_id",
    "opportunity_id",
)


def iso_timestamp(now: datetime) -> str:
    """``2026-02-11T01:05:00.123Z`` style UTC timestamp."""
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def unix_millis(now: datetime) -> int:
    return (now - _EPOCH) // timedelta(milliseconds=1)


def normalize_event(
    payload: Any,
    *,
    now: datetime,
    default_account: str = DEFAULT_ACCOUNT,
    default_source: str = "",
) -> Event:
    """Map an arbitrary caller payload onto a canonical event.

    Never raises: a non-mapping payload is treated as empty and every
    field falls back to its default.
    """
    if not isinstance(payload, Mapping):
        payload = {}
    sources = payload_sources(payload)

    fields: dict[str, Any] = {
        "ts": iso_timestamp(now),
        "account": to_str(resolve_alias(sources, "account")) or default_account,
        "location": extract_location(resolve_alias(sources, "location")),
        "integrity": normalize_integrity(resolve_alias(sources, "integrity")),
        "run_id": to_str(resolve_alias(sources, "run_id")) or f"run-{unix_millis(now)}",
        "source": to_str(resolve_alias(sources, "source")) or default_source,
    }
    for name in METRIC_FIELDS:
        fields[name] = safe_float(resolve_alias(sources, name), 0.0)
    for name in _TEXT_FIELDS:
        fields[name] = to_str(resolve_alias(sources, name))

    return Event.model_validate(fields)
