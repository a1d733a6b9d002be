"""Ingestion write path.

Within one call the writes happen in a fixed order:

1. the event record
2. the global index
3. the per-location index, the merged summary, then the location list

The order is not atomic across concurrent calls. Only the event write is
mandatory; a failure there propagates as :class:`MatrixStoreError`. Later
failures are logged and reported as warnings because the event itself is
already durable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from acxmatrix.exceptions import MatrixStoreError
from acxmatrix.ingestion.event import normalize_event, unix_millis
from acxmatrix.models.event import Event
from acxmatrix.models.summary import LocationSummary
from acxmatrix.state.store import MatrixStore

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestResult:
    key: str
    event: Event
    global_count: int | None = None
    location_count: int | None = None
    summary: LocationSummary | None = None
    warnings: list[str] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "ok": True,
            "stored": True,
            "key": self.key,
            "event": self.event.to_stored(),
            "index": {"global_count": self.global_count, "loc_count": self.location_count},
        }
        if self.warnings:
            body["warnings"] = list(self.warnings)
        return body


async def ingest_payload(
    store: MatrixStore,
    payload: Any,
    *,
    source: str = "",
    now: datetime | None = None,
) -> IngestResult:
    """Normalize *payload* and write it with all derived aggregate updates."""
    now = now or datetime.now(UTC)
    event = normalize_event(
        payload,
        now=now,
        default_account=store.config.default_account,
        default_source=source,
    )

    key = await store.put_event(event, unix_millis=unix_millis(now))
    result = IngestResult(key=key, event=event)

    try:
        result.global_count = len(await store.push_global_index(key))
    except MatrixStoreError:
        _logger.warning("Global index update failed for %s", key, exc_info=True)
        result.warnings.append("global_index_update_failed")

    if not event.location:
        _logger.debug("Event %s has no location; skipping per-location updates", key)
        return result

    try:
        result.location_count = len(await store.push_location_index(event.account, event.location, key))
    except MatrixStoreError:
        _logger.warning("Location index update failed for %s", key, exc_info=True)
        result.warnings.append("location_index_update_failed")

    try:
        result.summary = await store.merge_location_summary(event)
    except MatrixStoreError:
        _logger.warning("Summary merge failed for %s", key, exc_info=True)
        result.warnings.append("summary_update_failed")
        return result

    try:
        await store.upsert_location_list(result.summary)
    except MatrixStoreError:
        _logger.warning("Location list update failed for %s", key, exc_info=True)
        result.warnings.append("location_list_update_failed")

    return result
