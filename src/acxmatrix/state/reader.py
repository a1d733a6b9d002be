"""Aggregate read views.

Indexes are resolved into event bodies with parallel fetches. A key whose
body cannot be fetched or parsed is dropped from the result; only a failure
to read a top-level index propagates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from acxmatrix._constants import WF3_STAGES
from acxmatrix.exceptions import MatrixStoreError
from acxmatrix.ingestion.event import iso_timestamp, unix_millis
from acxmatrix.ingestion.normalize import safe_float
from acxmatrix.models.event import Event
from acxmatrix.models.summary import LocationListEntry
from acxmatrix.models.views import SeriesPoint, Wf3Stats
from acxmatrix.state import keys as _keys
from acxmatrix.state.store import MatrixStore

_logger = logging.getLogger(__name__)


def clamp_limit(raw: Any, *, default: int, maximum: int) -> int:
    """Parse a ``limit`` query value and clamp it to ``[1, maximum]``."""
    parsed = safe_float(raw, float(default))
    return max(1, min(maximum, int(parsed)))


async def _fetch_event(store: MatrixStore, key: str) -> Event | None:
    try:
        return await store.read_event(key)
    except MatrixStoreError:
        _logger.debug("Skipping %s: body fetch failed", key, exc_info=True)
        return None


async def fetch_events(store: MatrixStore, keys: Sequence[str]) -> list[Event]:
    """Fetch bodies for *keys* in parallel, preserving order and dropping failures."""
    results = await asyncio.gather(*(_fetch_event(store, key) for key in keys))
    return [event for event in results if event is not None]


async def read_recent(store: MatrixStore, limit: int) -> tuple[list[Event], int]:
    """Newest-first events from the global index, plus the index length."""
    index = await store.read_index(_keys.GLOBAL_INDEX_KEY)
    return await fetch_events(store, index[:limit]), len(index)


def _entry_from_event(event: Event) -> LocationListEntry:
    return LocationListEntry(
        account=event.account,
        location=event.location,
        last_seen=event.ts,
        uptime=event.uptime,
        conversion=event.conversion,
        response_ms=event.response_ms,
        quotes_recovered=event.quotes_recovered,
        integrity=event.integrity,
    )


def snapshot_locations(events: Iterable[Event]) -> list[LocationListEntry]:
    """One row per location from newest-first *events*.

    The newest event wins, except that a metrics event replaces a newer
    workflow-only event so workflow pings do not zero out the tiles.
    """
    chosen: dict[str, Event] = {}
    for event in events:
        if not event.location:
            continue
        identity = f"{event.account}:{event.location}"
        current = chosen.get(identity)
        if current is None:
            chosen[identity] = event
        elif not current.is_metrics_event and event.is_metrics_event:
            chosen[identity] = event
    return [_entry_from_event(event) for event in chosen.values()]


async def _location_series(store: MatrixStore, entry: LocationListEntry) -> list[SeriesPoint]:
    try:
        index = await store.read_index(_keys.location_index_key(entry.account, entry.location))
    except MatrixStoreError:
        _logger.debug("Series index unavailable for %s", entry.identity, exc_info=True)
        return []
    events = await fetch_events(store, index[: store.config.series_cap])
    # Index is newest-first; charts want chronological order.
    return [SeriesPoint.from_event(event) for event in reversed(events) if event.is_metrics_event]


async def read_series(
    store: MatrixStore,
    locations: Sequence[LocationListEntry],
) -> dict[str, list[SeriesPoint]]:
    """Chronological metric points per location, keyed by location id."""
    results = await asyncio.gather(*(_location_series(store, entry) for entry in locations))
    series: dict[str, list[SeriesPoint]] = {}
    for entry, points in zip(locations, results, strict=True):
        if points:
            series.setdefault(entry.location, points)
    return series


def _event_millis(event: Event) -> int | None:
    try:
        parsed = datetime.fromisoformat(event.ts)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return unix_millis(parsed)


def wf3_stats(events: Iterable[Event]) -> Wf3Stats:
    """Stall/recovery statistics for the WF3 enforcement workflow.

    A contact stalls on its earliest ``wf3_enforcement``/``stall`` event and
    recovers on a ``handled``/``handled`` event at or after that time.
    """
    stalled_by_stage: dict[str, set[str]] = {stage: set() for stage in WF3_STAGES}
    first_stall: dict[str, int] = {}
    first_handled: dict[str, int] = {}

    for event in events:
        contact = event.contact_id
        if not contact:
            continue
        if event.event_name == "wf3_enforcement" and event.stage in stalled_by_stage and event.status == "stall":
            stalled_by_stage[event.stage].add(contact)
            target = first_stall
        elif event.event_name == "handled" and event.status == "handled":
            target = first_handled
        else:
            continue
        at = _event_millis(event)
        if at is None:
            continue
        if contact not in target or at < target[contact]:
            target[contact] = at

    recovered = 0
    total_ms = 0
    for contact, stall_at in first_stall.items():
        handled_at = first_handled.get(contact)
        if handled_at is not None and handled_at >= stall_at:
            recovered += 1
            total_ms += handled_at - stall_at

    stalled = len(first_stall)
    avg_ms = round(total_ms / recovered) if recovered else None
    return Wf3Stats(
        stalls_unique_by_stage={stage: len(ids) for stage, ids in stalled_by_stage.items()},
        stalled_contacts=stalled,
        recovered_contacts=recovered,
        recovery_rate=(recovered / stalled) if stalled else None,
        avg_response_ms=avg_ms,
        avg_response_seconds=round(avg_ms / 1000) if avg_ms is not None else None,
    )


async def _stored_row(store: MatrixStore, row: LocationListEntry) -> LocationListEntry:
    try:
        summary = await store.read_summary(row.account, row.location)
    except MatrixStoreError:
        _logger.debug("Summary unavailable for %s", row.identity, exc_info=True)
        return row
    return LocationListEntry.from_summary(summary) if summary is not None else row


async def read_locations(
    store: MatrixStore,
    *,
    account: str | None = None,
    events: Sequence[Event] | None = None,
) -> list[LocationListEntry]:
    """Locations snapshot.

    Reads the denormalized ``locations:<account>`` list when *account* is
    given and the list exists. Otherwise the distinct locations in *events*
    (or the default recent window) are read from their merged summaries,
    falling back to the event snapshot where no summary is stored.
    """
    if account:
        try:
            entries = await store.read_location_list(account)
        except MatrixStoreError:
            _logger.warning("Location list for %s unavailable; deriving from events", account, exc_info=True)
            entries = []
        if entries:
            return entries
    if events is None:
        events, _ = await read_recent(store, store.config.recent_limit_default)
    rows = snapshot_locations(events)
    if account:
        rows = [row for row in rows if row.account == account]
    return list(await asyncio.gather(*(_stored_row(store, row) for row in rows)))


async def read_summary(
    store: MatrixStore,
    *,
    limit: int,
    account: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Full dashboard payload: recent feed, location tiles, charts and meta."""
    recent, index_count = await read_recent(store, limit)
    locations = await read_locations(store, account=account, events=recent)
    series = await read_series(store, locations)
    return {
        "ok": True,
        "recent": [event.to_stored() for event in recent],
        "locations": [entry.to_stored() for entry in locations],
        "series": {loc: [p.model_dump() for p in points] for loc, points in series.items()},
        "meta": {
            "store": store.config.store_name,
            "index_count": index_count,
            "limit": limit,
            "generated_at": iso_timestamp(now or datetime.now(UTC)),
            "wf3": wf3_stats(recent).model_dump(),
        },
    }
