"""Deterministic summary merge policy.

This module contains *no* payload parsing and no I/O. The ingestion
boundary produces normalized events; the store wrapper owns the
read-modify-write cycle around these functions.
"""

from __future__ import annotations

from collections.abc import Iterable

from acxmatrix.models.event import METRIC_FIELDS, Event, Integrity
from acxmatrix.models.summary import LocationListEntry, LocationSummary


def merge_metric(incoming: float, prior: float | None) -> float:
    """Incoming wins only when non-zero; otherwise keep prior, else 0."""
    if incoming:
        return incoming
    if prior:
        return prior
    return 0.0


def merge_integrity(incoming: Integrity, prior: Integrity | None) -> Integrity:
    """An ``unknown`` incoming value never regresses a known state."""
    if incoming != Integrity.UNKNOWN:
        return incoming
    if prior is not None:
        return prior
    return Integrity.UNKNOWN


def merge_summary(prior: LocationSummary | None, incoming: Event) -> LocationSummary:
    """Merge *incoming* into the prior summary for its location.

    Policy:
    - ``last_seen`` always advances to the incoming timestamp.
    - Each metric keeps the prior value unless the incoming one is non-zero.
    - ``integrity`` keeps the prior value unless the incoming one is known.

    Merging the same event twice yields the same summary as merging it once.
    """
    fields: dict[str, object] = {
        "account": incoming.account,
        "location": incoming.location,
        "last_seen": incoming.ts,
        "integrity": merge_integrity(incoming.integrity, prior.integrity if prior else None),
    }
    for name in METRIC_FIELDS:
        fields[name] = merge_metric(getattr(incoming, name), getattr(prior, name) if prior else None)
    return LocationSummary.model_validate(fields)


def dedupe_entries(entries: Iterable[LocationListEntry]) -> list[LocationListEntry]:
    """Keep the first entry per ``account:location``."""
    seen: set[str] = set()
    out: list[LocationListEntry] = []
    for entry in entries:
        if entry.identity in seen:
            continue
        seen.add(entry.identity)
        out.append(entry)
    return out


def upsert_location_entry(
    entries: list[LocationListEntry],
    summary: LocationSummary,
) -> list[LocationListEntry]:
    """Replace the entry for *summary*'s location in place, or insert it first."""
    entry = LocationListEntry.from_summary(summary)
    out = list(entries)
    for i, existing in enumerate(out):
        if existing.identity == entry.identity:
            out[i] = entry
            break
    else:
        out.insert(0, entry)
    return dedupe_entries(out)
