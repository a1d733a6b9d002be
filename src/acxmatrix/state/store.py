"""Aggregate state on top of a key-value store adapter.

This is the only component allowed to write events, indexes, summaries
and location lists. Every update of a shared key is a read-modify-write;
how concurrent writers are coordinated is selected by
:class:`~acxmatrix.config.WriteMode`:

``lock_free``
    Plain read, compute, write. Two writers that read the same prior value
    both write back and the later write wins outright; one prepend to an
    index can be lost. The event record itself is never lost.
``serialized``
    A per-key :class:`asyncio.Lock` orders writers inside this process.
    Other processes are not coordinated.
``cas``
    Conditional writes against the store's version tag, retried up to
    ``cas_max_attempts`` times.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from acxmatrix.config import MatrixConfig, WriteMode
from acxmatrix.exceptions import (
    MatrixConfigError,
    MatrixError,
    MatrixStoreError,
    MatrixStoreTimeout,
    MatrixWriteConflict,
)
from acxmatrix.kv.base import ConditionalKeyValueStore, KeyValueStore
from acxmatrix.models.event import Event
from acxmatrix.models.summary import LocationListEntry, LocationSummary
from acxmatrix.state import keys as _keys
from acxmatrix.state.index import coerce_index, push_index
from acxmatrix.state.policy import merge_summary, upsert_location_entry

_logger = logging.getLogger(__name__)

T = TypeVar("T")


def _decode(key: str, raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        _logger.warning("Stored value under %s is not JSON; ignoring it", key)
        return None


def _encode(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


class MatrixStore:
    """Typed, timeout-bounded access to the stored aggregates."""

    def __init__(self, kv: KeyValueStore, config: MatrixConfig) -> None:
        if config.write_mode == WriteMode.CAS and not isinstance(kv, ConditionalKeyValueStore):
            raise MatrixConfigError(f"{type(kv).__name__} does not support conditional writes required by 'cas'")
        self._kv = kv
        self._config = config
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def config(self) -> MatrixConfig:
        return self._config

    @property
    def kv(self) -> KeyValueStore:
        return self._kv

    async def close(self) -> None:
        await self._kv.close()

    # ------------------------------------------------------------------
    # Raw access
    # ------------------------------------------------------------------

    async def _call(self, op: str, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run one adapter call under the store timeout."""
        try:
            async with asyncio.timeout(self._config.store_timeout):
                return await fn()
        except TimeoutError as exc:
            raise MatrixStoreTimeout(f"Store {op} timed out for {key!r}", key=key) from exc
        except MatrixError:
            raise
        except Exception as exc:
            # Adapter errors come from arbitrary client libraries.
            raise MatrixStoreError(f"Store {op} failed for {key!r}: {exc}", key=key) from exc

    async def read_json(self, key: str) -> Any:
        """Return the decoded value under *key*, or ``None`` if absent or not JSON."""
        raw = await self._call("get", key, lambda: self._kv.get(key))
        return _decode(key, raw)

    async def write_json(self, key: str, value: Any) -> None:
        payload = _encode(value)
        await self._call("set", key, lambda: self._kv.set(key, payload))

    async def list_keys(self, prefix: str = "", limit: int | None = None) -> list[str]:
        return await self._call("list", prefix, lambda: self._kv.list(prefix, limit))

    async def update(self, key: str, fn: Callable[[Any], Any]) -> Any:
        """Read-modify-write *key* with ``fn(current) -> new`` under the write mode."""
        mode = self._config.write_mode
        if mode == WriteMode.CAS:
            return await self._update_cas(key, fn)
        if mode == WriteMode.SERIALIZED:
            lock = self._locks.setdefault(key, asyncio.Lock())
            async with lock:
                return await self._update_plain(key, fn)
        return await self._update_plain(key, fn)

    async def _update_plain(self, key: str, fn: Callable[[Any], Any]) -> Any:
        current = await self.read_json(key)
        new = fn(current)
        await self.write_json(key, new)
        return new

    async def _update_cas(self, key: str, fn: Callable[[Any], Any]) -> Any:
        kv = self._kv
        assert isinstance(kv, ConditionalKeyValueStore)  # noqa: S101
        for attempt in range(1, self._config.cas_max_attempts + 1):
            raw, etag = await self._call("get", key, lambda: kv.get_with_etag(key))
            new = fn(_decode(key, raw))
            payload = _encode(new)
            written = await self._call("set", key, lambda: kv.set_if_match(key, payload, etag))
            if written:
                return new
            _logger.debug("Conditional write on %s lost (attempt %d)", key, attempt)
        raise MatrixWriteConflict(
            f"Gave up on {key!r} after {self._config.cas_max_attempts} conditional write attempts",
            key=key,
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def put_event(self, event: Event, *, unix_millis: int) -> str:
        """Write *event* under a fresh ``event:<millis>:<suffix>`` key."""
        key = _keys.event_key(unix_millis)
        await self.write_json(key, event.to_stored())
        return key

    async def read_event(self, key: str) -> Event | None:
        return Event.from_stored(await self.read_json(key))

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------

    async def read_index(self, key: str) -> list[str]:
        return coerce_index(await self.read_json(key))

    async def push_global_index(self, event_key: str) -> list[str]:
        max_len = self._config.index_max_len
        return await self.update(
            _keys.GLOBAL_INDEX_KEY,
            lambda raw: push_index(coerce_index(raw), event_key, max_len),
        )

    async def push_location_index(self, account: str, location: str, event_key: str) -> list[str]:
        max_len = self._config.location_index_max_len
        return await self.update(
            _keys.location_index_key(account, location),
            lambda raw: push_index(coerce_index(raw), event_key, max_len),
        )

    # ------------------------------------------------------------------
    # Summaries and location lists
    # ------------------------------------------------------------------

    async def read_summary(self, account: str, location: str) -> LocationSummary | None:
        return LocationSummary.from_stored(await self.read_json(_keys.summary_key(account, location)))

    async def merge_location_summary(self, event: Event) -> LocationSummary:
        """Fold *event* into the stored summary for its location."""
        merged: LocationSummary | None = None

        def _apply(raw: Any) -> dict[str, Any]:
            nonlocal merged
            merged = merge_summary(LocationSummary.from_stored(raw), event)
            return merged.to_stored()

        await self.update(_keys.summary_key(event.account, event.location), _apply)
        assert merged is not None  # noqa: S101
        return merged

    async def read_location_list(self, account: str) -> list[LocationListEntry]:
        raw = await self.read_json(_keys.location_list_key(account))
        if not isinstance(raw, list):
            return []
        entries = (LocationListEntry.from_stored(item) for item in raw)
        return [entry for entry in entries if entry is not None]

    async def upsert_location_list(self, summary: LocationSummary) -> list[LocationListEntry]:
        entries: list[LocationListEntry] = []

        def _apply(raw: Any) -> list[dict[str, Any]]:
            nonlocal entries
            current = raw if isinstance(raw, list) else []
            parsed = [e for e in (LocationListEntry.from_stored(item) for item in current) if e is not None]
            entries = upsert_location_entry(parsed, summary)
            return [entry.to_stored() for entry in entries]

        await self.update(_keys.location_list_key(summary.account), _apply)
        return entries
