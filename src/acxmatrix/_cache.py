"""Small time-bounded cache for derived lookups.

Entries are recomputable on miss; nothing here is authoritative.
"""

from __future__ import annotations

import copy
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

V = TypeVar("V")


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[V]):
    """Map of key -> value where each entry expires ``ttl`` seconds after it was set."""

    def __init__(
        self,
        ttl: float,
        *,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, _Entry[V]] = {}

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return copy.deepcopy(entry.value)

    def set(self, key: str, value: V) -> None:
        if self._ttl <= 0:
            return
        if key not in self._entries and len(self._entries) >= self._max_entries:
            # Evict the entry closest to expiry.
            oldest = min(self._entries, key=lambda k: self._entries[k].expires_at)
            self._entries.pop(oldest, None)
        self._entries[key] = _Entry(copy.deepcopy(value), self._clock() + self._ttl)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
