"""Process-local key-value store."""

from __future__ import annotations

import asyncio


class InMemoryStore:
    """Dict-backed store with conditional-write support.

    Every operation yields to the event loop before touching data, the way
    a network round trip would, so concurrent interleavings behave like
    they do against a remote store.

    Parameters
    ----------
    latency : float
        Seconds each operation sleeps before running.
    """

    def __init__(self, *, latency: float = 0.0) -> None:
        self._latency = latency
        self._data: dict[str, tuple[str, int]] = {}
        self._version = 0

    async def _io(self, key: str | None = None) -> None:
        """Simulated round trip; *key* is the key being touched, if any."""
        await asyncio.sleep(self._latency)

    def _bump(self) -> int:
        self._version += 1
        return self._version

    async def get(self, key: str) -> str | None:
        await self._io(key)
        entry = self._data.get(key)
        return entry[0] if entry is not None else None

    async def set(self, key: str, value: str) -> None:
        await self._io(key)
        self._data[key] = (value, self._bump())

    async def list(self, prefix: str = "", limit: int | None = None) -> list[str]:
        await self._io()
        keys = sorted(k for k in self._data if k.startswith(prefix))
        return keys[:limit] if limit is not None else keys

    async def get_with_etag(self, key: str) -> tuple[str | None, str | None]:
        await self._io(key)
        entry = self._data.get(key)
        if entry is None:
            return None, None
        return entry[0], str(entry[1])

    async def set_if_match(self, key: str, value: str, etag: str | None) -> bool:
        await self._io(key)
        # Check and write happen without yielding, so they are atomic here.
        entry = self._data.get(key)
        current = str(entry[1]) if entry is not None else None
        if current != etag:
            return False
        self._data[key] = (value, self._bump())
        return True

    async def close(self) -> None:
        return None
