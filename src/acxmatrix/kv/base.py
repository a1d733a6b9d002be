"""Structural key-value store interfaces.

Any durable blob store with get/set/prefix-listing satisfies
:class:`KeyValueStore`. There are no transactions and no multi-key
atomicity. Stores that can do conditional writes additionally satisfy
:class:`ConditionalKeyValueStore`, which enables the ``cas`` write mode.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def list(self, prefix: str = "", limit: int | None = None) -> list[str]:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class ConditionalKeyValueStore(KeyValueStore, Protocol):
    async def get_with_etag(self, key: str) -> tuple[str | None, str | None]:
        """Return the value and an opaque version tag (``None`` if absent)."""
        ...

    async def set_if_match(self, key: str, value: str, etag: str | None) -> bool:
        """Write only if the key still has *etag* (``None``: only if absent)."""
        ...
