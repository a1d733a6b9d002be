"""Key-value store adapters."""

from __future__ import annotations

from acxmatrix.config import MatrixConfig, StoreBackend
from acxmatrix.kv.base import ConditionalKeyValueStore, KeyValueStore
from acxmatrix.kv.memory import InMemoryStore


def open_store(config: MatrixConfig) -> KeyValueStore:
    """Build the adapter selected by ``config.store_backend``."""
    if config.store_backend == StoreBackend.REDIS:
        from acxmatrix.kv.redis import RedisStore

        return RedisStore.from_url(config.redis_url, config.store_name)
    return InMemoryStore()


__all__ = [
    "ConditionalKeyValueStore",
    "InMemoryStore",
    "KeyValueStore",
    "open_store",
]
