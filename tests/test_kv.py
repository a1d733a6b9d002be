from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pytest
from fakeredis import FakeRedis, FakeServer
from fakeredis.aioredis import FakeRedis as FakeAsyncRedis

from acxmatrix.config import MatrixConfig, StoreBackend
from acxmatrix.kv import ConditionalKeyValueStore, InMemoryStore, KeyValueStore, open_store
from acxmatrix.kv import redis as redis_kv
from acxmatrix.kv.redis import RedisStore


@pytest.mark.asyncio
async def test_memory_store_list_is_sorted_and_limited() -> None:
    kv = InMemoryStore()
    for key in ("event:3:c", "index:global", "event:1:a", "event:2:b"):
        await kv.set(key, "{}")

    assert await kv.list("event:") == ["event:1:a", "event:2:b", "event:3:c"]
    assert await kv.list("event:", limit=2) == ["event:1:a", "event:2:b"]
    assert len(await kv.list()) == 4


@pytest.mark.asyncio
async def test_memory_store_conditional_writes() -> None:
    kv = InMemoryStore()

    assert await kv.get_with_etag("k") == (None, None)
    assert await kv.set_if_match("k", "v1", None) is True
    assert await kv.set_if_match("k", "v2", None) is False

    value, etag = await kv.get_with_etag("k")
    assert value == "v1"
    assert await kv.set_if_match("k", "v2", etag) is True
    assert await kv.set_if_match("k", "v3", etag) is False
    assert await kv.get("k") == "v2"


@pytest.mark.asyncio
async def test_open_store_selects_backend() -> None:
    memory = open_store(MatrixConfig())
    assert isinstance(memory, InMemoryStore)
    assert isinstance(memory, ConditionalKeyValueStore)

    redis_store = open_store(MatrixConfig(store_backend=StoreBackend.REDIS, redis_url="redis://127.0.0.1:1/0"))
    assert isinstance(redis_store, RedisStore)
    assert isinstance(redis_store, KeyValueStore)
    assert isinstance(redis_store, ConditionalKeyValueStore)
    await redis_store.close()


@asynccontextmanager
async def _redis_store(name: str = "matrix") -> AsyncIterator[tuple[RedisStore, FakeServer]]:
    server = FakeServer()
    store = RedisStore(FakeAsyncRedis(server=server, decode_responses=True), name)
    try:
        yield store, server
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_redis_store_namespaces_keys() -> None:
    async with _redis_store() as (store, server):
        await store.set("event:1:a", '{"uptime": 1}')
        other = RedisStore(FakeAsyncRedis(server=server, decode_responses=True), "other")
        await other.set("event:9:z", "{}")

        raw = FakeRedis(server=server, decode_responses=True)
        assert raw.get("matrix/event:1:a") == '{"uptime": 1}'
        assert await store.get("event:1:a") == '{"uptime": 1}'
        assert await store.get("event:9:z") is None
        assert await store.list("event:") == ["event:1:a"]
        await other.close()


@pytest.mark.asyncio
async def test_redis_store_list_sorts_limits_and_matches_prefix_literally() -> None:
    async with _redis_store() as (store, _):
        keys = ("event:3:c", "event:1:a", "event:2:b", "index:global", "loc:a*:x", "loc:ab:x", "loc:[x]:1", "loc:x:1")
        for key in keys:
            await store.set(key, "{}")

        assert await store.list("event:") == ["event:1:a", "event:2:b", "event:3:c"]
        assert await store.list("event:", limit=2) == ["event:1:a", "event:2:b"]
        assert await store.list("loc:a*") == ["loc:a*:x"]
        assert await store.list("loc:[x]") == ["loc:[x]:1"]
        assert len(await store.list()) == 8


@pytest.mark.asyncio
async def test_redis_store_conditional_writes() -> None:
    async with _redis_store() as (store, _):
        assert await store.get_with_etag("k") == (None, None)
        assert await store.set_if_match("k", "v1", None) is True
        assert await store.set_if_match("k", "v2", None) is False

        value, etag = await store.get_with_etag("k")
        assert value == "v1"
        await store.set("k", "v-other")
        assert await store.set_if_match("k", "v2", etag) is False
        assert await store.get("k") == "v-other"

        _, etag = await store.get_with_etag("k")
        assert await store.set_if_match("k", "v3", etag) is True
        assert await store.get("k") == "v3"


@pytest.mark.asyncio
async def test_redis_store_conditional_write_loses_watch_race(monkeypatch: pytest.MonkeyPatch) -> None:
    async with _redis_store() as (store, server):
        await store.set("k", "v1")
        _, etag = await store.get_with_etag("k")
        intruder = FakeRedis(server=server, decode_responses=True)
        real_etag = redis_kv._etag

        def _etag_then_write(value: str | bytes) -> str:
            # Lands between WATCH and EXEC.
            intruder.set("matrix/k", "v-intruder")
            return real_etag(value)

        monkeypatch.setattr(redis_kv, "_etag", _etag_then_write)
        assert await store.set_if_match("k", "v2", etag) is False
        monkeypatch.undo()

        assert await store.get("k") == "v-intruder"
