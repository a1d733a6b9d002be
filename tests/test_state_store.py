from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from acxmatrix.config import MatrixConfig, WriteMode
from acxmatrix.exceptions import MatrixConfigError, MatrixStoreError, MatrixStoreTimeout, MatrixWriteConflict
from acxmatrix.ingestion.apply import ingest_payload
from acxmatrix.kv.memory import InMemoryStore
from acxmatrix.state import keys
from acxmatrix.state.store import MatrixStore

T0 = datetime(2026, 2, 11, 12, 0, tzinfo=UTC)


class _FailingStore(InMemoryStore):
    """Raises on any access to keys starting with ``fail_prefix``."""

    def __init__(self, fail_prefix: str) -> None:
        super().__init__()
        self.fail_prefix = fail_prefix

    async def _io(self, key: str | None = None) -> None:
        await super()._io(key)
        if key is not None and key.startswith(self.fail_prefix):
            raise ConnectionError(f"injected failure for {key}")


class _LosingStore(InMemoryStore):
    """Every conditional write loses."""

    async def set_if_match(self, key: str, value: str, etag: str | None) -> bool:
        await self._io(key)
        return False


class _PlainStore:
    """Adapter without conditional-write support."""

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str) -> None:
        return None

    async def list(self, prefix: str = "", limit: int | None = None) -> list[str]:
        return []

    async def close(self) -> None:
        return None


def _store(mode: WriteMode = WriteMode.LOCK_FREE, **overrides: object) -> MatrixStore:
    return MatrixStore(InMemoryStore(), MatrixConfig(write_mode=mode, **overrides))


async def _ingest_pair(store: MatrixStore, first: dict[str, object], second: dict[str, object]) -> None:
    await asyncio.gather(
        ingest_payload(store, first, now=T0),
        ingest_payload(store, second, now=T0 + timedelta(milliseconds=1)),
    )


@pytest.mark.asyncio
async def test_sequential_writes_keep_every_index_entry() -> None:
    store = _store()
    results = [await ingest_payload(store, {"location": "L1", "uptime": i + 1}, now=T0) for i in range(3)]

    index = await store.read_index(keys.GLOBAL_INDEX_KEY)
    assert index == [r.key for r in reversed(results)]
    assert await store.read_index(keys.location_index_key("ACX", "L1")) == index


@pytest.mark.asyncio
async def test_lock_free_concurrent_writes_can_lose_an_index_prepend() -> None:
    store = _store(WriteMode.LOCK_FREE)
    await _ingest_pair(store, {"location": "L1"}, {"location": "L2"})

    index = await store.read_index(keys.GLOBAL_INDEX_KEY)
    event_keys = await store.list_keys(keys.EVENT_PREFIX)

    # Both event records survive even though one index prepend was overwritten.
    assert len(event_keys) == 2
    assert len(index) == 1


@pytest.mark.asyncio
async def test_lock_free_concurrent_summary_merges_last_writer_wins() -> None:
    store = _store(WriteMode.LOCK_FREE)
    await _ingest_pair(
        store,
        {"location": "L1", "uptime": 90, "integrity": "critical"},
        {"location": "L1", "conversion": 0.5},
    )

    summary = await store.read_summary("ACX", "L1")
    assert summary is not None
    assert not (summary.uptime == 90 and summary.conversion == 0.5)


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", [WriteMode.SERIALIZED, WriteMode.CAS])
async def test_coordinated_modes_keep_both_writes(mode: WriteMode) -> None:
    store = _store(mode)
    await _ingest_pair(
        store,
        {"location": "L1", "uptime": 90, "integrity": "critical"},
        {"location": "L1", "conversion": 0.5},
    )

    assert len(await store.read_index(keys.GLOBAL_INDEX_KEY)) == 2
    assert len(await store.read_index(keys.location_index_key("ACX", "L1"))) == 2
    summary = await store.read_summary("ACX", "L1")
    assert summary is not None
    assert summary.uptime == 90
    assert summary.conversion == 0.5
    assert summary.integrity == "critical"
    assert [e.location for e in await store.read_location_list("ACX")] == ["L1"]


def test_cas_requires_conditional_adapter() -> None:
    with pytest.raises(MatrixConfigError):
        MatrixStore(_PlainStore(), MatrixConfig(write_mode=WriteMode.CAS))


@pytest.mark.asyncio
async def test_cas_gives_up_after_max_attempts() -> None:
    store = MatrixStore(_LosingStore(), MatrixConfig(write_mode=WriteMode.CAS, cas_max_attempts=3))
    with pytest.raises(MatrixWriteConflict):
        await store.push_global_index("event:1:a")


@pytest.mark.asyncio
async def test_slow_store_raises_timeout() -> None:
    store = MatrixStore(InMemoryStore(latency=1.0), MatrixConfig(store_timeout=0.01))
    with pytest.raises(MatrixStoreTimeout):
        await store.read_json("index:global")


@pytest.mark.asyncio
async def test_adapter_errors_become_store_errors() -> None:
    store = MatrixStore(_FailingStore("index:"), MatrixConfig())
    with pytest.raises(MatrixStoreError) as exc_info:
        await store.read_index(keys.GLOBAL_INDEX_KEY)
    assert exc_info.value.key == keys.GLOBAL_INDEX_KEY


@pytest.mark.asyncio
async def test_non_json_values_read_as_absent() -> None:
    kv = InMemoryStore()
    store = MatrixStore(kv, MatrixConfig())
    await kv.set(keys.GLOBAL_INDEX_KEY, "not json")
    await kv.set(keys.summary_key("ACX", "L1"), '{"account": "ACX"}')

    assert await store.read_index(keys.GLOBAL_INDEX_KEY) == []
    assert await store.read_summary("ACX", "L1") is None


@pytest.mark.asyncio
async def test_index_bound_respected_through_store() -> None:
    store = _store(index_max_len=3)
    for i in range(5):
        await store.push_global_index(f"event:{i}:x")
    assert await store.read_index(keys.GLOBAL_INDEX_KEY) == ["event:4:x", "event:3:x", "event:2:x"]
