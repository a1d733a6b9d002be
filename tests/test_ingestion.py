from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from acxmatrix.config import MatrixConfig
from acxmatrix.exceptions import MatrixStoreError
from acxmatrix.ingestion.apply import ingest_payload
from acxmatrix.kv.memory import InMemoryStore
from acxmatrix.state import keys
from acxmatrix.state.reader import read_recent
from acxmatrix.state.store import MatrixStore

T0 = datetime(2026, 2, 11, 12, 0, tzinfo=UTC)


class _FailingStore(InMemoryStore):
    def __init__(self, fail_prefix: str) -> None:
        super().__init__()
        self.fail_prefix = fail_prefix

    async def _io(self, key: str | None = None) -> None:
        await super()._io(key)
        if key is not None and key.startswith(self.fail_prefix):
            raise ConnectionError("store down")


def _store(kv: InMemoryStore | None = None) -> MatrixStore:
    return MatrixStore(kv if kv is not None else InMemoryStore(), MatrixConfig())


@pytest.mark.asyncio
async def test_scenario_unknown_integrity_and_zero_metric_do_not_regress() -> None:
    store = _store()
    await ingest_payload(store, {"account": "A", "location": "L1", "integrity": "critical", "uptime": 90}, now=T0)
    result = await ingest_payload(
        store,
        {"account": "A", "location": "L1", "integrity": "", "uptime": 0},
        now=T0 + timedelta(minutes=1),
    )

    summary = await store.read_summary("A", "L1")
    assert summary is not None
    assert summary.integrity == "critical"
    assert summary.uptime == 90
    assert summary.last_seen == result.event.ts
    entries = await store.read_location_list("A")
    assert [(e.location, e.uptime, e.integrity) for e in entries] == [("L1", 90, "critical")]


@pytest.mark.asyncio
async def test_round_trip_through_recent() -> None:
    store = _store()
    written = await ingest_payload(
        store,
        {"location_id": "L7", "uptime": "99.5", "acx_integrity": "degraded", "runId": "r1", "contactId": "c1"},
        source="webhook",
        now=T0,
    )

    events, index_count = await read_recent(store, 10)

    assert index_count == 1
    assert events == [written.event]
    assert events[0].source == "webhook"


@pytest.mark.asyncio
async def test_response_shape() -> None:
    store = _store()
    result = await ingest_payload(store, {"location": "L1", "uptime": 1}, now=T0)
    body = result.to_response()

    assert body["ok"] is True
    assert body["stored"] is True
    assert body["key"].startswith("event:1770811200000:")
    assert body["index"] == {"global_count": 1, "loc_count": 1}
    assert body["event"]["location"] == "L1"
    assert "warnings" not in body


@pytest.mark.asyncio
async def test_empty_location_writes_event_and_global_index_only() -> None:
    store = _store()
    result = await ingest_payload(store, {"uptime": 50}, now=T0)

    assert await store.read_index(keys.GLOBAL_INDEX_KEY) == [result.key]
    assert result.location_count is None
    assert result.summary is None
    assert await store.list_keys(keys.SUMMARY_PREFIX) == []
    assert await store.list_keys(keys.LOCATION_LIST_PREFIX) == []
    assert await store.list_keys(keys.LOCATION_INDEX_PREFIX) == []


@pytest.mark.asyncio
async def test_event_write_failure_propagates() -> None:
    store = _store(_FailingStore(keys.EVENT_PREFIX))
    with pytest.raises(MatrixStoreError):
        await ingest_payload(store, {"location": "L1"}, now=T0)
    assert await store.read_index(keys.GLOBAL_INDEX_KEY) == []


@pytest.mark.asyncio
async def test_secondary_write_failures_become_warnings() -> None:
    store = _store(_FailingStore("index:"))
    result = await ingest_payload(store, {"location": "L1", "uptime": 3}, now=T0)

    assert result.warnings == ["global_index_update_failed", "location_index_update_failed"]
    assert result.summary is not None
    assert result.to_response()["warnings"] == result.warnings
    assert await store.read_event(result.key) == result.event


@pytest.mark.asyncio
async def test_summary_failure_skips_location_list() -> None:
    store = _store(_FailingStore(keys.SUMMARY_PREFIX))
    result = await ingest_payload(store, {"location": "L1", "uptime": 3}, now=T0)

    assert result.warnings == ["summary_update_failed"]
    assert await store.read_location_list("ACX") == []
