from __future__ import annotations

import pytest

from acxmatrix.state import keys
from acxmatrix.state.index import coerce_index, push_index


def test_push_index_prepends_newest_first() -> None:
    assert push_index(["b", "a"], "c", 10) == ["c", "b", "a"]


def test_push_index_bounded_after_more_than_max_insertions() -> None:
    index: list[str] = []
    for i in range(1001):
        index = push_index(index, f"k{i}", 1000)

    assert len(index) == 1000
    assert index[0] == "k1000"
    assert index[-1] == "k1"
    assert index == [f"k{i}" for i in range(1000, 0, -1)]


def test_push_index_rejects_non_positive_bound() -> None:
    with pytest.raises(ValueError):
        push_index([], "k", 0)


def test_coerce_index_tolerates_garbage() -> None:
    assert coerce_index(None) == []
    assert coerce_index({"not": "a list"}) == []
    assert coerce_index(["a", 1, "", None, "b"]) == ["a", "b"]


def test_key_layout() -> None:
    assert keys.event_key(1770771900123, "ab12cd34") == "event:1770771900123:ab12cd34"
    assert keys.location_index_key("ACX", "L1") == "index:loc:ACX:L1"
    assert keys.summary_key("ACX", "L1") == "loc:ACX:L1"
    assert keys.location_list_key("ACX") == "locations:ACX"
    assert keys.GLOBAL_INDEX_KEY == "index:global"


def test_event_keys_are_unique() -> None:
    generated = {keys.event_key(1) for _ in range(100)}
    assert len(generated) == 100
    assert all(keys.is_event_key(k) for k in generated)
