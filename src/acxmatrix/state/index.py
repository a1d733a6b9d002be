"""Bounded newest-first key indexes.

An index is a JSON list of event keys stored under a dedicated key.
Insertion is always at the front; overflow drops the oldest keys from the
tail. Dropping a key never deletes the event record it points to.
"""

from __future__ import annotations

import logging
from typing import Any

_logger = logging.getLogger(__name__)


def push_index(existing: list[str], new_key: str, max_len: int) -> list[str]:
    """Prepend *new_key* and truncate to *max_len* from the tail.

    Pure function; callers own the read-before and write-after against the
    store.
    """
    if max_len < 1:
        raise ValueError(f"max_len must be >= 1, got {max_len}")
    return [new_key, *existing][:max_len]


def coerce_index(raw: Any) -> list[str]:
    """Decode a stored index value, treating anything unusable as empty."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        _logger.warning("Ignoring index value of unexpected type %s", type(raw).__name__)
        return []
    return [item for item in raw if isinstance(item, str) and item]
