"""Store key layout.

These formats are shared with existing deployments and must not change.
"""

from __future__ import annotations

import secrets

GLOBAL_INDEX_KEY = "index:global"
EVENT_PREFIX = "event:"
LOCATION_INDEX_PREFIX = "index:loc:"
SUMMARY_PREFIX = "loc:"
LOCATION_LIST_PREFIX = "locations:"


def event_key(unix_millis: int, suffix: str | None = None) -> str:
    """``event:<unixMillis>:<randomSuffix>``."""
    if suffix is None:
        suffix = secrets.token_hex(4)
    return f"{EVENT_PREFIX}{unix_millis}:{suffix}"


def location_index_key(account: str, location: str) -> str:
    return f"{LOCATION_INDEX_PREFIX}{account}:{location}"


def summary_key(account: str, location: str) -> str:
    return f"{SUMMARY_PREFIX}{account}:{location}"


def location_list_key(account: str) -> str:
    return f"{LOCATION_LIST_PREFIX}{account}"


def is_event_key(key: str) -> bool:
    return key.startswith(EVENT_PREFIX)
