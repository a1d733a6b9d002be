"""Read endpoints backing the dashboard."""

from __future__ import annotations

from aiohttp import web

from acxmatrix._handlers.common import (
    config_of,
    json_response,
    require_secret,
    require_secret_or_session,
    require_session,
    store_of,
)
from acxmatrix.state import keys as _keys
from acxmatrix.state import reader


def _limit(request: web.Request) -> int:
    config = config_of(request)
    return reader.clamp_limit(
        request.query.get("limit"),
        default=config.recent_limit_default,
        maximum=config.recent_limit_max,
    )


def _account(request: web.Request) -> str | None:
    return request.query.get("account", "").strip() or None


async def handle_summary(request: web.Request) -> web.Response:
    require_secret_or_session(request)
    body = await reader.read_summary(store_of(request), limit=_limit(request), account=_account(request))
    return json_response(body)


async def handle_recent(request: web.Request) -> web.Response:
    require_secret_or_session(request)
    limit = _limit(request)
    events, index_count = await reader.read_recent(store_of(request), limit)
    return json_response(
        {
            "ok": True,
            "recent": [event.to_stored() for event in events],
            "meta": {"index_count": index_count, "limit": limit},
        }
    )


async def handle_locations(request: web.Request) -> web.Response:
    require_secret_or_session(request)
    account = _account(request) or config_of(request).default_account
    entries = await reader.read_locations(store_of(request), account=account)
    return json_response({"ok": True, "account": account, "locations": [e.to_stored() for e in entries]})


async def handle_series(request: web.Request) -> web.Response:
    require_secret_or_session(request)
    store = store_of(request)
    locations = await reader.read_locations(store, account=_account(request))
    series = await reader.read_series(store, locations)
    return json_response(
        {
            "ok": True,
            "series": {loc: [p.model_dump() for p in points] for loc, points in series.items()},
        }
    )


async def handle_health(request: web.Request) -> web.Response:
    """Index depth and timestamp of the newest event."""
    require_session(request)
    events, index_count = await reader.read_recent(store_of(request), 1)
    return json_response(
        {
            "ok": True,
            "index_count": index_count,
            "last_event_ts": events[0].ts if events else None,
        }
    )


async def handle_public_health(request: web.Request) -> web.Response:
    require_secret(request)
    return json_response({"ok": True})


async def handle_debug_list(request: web.Request) -> web.Response:
    """Sample of stored keys under ``prefix`` (default ``event:``)."""
    require_secret(request)
    prefix = request.query.get("prefix", _keys.EVENT_PREFIX)
    limit = _limit(request)
    found = await store_of(request).list_keys(prefix, limit=limit)
    return json_response({"ok": True, "prefix": prefix, "count": len(found), "keys": found})
