"""Write endpoints: the secret-guarded webhook and the dashboard form relay."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from aiohttp import web

from acxmatrix._handlers.common import (
    config_of,
    crm_of,
    json_response,
    read_json_body,
    require_secret,
    require_session,
    store_of,
)
from acxmatrix.crm import notify_integrity_best_effort
from acxmatrix.exceptions import MatrixMalformedInput, MatrixStoreError
from acxmatrix.ingestion.apply import IngestResult, ingest_payload
from acxmatrix.ingestion.event import unix_millis
from acxmatrix.ingestion.normalize import to_str

_logger = logging.getLogger(__name__)

# Fields the dashboard form is allowed to relay.
FORM_FIELDS = ("acx_integrity", "uptime", "response_ms", "conversion", "quotes_recovered")


async def _ingest(request: web.Request, payload: Any, *, source: str) -> web.Response:
    try:
        result: IngestResult = await ingest_payload(store_of(request), payload, source=source)
    except MatrixStoreError:
        _logger.error("Event write failed on %s", request.path, exc_info=True)
        return json_response({"ok": False, "error": "Event write failed", "code": "store_error"}, status=502)

    if config_of(request).crm_notify_integrity:
        event = result.event
        await notify_integrity_best_effort(crm_of(request), event.contact_id, str(event.integrity))
    return json_response(result.to_response())


async def handle_webhook(request: web.Request) -> web.Response:
    """``POST /acx-matrix-webhook``: store one telemetry or workflow event."""
    require_secret(request)
    payload = await read_json_body(request)
    return await _ingest(request, payload, source="webhook")


def build_form_payload(body: dict[str, Any], *, now: datetime) -> dict[str, Any]:
    """Shape a dashboard form submission into a webhook payload.

    Raises
    ------
    MatrixMalformedInput
        ``account`` or ``location_id`` is missing.
    """
    account = to_str(body.get("account"))
    location = to_str(body.get("location_id")) or to_str(body.get("location"))
    if not account or not location:
        raise MatrixMalformedInput("Missing account or location_id")

    payload: dict[str, Any] = {
        "account": account,
        "location_id": location,
        "run_id": to_str(body.get("run_id")) or f"run_FORM_{unix_millis(now)}",
    }
    for name in FORM_FIELDS:
        if name in body:
            payload[name] = body[name]
    return payload


async def handle_form(request: web.Request) -> web.Response:
    """``POST /acx-matrix-ingest-form``: logged-in operator relay."""
    require_session(request)
    body = await read_json_body(request, strict=True)
    if not isinstance(body, dict):
        raise MatrixMalformedInput("Invalid JSON body")
    payload = build_form_payload(body, now=datetime.now(UTC))
    return await _ingest(request, payload, source="form")
