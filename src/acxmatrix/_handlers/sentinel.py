"""Sentinel console-status webhook."""

from __future__ import annotations

from aiohttp import web

from acxmatrix._handlers.common import crm_of, json_response, read_json_body, require_secret
from acxmatrix.crm import ConsoleStatus
from acxmatrix.exceptions import MatrixConfigError, MatrixMalformedInput


async def handle_sentinel(request: web.Request) -> web.Response:
    """``POST /acx-sentinel-webhook``: write console status onto a CRM contact."""
    require_secret(request)
    status = ConsoleStatus.from_payload(await read_json_body(request))
    if not status.contact_id:
        raise MatrixMalformedInput("Missing contact_id")

    crm = crm_of(request)
    if crm is None:
        raise MatrixConfigError("LC_API_KEY is not configured")
    return json_response(await crm.push_console_status(status))
