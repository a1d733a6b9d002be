"""Shared plumbing for the HTTP handlers: app keys, auth guards, JSON I/O."""

from __future__ import annotations

import hmac
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web

from acxmatrix._constants import SECRET_HEADER, SESSION_COOKIE_NAME
from acxmatrix._redact import redact_for_log, redact_headers
from acxmatrix.config import MatrixConfig
from acxmatrix.crm import CrmClient
from acxmatrix.exceptions import (
    MatrixAuthError,
    MatrixError,
    MatrixMalformedInput,
    MatrixMethodNotAllowed,
    MatrixUpstreamError,
)
from acxmatrix.session import verify_token
from acxmatrix.state.store import MatrixStore

_logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", MatrixConfig)
STORE_KEY = web.AppKey("store", MatrixStore)
CRM_KEY = web.AppKey("crm", CrmClient)

_NO_STORE = {"Cache-Control": "no-store"}

# Callers only ever see these; internal messages stay in the logs.
_PUBLIC_MESSAGES: dict[str, str] = {
    "config_error": "Server not configured",
    "store_error": "Store unavailable",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def json_response(body: Any, status: int = 200) -> web.Response:
    return web.json_response(body, status=status, headers=_NO_STORE)


def error_response(exc: MatrixError) -> web.Response:
    message = _PUBLIC_MESSAGES.get(exc.code, str(exc))
    body: dict[str, Any] = {"ok": False, "error": message, "code": exc.code}
    if isinstance(exc, MatrixUpstreamError):
        body["status"] = exc.status_code
        body["response"] = exc.body
    return json_response(body, status=exc.status)


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Render every failure as ``{"ok": false, ...}`` without internals."""
    try:
        return await handler(request)
    except MatrixError as exc:
        if exc.status >= 500:
            _logger.warning("%s %s failed: %s", request.method, request.path, exc)
        return error_response(exc)
    except web.HTTPMethodNotAllowed:
        return error_response(MatrixMethodNotAllowed("Method Not Allowed"))
    except web.HTTPException:
        raise
    except Exception:
        _logger.exception("Unhandled error in %s %s", request.method, request.path)
        return json_response({"ok": False, "error": "Internal error", "code": "internal_error"}, status=500)


def config_of(request: web.Request) -> MatrixConfig:
    return request.app[CONFIG_KEY]


def store_of(request: web.Request) -> MatrixStore:
    return request.app[STORE_KEY]


def crm_of(request: web.Request) -> CrmClient | None:
    return request.app.get(CRM_KEY)


# ----------------------------------------------------------------------
# Authentication
# ----------------------------------------------------------------------


def _presented_secret(request: web.Request) -> str:
    header = request.headers.get(SECRET_HEADER, "").strip()
    if header:
        return header
    auth = request.headers.get("Authorization", "").strip()
    scheme, _, token = auth.partition(" ")
    if scheme.lower() == "bearer":
        return token.strip()
    return ""


def has_secret(request: web.Request) -> bool:
    presented = _presented_secret(request)
    if not presented:
        return False
    return any(
        hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))
        for expected in config_of(request).webhook_secrets
    )


def has_session(request: web.Request) -> bool:
    key = config_of(request).session_key
    return verify_token(request.cookies.get(SESSION_COOKIE_NAME), key) is not None


def require_secret(request: web.Request) -> None:
    if not has_secret(request):
        raise MatrixAuthError("Unauthorized")


def require_session(request: web.Request) -> None:
    if not has_session(request):
        raise MatrixAuthError("Unauthorized")


def require_secret_or_session(request: web.Request) -> None:
    if not (has_secret(request) or has_session(request)):
        raise MatrixAuthError("Unauthorized")


# ----------------------------------------------------------------------
# Bodies
# ----------------------------------------------------------------------


async def read_json_body(request: web.Request, *, strict: bool = False) -> Any:
    """Decode the request body.

    Malformed JSON becomes ``{}`` unless *strict*, in which case it raises
    :class:`MatrixMalformedInput`.
    """
    _logger.debug("%s %s headers: %s", request.method, request.path, redact_headers(request.headers))
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        if strict:
            raise MatrixMalformedInput("Invalid JSON body") from exc
        _logger.debug("Malformed JSON body on %s treated as empty", request.path)
        return {}
    _logger.debug("%s body: %s", request.path, redact_for_log(body))
    return body
