"""Dashboard login, logout and session check."""

from __future__ import annotations

import hmac
import logging

from aiohttp import web

from acxmatrix._constants import LOGIN_PATH, SESSION_COOKIE_NAME
from acxmatrix._handlers.common import config_of, json_response, read_json_body, require_session
from acxmatrix.exceptions import MatrixAuthError, MatrixConfigError
from acxmatrix.ingestion.normalize import to_str
from acxmatrix.session import issue_token

_logger = logging.getLogger(__name__)


def _client_ip(request: web.Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote or ""


async def handle_login(request: web.Request) -> web.Response:
    """``POST /auth-login`` with ``{"password": ...}``."""
    config = config_of(request)
    if not config.session_key or not config.dash_password:
        raise MatrixConfigError("Dashboard login is not configured")

    body = await read_json_body(request)
    password = to_str(body.get("password")) if isinstance(body, dict) else ""
    if not password or not hmac.compare_digest(password.encode("utf-8"), config.dash_password.encode("utf-8")):
        _logger.info("Rejected dashboard login from %s", _client_ip(request))
        raise MatrixAuthError("Invalid password")

    token = issue_token(
        config.session_key,
        max_age=config.session_max_age,
        user_agent=request.headers.get("User-Agent", ""),
        client_ip=_client_ip(request),
    )
    response = json_response({"ok": True})
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=config.session_max_age,
        path="/",
        httponly=True,
        secure=True,
        samesite="Lax",
    )
    return response


async def handle_logout(request: web.Request) -> web.Response:
    response = web.Response(status=303, headers={"Location": LOGIN_PATH, "Cache-Control": "no-store"})
    response.set_cookie(
        SESSION_COOKIE_NAME,
        "",
        max_age=0,
        path="/",
        httponly=True,
        secure=True,
        samesite="Lax",
    )
    return response


async def handle_check(request: web.Request) -> web.Response:
    require_session(request)
    return json_response({"ok": True})
