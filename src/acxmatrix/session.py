"""Dashboard session tokens.

A token is ``b64url(json claims) + "." + b64url(HMAC-SHA256(key, payload))``
carried in the ``acx_session`` cookie.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time

from pydantic import BaseModel, ConfigDict, ValidationError


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _from_b64url(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _sign(payload: str, key: str) -> bytes:
    return hmac.new(key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).digest()


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionClaims(BaseModel):
    """Claims carried by a session token.

    Parameters
    ----------
    iat : int
        Issue time, epoch milliseconds.
    exp : int
        Expiry time, epoch milliseconds.
    ua : str
        User agent at login; informational only.
    ip_hash : str
        Keyed hash of the client address at login; informational only.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    iat: int
    exp: int
    ua: str = ""
    ip_hash: str = ""

    def is_expired(self, now_ms: int | None = None) -> bool:
        return (now_ms if now_ms is not None else _now_ms()) > self.exp


def issue_token(
    key: str,
    *,
    max_age: int,
    user_agent: str = "",
    client_ip: str = "",
    now_ms: int | None = None,
) -> str:
    """Create a signed session token valid for *max_age* seconds."""
    if not key:
        raise ValueError("session key must be non-empty")
    iat = now_ms if now_ms is not None else _now_ms()
    claims = SessionClaims(
        iat=iat,
        exp=iat + max_age * 1000,
        ua=user_agent,
        ip_hash=_b64url(_sign(client_ip, key)),
    )
    payload = _b64url(json.dumps(claims.model_dump(), separators=(",", ":")).encode("utf-8"))
    return f"{payload}.{_b64url(_sign(payload, key))}"


def verify_token(token: str | None, key: str, *, now_ms: int | None = None) -> SessionClaims | None:
    """Return the claims of a valid token, or ``None``.

    Malformed, expired and MAC-mismatched tokens are all rejected the same
    way; an empty *key* rejects everything.
    """
    if not key or not token or token.count(".") != 1:
        return None
    payload, mac = token.split(".")
    try:
        got = _from_b64url(mac)
        claims = SessionClaims.model_validate_json(_from_b64url(payload))
    except (ValueError, ValidationError):
        return None
    if not hmac.compare_digest(_sign(payload, key), got):
        return None
    if claims.is_expired(now_ms):
        return None
    return claims
