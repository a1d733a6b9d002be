"""Custom exception hierarchy for acxmatrix.

Every error carries the HTTP ``status`` and a short machine ``code`` the
handlers use to shape ``{"ok": false, ...}`` responses.
"""

from __future__ import annotations


class MatrixError(Exception):
    """Base exception for all acxmatrix errors."""

    status: int = 500
    code: str = "error"


class MatrixConfigError(MatrixError):
    """Invalid or missing configuration."""

    code = "config_error"


class MatrixAuthError(MatrixError):
    """Missing/mismatched shared secret or invalid session."""

    status = 401
    code = "unauthorized"


class MatrixMethodNotAllowed(MatrixError):
    """Request used an HTTP method the endpoint does not accept."""

    status = 405
    code = "method_not_allowed"


class MatrixMalformedInput(MatrixError):
    """Request body is unusable for an endpoint that needs specific fields."""

    status = 400
    code = "bad_request"


class MatrixStoreError(MatrixError):
    """Backing key-value store failed or is unavailable."""

    code = "store_error"

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class MatrixStoreTimeout(MatrixStoreError):
    """A store call exceeded the configured timeout."""


class MatrixWriteConflict(MatrixStoreError):
    """Conditional write kept losing after all retry attempts."""


class MatrixUpstreamError(MatrixError):
    """External CRM call failed.

    The upstream status and body are passed through to the caller.
    """

    code = "upstream_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 502,
        body: str = "",
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.status = status_code
        self.body = body
        self.endpoint = endpoint
        super().__init__(message)


class MatrixUnprocessable(MatrixError):
    """Request is well-formed but cannot be applied (e.g. CRM field missing)."""

    status = 422
    code = "unprocessable"
