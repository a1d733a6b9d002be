"""Service configuration for acxmatrix."""

from __future__ import annotations

import dataclasses
import os
from enum import StrEnum
from typing import Any

from acxmatrix._constants import CRM_BASE_URL, DEFAULT_ACCOUNT
from acxmatrix.exceptions import MatrixConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


class WriteMode(StrEnum):
    """How read-modify-write updates of shared keys are coordinated."""

    LOCK_FREE = "lock_free"
    SERIALIZED = "serialized"
    CAS = "cas"


class StoreBackend(StrEnum):
    MEMORY = "memory"
    REDIS = "redis"


@dataclasses.dataclass(frozen=True)
class MatrixConfig:
    """Service configuration.

    Built once at process start and passed to every component.

    Parameters
    ----------
    webhook_secrets : tuple of str
        Accepted shared-secret values for ``x-acx-secret`` /
        ``Authorization: Bearer``. Empty values never match.
    session_key : str
        HMAC key for dashboard session cookies. Sessions are disabled
        when empty.
    dash_password : str
        Dashboard login password.
    store_name : str
        Name of the backing store (namespace for keys).
    store_backend : StoreBackend
        ``memory`` (process-local) or ``redis``.
    redis_url : str
        Connection URL used by the redis backend.
    default_account : str
        Account assigned to events that carry none.
    index_max_len : int
        Maximum length of the global event index.
    location_index_max_len : int
        Maximum length of each per-location index.
    series_cap : int
        Per-location index entries resolved for the series view.
    recent_limit_default : int
        ``limit`` used when a read request supplies none.
    recent_limit_max : int
        Upper clamp for the ``limit`` query parameter.
    write_mode : WriteMode
        ``lock_free`` keeps last-write-wins semantics; ``serialized``
        adds a per-key in-process lock; ``cas`` uses conditional writes.
    cas_max_attempts : int
        Retries for a conditional write before giving up.
    store_timeout : float
        Seconds allowed for any single store call.
    crm_api_key : str or None
        LeadConnector API key. CRM features are disabled without it.
    crm_base_url : str
        LeadConnector API base URL.
    crm_timeout : float
        Seconds allowed for any single CRM call.
    crm_field_cache_ttl : float
        Lifetime of cached contact custom-field id maps.
    crm_notify_integrity : bool
        Push known integrity to the event's CRM contact after ingestion.
    session_max_age : int
        Session cookie lifetime in seconds.
    display_timezone : str
        IANA zone used for human-readable timestamps sent to the CRM.
    """

    webhook_secrets: tuple[str, ...] = ()
    session_key: str = ""
    dash_password: str = ""
    store_name: str = "acx-matrix"
    store_backend: StoreBackend = StoreBackend.MEMORY
    redis_url: str = "redis://localhost:6379/0"
    default_account: str = DEFAULT_ACCOUNT
    index_max_len: int = 1000
    location_index_max_len: int = 1000
    series_cap: int = 120
    recent_limit_default: int = 50
    recent_limit_max: int = 500
    write_mode: WriteMode = WriteMode.LOCK_FREE
    cas_max_attempts: int = 5
    store_timeout: float = 5.0
    crm_api_key: str | None = None
    crm_base_url: str = CRM_BASE_URL
    crm_timeout: float = 10.0
    crm_field_cache_ttl: float = 300.0
    crm_notify_integrity: bool = False
    session_max_age: int = 7 * 24 * 3600
    display_timezone: str = "UTC"

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "write_mode", WriteMode(self.write_mode))
        except ValueError as exc:
            raise MatrixConfigError(f"Unknown write mode: {self.write_mode!r}") from exc
        try:
            object.__setattr__(self, "store_backend", StoreBackend(self.store_backend))
        except ValueError as exc:
            raise MatrixConfigError(f"Unknown store backend: {self.store_backend!r}") from exc

        for name in (
            "index_max_len",
            "location_index_max_len",
            "series_cap",
            "recent_limit_default",
            "recent_limit_max",
            "cas_max_attempts",
        ):
            if getattr(self, name) < 1:
                raise MatrixConfigError(f"{name} must be >= 1")
        if self.recent_limit_default > self.recent_limit_max:
            raise MatrixConfigError("recent_limit_default must not exceed recent_limit_max")
        if self.store_timeout <= 0 or self.crm_timeout <= 0:
            raise MatrixConfigError("timeouts must be positive")

        secrets = tuple(s.strip() for s in self.webhook_secrets if s and s.strip())
        object.__setattr__(self, "webhook_secrets", secrets)

    @property
    def crm_enabled(self) -> bool:
        return bool(self.crm_api_key)

    @classmethod
    def from_env(cls, **overrides: Any) -> MatrixConfig:
        """Create configuration from environment variables.

        Reads the ``ACX_*`` and ``LC_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        MatrixConfig
            Populated configuration.

        Raises
        ------
        MatrixConfigError
            If a numeric variable cannot be parsed or a bound is invalid.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "ACX_SESSION_KEY": "session_key",
            "ACX_DASH_PASS": "dash_password",
            "ACX_BLOBS_STORE": "store_name",
            "ACX_STORE_BACKEND": "store_backend",
            "ACX_REDIS_URL": "redis_url",
            "ACX_DEFAULT_ACCOUNT": "default_account",
            "ACX_WRITE_MODE": "write_mode",
            "LC_API_KEY": "crm_api_key",
            "LC_BASE_URL": "crm_base_url",
            "ACX_DISPLAY_TZ": "display_timezone",
        }
        _ENV_INT_MAP = {
            "ACX_INDEX_MAX_LEN": "index_max_len",
            "ACX_LOCATION_INDEX_MAX_LEN": "location_index_max_len",
            "ACX_SERIES_CAP": "series_cap",
            "ACX_RECENT_LIMIT_DEFAULT": "recent_limit_default",
            "ACX_RECENT_LIMIT_MAX": "recent_limit_max",
            "ACX_CAS_MAX_ATTEMPTS": "cas_max_attempts",
            "ACX_SESSION_MAX_AGE": "session_max_age",
        }
        _ENV_FLOAT_MAP = {
            "ACX_STORE_TIMEOUT": "store_timeout",
            "LC_TIMEOUT": "crm_timeout",
            "LC_FIELD_CACHE_TTL": "crm_field_cache_ttl",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and val.strip():
                config_kwargs[field_name] = val.strip()

        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = int(val)
            except ValueError as exc:
                raise MatrixConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = float(val)
            except ValueError as exc:
                raise MatrixConfigError(f"{env_key} must be a number, got {val!r}") from exc

        # Several historical names carry the same shared secret.
        if "webhook_secrets" not in overrides:
            config_kwargs["webhook_secrets"] = tuple(
                env.get(name, "") for name in ("ACX_WEBHOOK_SECRET", "ACX_SECRET", "X_ACX_SECRET")
            )

        if "crm_notify_integrity" not in overrides:
            config_kwargs["crm_notify_integrity"] = _env_bool(env.get("ACX_CRM_NOTIFY_INTEGRITY"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
