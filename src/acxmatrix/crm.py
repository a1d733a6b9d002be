"""LeadConnector (CRM) API client.

Only the two calls the service needs are wrapped: reading a contact (to
learn the ids of its writable custom fields) and writing custom fields
back. Field id maps are cached per contact for ``crm_field_cache_ttl``.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote
from zoneinfo import ZoneInfo

import aiohttp
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from acxmatrix._cache import TTLCache
from acxmatrix._constants import CRM_API_VERSION
from acxmatrix._redact import redact_for_log
from acxmatrix.config import MatrixConfig
from acxmatrix.exceptions import MatrixConfigError, MatrixUnprocessable, MatrixUpstreamError
from acxmatrix.ingestion.normalize import to_str

_logger = logging.getLogger(__name__)

STARTED_AT_FIELD = "acx_started_at_str"
INTEGRITY_FIELD = "acx_integrity"


def format_started_at(moment: datetime) -> str:
    """``Feb 11, 2026 1:05 AM``; always a plain string safe for templates."""
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{moment:%b} {moment.day}, {moment.year} {hour}:{moment:%M} {meridiem}"


class ConsoleStatus(BaseModel):
    """Sentinel console status pushed onto a CRM contact."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    contact_id: str = Field(default="", validation_alias=AliasChoices("contact_id", "contactId"))
    run_id: str = Field(default="", validation_alias=AliasChoices("run_id", "runId"))
    location_id: str = Field(
        default="",
        validation_alias=AliasChoices("location_id", "locationId", "console_location_id"),
    )
    location_name: str = Field(default="", validation_alias=AliasChoices("location_name", "locationName"))
    status: str = Field(default="", validation_alias=AliasChoices("status", "console_status", "health_status"))
    reason: str = Field(default="", validation_alias=AliasChoices("reason", "last_reason", "fail_reason"))
    fail_streak: str = Field(default="", validation_alias=AliasChoices("fail_streak", "failStreak", "streak"))

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str:
        return to_str(value)

    @classmethod
    def from_payload(cls, payload: Any) -> ConsoleStatus:
        body = payload if isinstance(payload, dict) else {}
        status = cls.model_validate(body)
        if not status.contact_id:
            contact = body.get("contact")
            if isinstance(contact, dict):
                nested = to_str(contact.get("id")) or to_str(contact.get("contact_id"))
                status = status.model_copy(update={"contact_id": nested})
        return status


class CrmClient:
    """Async LeadConnector client.

    Usage::

        async with CrmClient(config) as crm:
            await crm.push_console_status(ConsoleStatus.from_payload(body))
    """

    def __init__(
        self,
        config: MatrixConfig,
        http_session: aiohttp.ClientSession | None = None,
        *,
        field_cache: TTLCache[dict[str, str]] | None = None,
    ) -> None:
        if not config.crm_api_key:
            raise MatrixConfigError("LC_API_KEY is not configured")
        self._config = config
        self._http = http_session
        self._external_session = http_session is not None
        self._field_cache: TTLCache[dict[str, str]] = (
            field_cache if field_cache is not None else TTLCache(config.crm_field_cache_ttl)
        )

    async def __aenter__(self) -> CrmClient:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    def _headers(self, *, with_body: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._config.crm_api_key}",
            "Version": CRM_API_VERSION,
            "Accept": "application/json",
        }
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        if self._http is None:
            raise RuntimeError("CrmClient must be used as an async context manager or given a session")
        url = f"{self._config.crm_base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self._config.crm_timeout)
        _logger.debug("%s %s %s", method, url, redact_for_log(body))

        try:
            async with self._http.request(
                method,
                url,
                headers=self._headers(with_body=body is not None),
                data=json.dumps(body) if body is not None else None,
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                if resp.status < 200 or resp.status >= 300:
                    raise MatrixUpstreamError(
                        f"{method} {path} failed with HTTP {resp.status}",
                        status_code=resp.status,
                        body=text,
                        endpoint=path,
                    )
        except MatrixUpstreamError:
            raise
        except TimeoutError as exc:
            raise MatrixUpstreamError(f"{method} {path} timed out", status_code=504, endpoint=path) from exc
        except aiohttp.ClientError as exc:
            raise MatrixUpstreamError(f"{method} {path} failed: {exc}", status_code=502, endpoint=path) from exc

        if not text.strip():
            return {}
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            _logger.debug("Non-JSON body from %s", path)
            return {}
        return decoded if isinstance(decoded, dict) else {}

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def get_contact(self, contact_id: str) -> dict[str, Any]:
        decoded = await self._request("GET", f"/contacts/{quote(contact_id, safe='')}")
        contact = decoded.get("contact")
        return contact if isinstance(contact, dict) else decoded

    async def resolve_field_ids(self, contact_id: str) -> dict[str, str]:
        """Lower-cased custom field key -> field id for the contact."""
        cached = self._field_cache.get(contact_id)
        if cached is not None:
            return cached

        contact = await self.get_contact(contact_id)
        existing = contact.get("customFields") or contact.get("customField") or []
        mapping: dict[str, str] = {}
        for field in existing if isinstance(existing, list) else []:
            if not isinstance(field, dict):
                continue
            raw_key = field.get("fieldKey") or field.get("key") or field.get("name")
            field_id = field.get("id")
            if raw_key and field_id:
                mapping[str(raw_key).lower()] = str(field_id)

        self._field_cache.set(contact_id, mapping)
        return mapping

    async def update_custom_fields(self, contact_id: str, fields: list[dict[str, str]]) -> None:
        await self._request("PUT", f"/contacts/{quote(contact_id, safe='')}", {"customField": fields})

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def push_console_status(self, status: ConsoleStatus, *, now: datetime | None = None) -> dict[str, Any]:
        """Write sentinel console fields onto the contact.

        Raises
        ------
        MatrixUnprocessable
            The contact has no writable ``acx_started_at_str`` field.
        MatrixUpstreamError
            A CRM call failed; status and body are passed through.
        """
        moment = now or datetime.now(ZoneInfo(self._config.display_timezone))
        started_at = format_started_at(moment)
        ids = await self.resolve_field_ids(status.contact_id)

        if STARTED_AT_FIELD not in ids:
            self._field_cache.invalidate(status.contact_id)
            raise MatrixUnprocessable(
                f"{STARTED_AT_FIELD} not found on contact custom fields (no ID to write)",
            )

        wanted = {
            "acx_test_run_id": status.run_id,
            "acx_console_location_id": status.location_id,
            "acx_console_location_name": status.location_name,
            "acx_console_status": status.status,
            "acx_console_last_reason": status.reason,
            "acx_console_fail_streak": status.fail_streak,
            "acx_console_last_ok": moment.date().isoformat(),
            STARTED_AT_FIELD: started_at,
        }
        fields = [{"id": ids[name], "value": value} for name, value in wanted.items() if name in ids]
        await self.update_custom_fields(status.contact_id, fields)
        return {
            "ok": True,
            "contact_id": status.contact_id,
            "wrote_count": len(fields),
            "started_at_str": started_at,
        }

    async def push_integrity(self, contact_id: str, integrity: str) -> bool:
        """Write ``acx_integrity`` on the contact; False when the field is absent."""
        ids = await self.resolve_field_ids(contact_id)
        field_id = ids.get(INTEGRITY_FIELD)
        if field_id is None:
            return False
        await self.update_custom_fields(contact_id, [{"id": field_id, "value": integrity}])
        return True


async def notify_integrity_best_effort(crm: CrmClient | None, contact_id: str, integrity: str) -> None:
    """Secondary notification that must never fail the caller."""
    if crm is None or not contact_id or integrity == "unknown":
        return
    try:
        written = await crm.push_integrity(contact_id, integrity)
    except MatrixUpstreamError as exc:
        _logger.warning("Integrity notification for contact %s failed: %s", contact_id, exc)
        return
    except Exception:
        _logger.warning("Integrity notification for contact %s failed", contact_id, exc_info=True)
        return
    if not written:
        _logger.debug("Contact %s has no %s field", contact_id, INTEGRITY_FIELD)
