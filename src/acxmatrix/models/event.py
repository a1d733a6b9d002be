"""Canonical telemetry event model."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import field_validator

from acxmatrix.ingestion.normalize import normalize_integrity, safe_float
from acxmatrix.models._base import MatrixModel


class Integrity(StrEnum):
    """Health status of a monitored location."""

    OK = "ok"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


METRIC_FIELDS: tuple[str, ...] = ("uptime", "conversion", "response_ms", "quotes_recovered")

# Presence of any of these marks an event as workflow telemetry rather than
# a health ping.
WORKFLOW_FIELDS: tuple[str, ...] = ("event_name", "stage", "priority", "status")


class Event(MatrixModel):
    """One immutable ingested telemetry point.

    Parameters
    ----------
    ts : str
        ISO-8601 server write time.
    account, location : str
        Identity of the monitored location. ``location`` may be empty.
    uptime, conversion, response_ms, quotes_recovered : float
        Health metrics, ``0`` when absent or invalid.
    integrity : Integrity
        Normalized health status.
    run_id : str
        Caller run identifier, ``run-<millis>`` when absent.
    source : str
        Free-form tag identifying the caller.
    """

    ts: str
    account: str = "ACX"
    location: str = ""
    uptime: float = 0.0
    conversion: float = 0.0
    response_ms: float = 0.0
    quotes_recovered: float = 0.0
    integrity: Integrity = Integrity.UNKNOWN
    run_id: str = ""
    source: str = ""

    event_name: str = ""
    stage: str = ""
    priority: str = ""
    status: str = ""
    event_at: str = ""
    contact_id: str = ""
    opportunity_id: str = ""

    @field_validator("integrity", mode="before")
    @classmethod
    def _coerce_integrity(cls, value: Any) -> str:
        return normalize_integrity(value)

    @field_validator(*METRIC_FIELDS, mode="before")
    @classmethod
    def _coerce_metric(cls, value: Any) -> float:
        return safe_float(value, 0.0)

    @property
    def has_metrics(self) -> bool:
        return any(getattr(self, name) for name in METRIC_FIELDS)

    @property
    def is_workflow(self) -> bool:
        return any(getattr(self, name) for name in WORKFLOW_FIELDS)

    @property
    def is_metrics_event(self) -> bool:
        """A health ping whose metrics should drive tiles and charts."""
        return self.has_metrics and not self.is_workflow
