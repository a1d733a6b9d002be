"""Per-location merged state models."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator

from acxmatrix.ingestion.normalize import normalize_integrity, safe_float
from acxmatrix.models._base import MatrixModel
from acxmatrix.models.event import METRIC_FIELDS, Integrity


class LocationSummary(MatrixModel):
    """Latest merged state for an ``(account, location)`` pair."""

    account: str
    location: str
    last_seen: str = ""
    uptime: float = 0.0
    conversion: float = 0.0
    response_ms: float = 0.0
    quotes_recovered: float = 0.0
    integrity: Integrity = Integrity.UNKNOWN

    @field_validator("integrity", mode="before")
    @classmethod
    def _coerce_integrity(cls, value: Any) -> str:
        return normalize_integrity(value)

    @field_validator(*METRIC_FIELDS, mode="before")
    @classmethod
    def _coerce_metric(cls, value: Any) -> float:
        return safe_float(value, 0.0)

    @property
    def identity(self) -> str:
        return f"{self.account}:{self.location}"


class LocationListEntry(LocationSummary):
    """Denormalized projection kept in ``locations:<account>`` for fast listing."""

    @classmethod
    def from_summary(cls, summary: LocationSummary) -> LocationListEntry:
        return cls.model_validate(summary.model_dump())
