"""Response shapes built by the aggregate reader."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from acxmatrix.models.event import Event


class SeriesPoint(BaseModel):
    """One chart point; short metric names match the dashboard contract."""

    model_config = ConfigDict(frozen=True)

    ts: str
    uptime: float
    conv: float
    resp: float
    quotes: float
    integrity: str

    @classmethod
    def from_event(cls, event: Event) -> SeriesPoint:
        return cls(
            ts=event.ts,
            uptime=event.uptime,
            conv=event.conversion,
            resp=event.response_ms,
            quotes=event.quotes_recovered,
            integrity=event.integrity.value,
        )


class Wf3Stats(BaseModel):
    """WF3 enforcement stall/recovery statistics over a set of events."""

    model_config = ConfigDict(frozen=True)

    stalls_unique_by_stage: dict[str, int] = Field(default_factory=dict)
    stalled_contacts: int = 0
    recovered_contacts: int = 0
    recovery_rate: float | None = None
    avg_response_ms: int | None = None
    avg_response_seconds: int | None = None
