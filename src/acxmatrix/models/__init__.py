"""Pydantic models for stored records and read views."""

from acxmatrix.models.event import METRIC_FIELDS, Event, Integrity
from acxmatrix.models.summary import LocationListEntry, LocationSummary
from acxmatrix.models.views import SeriesPoint, Wf3Stats

__all__ = [
    "METRIC_FIELDS",
    "Event",
    "Integrity",
    "LocationListEntry",
    "LocationSummary",
    "SeriesPoint",
    "Wf3Stats",
]
