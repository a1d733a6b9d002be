"""acxmatrix - ACX Matrix event ingestion and location summary service."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("acxmatrix")
except PackageNotFoundError:
    __version__ = "0+local"
from acxmatrix.app import create_app
from acxmatrix.config import MatrixConfig, StoreBackend, WriteMode
from acxmatrix.exceptions import (
    MatrixAuthError,
    MatrixConfigError,
    MatrixError,
    MatrixMalformedInput,
    MatrixMethodNotAllowed,
    MatrixStoreError,
    MatrixStoreTimeout,
    MatrixUnprocessable,
    MatrixUpstreamError,
    MatrixWriteConflict,
)
from acxmatrix.ingestion.apply import IngestResult, ingest_payload
from acxmatrix.ingestion.event import normalize_event
from acxmatrix.models import Event, Integrity, LocationListEntry, LocationSummary, SeriesPoint, Wf3Stats
from acxmatrix.state.store import MatrixStore

__all__ = [
    "__version__",
    "Event",
    "IngestResult",
    "Integrity",
    "LocationListEntry",
    "LocationSummary",
    "MatrixAuthError",
    "MatrixConfig",
    "MatrixConfigError",
    "MatrixError",
    "MatrixMalformedInput",
    "MatrixMethodNotAllowed",
    "MatrixStore",
    "MatrixStoreError",
    "MatrixStoreTimeout",
    "MatrixUnprocessable",
    "MatrixUpstreamError",
    "MatrixWriteConflict",
    "SeriesPoint",
    "StoreBackend",
    "Wf3Stats",
    "WriteMode",
    "create_app",
    "ingest_payload",
    "normalize_event",
]
