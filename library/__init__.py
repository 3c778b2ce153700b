"""Local work catalog: scanning, reconciliation and persistence."""
from __future__ import annotations

from .types import (
    CatalogDocument,
    CleanupResult,
    ProgressEvent,
    ScanCandidate,
    ScanOutcome,
    WorkRecord,
)

__all__ = [
    "CatalogDocument",
    "CleanupResult",
    "ProgressEvent",
    "ScanCandidate",
    "ScanOutcome",
    "WorkRecord",
]
