"""Incremental synchronization of pull requests from GitHub."""

from src.sync.engine import IncrementalSyncEngine
from src.sync.models import StalenessReport, SyncResult
from src.sync.staleness import StalenessDetector

__all__ = [
    "IncrementalSyncEngine",
    "StalenessDetector",
    "StalenessReport",
    "SyncResult",
]
