"""
storage/ - Snapshot persistence.

Modules:
- sink: Persistence Sink protocol and atomic JSON file sink
- snapshot_store: Document layout and the in-memory snapshot store
"""

from storage.sink import JsonFileSink, PersistenceSink
from storage.snapshot_store import (
    SnapshotLayout,
    SnapshotStore,
    snapshot_from_document,
    snapshot_to_document,
)

__all__ = [
    "JsonFileSink",
    "PersistenceSink",
    "SnapshotLayout",
    "SnapshotStore",
    "snapshot_from_document",
    "snapshot_to_document",
]
