"""
storage/snapshot_store.py - Snapshot document layout and in-memory store.

DOCUMENT SHAPE (stable contract for downstream fee consumers):
{
    "ntx":       [3, 5, ...],
    "timestamp": [1700000000, 1700000012, ...],
    "minGwei":   [[1.1, 1.2, 3.0], ...],      # "minFee" on Cosmos
    "avgGas":    [70000.0, ...],
    "baseFee":   [12.5, ...],                 # only when any sample has one
    "number":    [18000000, 18000001, ...],
    "lastBlock": 18000001,
    "lastTime":  1700000012,
    "rpc":       "https://..."                # "api" on Cosmos
}
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.constants import ChainFamily, FAMILY_SNAPSHOT_KEYS
from core.exceptions import PersistenceError
from core.logging import get_logger
from core.models import Snapshot
from storage.sink import PersistenceSink

logger = get_logger(__name__)


@dataclass(frozen=True)
class SnapshotLayout:
    """Family-specific key names in the snapshot document."""
    fee_key: str = "minGwei"
    provider_key: str = "rpc"

    @classmethod
    def for_family(cls, family: ChainFamily) -> "SnapshotLayout":
        fee_key, provider_key = FAMILY_SNAPSHOT_KEYS[ChainFamily(family)]
        return cls(fee_key=fee_key, provider_key=provider_key)


def snapshot_to_document(snapshot: Snapshot, layout: SnapshotLayout) -> Dict[str, Any]:
    """Project a Snapshot into the persisted document shape."""
    document: Dict[str, Any] = {
        "ntx": list(snapshot.ntx),
        "timestamp": list(snapshot.timestamp),
        layout.fee_key: [list(fees) for fees in snapshot.fees],
        "avgGas": list(snapshot.avg_gas),
    }
    if snapshot.base_fee is not None:
        document["baseFee"] = list(snapshot.base_fee)
    document["number"] = list(snapshot.number)
    document["lastBlock"] = snapshot.last_block
    document["lastTime"] = snapshot.last_time
    document[layout.provider_key] = snapshot.provider_id
    return document


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, list) else []


def snapshot_from_document(document: Dict[str, Any], layout: SnapshotLayout) -> Snapshot:
    """
    Rebuild a Snapshot from a persisted document.

    Lenient: missing columns become empty lists. Consistency is checked at
    lookup time (Snapshot.sample_at), where any mismatch is a cache miss.
    """
    base_fee = document.get("baseFee")
    last_block = document.get("lastBlock")
    last_time = document.get("lastTime")

    try:
        last_block = int(last_block) if last_block is not None else None
        last_time = int(last_time) if last_time is not None else None
    except (TypeError, ValueError):
        last_block, last_time = None, None

    return Snapshot(
        number=_as_list(document.get("number")),
        ntx=_as_list(document.get("ntx")),
        timestamp=_as_list(document.get("timestamp")),
        fees=_as_list(document.get(layout.fee_key)),
        avg_gas=_as_list(document.get("avgGas")),
        base_fee=list(base_fee) if isinstance(base_fee, list) else None,
        last_block=last_block,
        last_time=last_time,
        provider_id=document.get(layout.provider_key),
    )


class SnapshotStore:
    """
    Holds the last-known Snapshot in memory.

    The file is read once by load(); afterwards `current` is refreshed on
    every successful save(), so cache lookups never re-parse the file.
    """

    def __init__(
        self,
        sink: PersistenceSink,
        path: str,
        layout: SnapshotLayout = SnapshotLayout(),
    ):
        self.sink = sink
        self.path = str(path)
        self.layout = layout
        self.current: Optional[Snapshot] = None
        self.writes = 0

    def load(self) -> Optional[Snapshot]:
        """Read the prior snapshot. Unreadable files count as absent."""
        try:
            document = self.sink.read(self.path)
        except PersistenceError as e:
            logger.warning(
                f"Ignoring unreadable snapshot: {e}",
                extra={"context": {"path": self.path}},
            )
            document = None

        self.current = snapshot_from_document(document, self.layout) if document else None

        if self.current is not None:
            logger.info(
                "Loaded prior snapshot",
                extra={
                    "context": {
                        "path": self.path,
                        "blocks": len(self.current),
                        "last_block": self.current.last_block,
                    }
                },
            )
        return self.current

    def save(self, snapshot: Snapshot) -> None:
        """
        Overwrite the persisted snapshot.

        Raises:
            PersistenceError: If the sink fails (current is left unchanged)
        """
        self.sink.write(self.path, snapshot_to_document(snapshot, self.layout))
        self.current = snapshot
        self.writes += 1
