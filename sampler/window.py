"""
sampler/window.py - Bounded block-number -> Sample mapping.

Invariants:
- size never exceeds capacity
- inserting beyond capacity evicts the numerically lowest block number
  (FIFO by block number, not by insertion time)
- the snapshot is persisted on eviction only, so once the window is full
  the persisted document lags the window by at most one block
"""

from dataclasses import replace
from typing import Dict, Iterator, Optional

from core.constants import PROGRESS_BAR_SIZE
from core.exceptions import PersistenceError
from core.logging import get_logger, log_error
from core.models import Sample, Snapshot
from storage.snapshot_store import SnapshotStore

logger = get_logger(__name__)


def progress_bar(size: int, capacity: int, width: int = PROGRESS_BAR_SIZE) -> str:
    """[#####=====] style bar for the fill level."""
    filled = min(width, int(size / capacity * width)) if capacity else width
    return "[" + "#" * filled + "=" * (width - filled) + "]"


class SampleWindow:
    """
    Fixed-capacity sliding window of Samples.

    Mutated only by its single owner (the scheduler and the backfill
    controller it drives); no locking.
    """

    def __init__(
        self,
        capacity: int,
        store: Optional[SnapshotStore] = None,
        provider_id: Optional[str] = None,
    ):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.store = store
        # Recorded in every snapshot
        self.provider_id = provider_id
        self._samples: Dict[int, Sample] = {}
        self.cached_inserts = 0
        self.persist_failures = 0

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, sample: Sample) -> Optional[int]:
        """
        Add or overwrite the Sample at its block number.

        Returns:
            Evicted block number, or None if nothing was evicted
        """
        self._samples[sample.block_number] = sample

        if len(self._samples) > self.capacity:
            evicted = min(self._samples)
            del self._samples[evicted]
            self._persist()
            return evicted

        logger.info(
            f"{progress_bar(len(self._samples), self.capacity)} {len(self._samples)} / {self.capacity}",
            extra={"context": {"block_number": sample.block_number, "cached": sample.cached}},
        )
        return None

    def insert_cached(self, sample: Sample) -> Optional[int]:
        """Insert a Sample restored from a prior snapshot (same semantics as insert)."""
        if not sample.cached:
            sample = replace(sample, cached=True)
        self.cached_inserts += 1
        logger.debug(f"Block {sample.block_number} hit cache")
        return self.insert(sample)

    def _persist(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save(self.to_snapshot())
        except PersistenceError as e:
            # Keep sampling: the in-memory window is the source of truth
            self.persist_failures += 1
            log_error(
                logger,
                e.code.value,
                f"Snapshot write failed: {e.message}",
                exc_info=True,
                **e.details,
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def size(self) -> int:
        return len(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __contains__(self, block_number: int) -> bool:
        return block_number in self._samples

    def __iter__(self) -> Iterator[Sample]:
        for number in sorted(self._samples):
            yield self._samples[number]

    def get(self, block_number: int) -> Optional[Sample]:
        return self._samples.get(block_number)

    def is_full(self) -> bool:
        return len(self._samples) >= self.capacity

    def oldest_block(self) -> Optional[int]:
        return min(self._samples) if self._samples else None

    def newest_block(self) -> Optional[int]:
        return max(self._samples) if self._samples else None

    def to_snapshot(self, provider_id: Optional[str] = None) -> Snapshot:
        """
        Column-oriented projection of the window. Does not mutate.

        Columns hold fee-bearing samples only, ordered by ascending
        timestamp (block number breaks ties).
        """
        retained = sorted(
            (s for s in self._samples.values() if s.transaction_count > 0),
            key=lambda s: (s.timestamp, s.block_number),
        )

        has_base_fee = any(s.base_fee is not None for s in retained)
        last_block = self.newest_block()

        return Snapshot(
            number=[s.block_number for s in retained],
            ntx=[s.transaction_count for s in retained],
            timestamp=[s.timestamp for s in retained],
            fees=[list(s.fee_list) for s in retained],
            avg_gas=[s.average_gas for s in retained],
            base_fee=[s.base_fee for s in retained] if has_base_fee else None,
            last_block=last_block,
            last_time=self._samples[last_block].timestamp if last_block is not None else None,
            provider_id=provider_id if provider_id is not None else self.provider_id,
        )
