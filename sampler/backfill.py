"""
sampler/backfill.py - Fill the Sample Window from history.

Per tick:
1. Drain cache hits from the last-known snapshot, walking down from
   oldest_block() - 1 (or the snapshot's last block when the window is
   empty). Cache lookups are in-memory positional reads, never network.
2. Then at most ONE network fetch for the next older block, so live
   polling is never starved by a long backfill.
3. A failed fetch is skipped and the same block is retried next tick. An
   empty block is retried a bounded number of times, then accepted as an
   empty Sample so the walk can continue past it.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Optional

from chains.base import ChainDataProvider
from core.constants import DEFAULT_BACKFILL_FLOOR, DEFAULT_EMPTY_BLOCK_RETRIES
from core.logging import get_logger
from core.models import Snapshot
from sampler.normalizer import FeeNormalizer
from sampler.window import SampleWindow

logger = get_logger(__name__)


@dataclass
class BackfillResult:
    """What one backfill call did."""
    cache_hits: int = 0
    # Block number requested from the network this tick, if any
    attempted: Optional[int] = None
    # Block number inserted from the network this tick, if any
    fetched: Optional[int] = None

    @property
    def progressed(self) -> bool:
        return self.cache_hits > 0 or self.fetched is not None


class BackfillController:
    """
    Walks backward from the oldest known block until the window is full.

    If the chain has fewer blocks above the floor than the target size,
    the window simply stays below target; that is not an error.
    """

    def __init__(
        self,
        normalizer: FeeNormalizer,
        cache: Optional[Snapshot] = None,
        floor: int = DEFAULT_BACKFILL_FLOOR,
        empty_block_retries: int = DEFAULT_EMPTY_BLOCK_RETRIES,
    ):
        self.normalizer = normalizer
        # Last-known snapshot, read once at startup
        self.cache = cache
        self.floor = floor
        self.empty_block_retries = empty_block_retries
        self._empty_attempts: dict[int, int] = defaultdict(int)

    def next_candidate(self, window: SampleWindow) -> Optional[int]:
        """Next older block to fill, or None if there is no anchor yet."""
        oldest = window.oldest_block()
        if oldest is not None:
            candidate = oldest - 1
        elif self.cache is not None and self.cache.last_block is not None:
            candidate = self.cache.last_block
        else:
            return None
        return candidate if candidate >= self.floor else None

    def _drain_cache(self, window: SampleWindow, target_size: int) -> int:
        if self.cache is None:
            return 0

        hits = 0
        candidate = self.next_candidate(window)
        while candidate is not None and window.size() < target_size:
            sample = self.cache.sample_at(candidate)
            if sample is None:
                break
            window.insert_cached(sample)
            hits += 1
            candidate = self.next_candidate(window)
        return hits

    async def backfill(
        self,
        window: SampleWindow,
        target_size: int,
        provider: ChainDataProvider,
        legacy_fee_mode: bool = True,
    ) -> BackfillResult:
        """
        Make bounded backfill progress for one tick.

        Never raises for provider failures; they only mean no progress.
        """
        result = BackfillResult()
        if window.size() >= target_size:
            return result

        result.cache_hits = self._drain_cache(window, target_size)
        if result.cache_hits:
            logger.debug(
                "Backfilled from cache",
                extra={"context": {"hits": result.cache_hits, "oldest_block": window.oldest_block()}},
            )

        if window.size() >= target_size:
            return result

        candidate = self.next_candidate(window)
        if candidate is None:
            return result

        result.attempted = candidate
        fetches = [provider.get_block(candidate)]
        if not legacy_fee_mode:
            fetches.append(provider.get_base_fee(candidate))
        outcomes = await asyncio.gather(*fetches, return_exceptions=True)

        block = outcomes[0]
        if isinstance(block, BaseException) or block is None:
            logger.debug(
                "Backfill fetch failed, retrying next tick",
                extra={"context": {"block_number": candidate, "error": str(block) if block else None}},
            )
            return result

        if len(outcomes) > 1 and not isinstance(outcomes[1], BaseException) and outcomes[1]:
            block = replace(block, base_fee=outcomes[1])

        if not block.has_transactions:
            self._empty_attempts[candidate] += 1
            if self._empty_attempts[candidate] < self.empty_block_retries:
                logger.debug(
                    "Backfill block empty, retrying next tick",
                    extra={"context": {"block_number": candidate, "attempt": self._empty_attempts[candidate]}},
                )
                return result

        self._empty_attempts.pop(candidate, None)
        sample = await self.normalizer.normalize_block(block, provider)
        window.insert(sample)
        result.fetched = sample.block_number
        return result
