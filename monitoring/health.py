# PATH: monitoring/health.py
"""
Sampler health metrics.

Counts tick outcomes and backfill activity so operators can see, from the
periodic health log line, whether the sampler keeps up with the chain.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from core.constants import FetchState
from core.time import now_iso


@dataclass
class SamplerHealth:
    """
    Tick outcome counters.

    Key invariant: ticks == success + fail + backfilling
    """
    success_count: int = 0
    fail_count: int = 0
    backfill_count: int = 0
    cache_hits: int = 0
    network_backfills: int = 0
    provider_switches: int = 0
    selection_failures: int = 0
    last_block: Optional[int] = None
    started_at: str = field(default_factory=now_iso)

    @property
    def ticks(self) -> int:
        return self.success_count + self.fail_count + self.backfill_count

    @property
    def success_rate(self) -> float:
        if self.ticks == 0:
            return 0.0
        return self.success_count / self.ticks

    def record_outcome(self, outcome: FetchState, block_number: Optional[int] = None) -> None:
        """Record the outcome of one tick."""
        if outcome is FetchState.SUCCESS:
            self.success_count += 1
            self.last_block = block_number
        elif outcome is FetchState.BACKFILLING:
            self.backfill_count += 1
        elif outcome is FetchState.FAIL:
            self.fail_count += 1

    def record_backfill(self, cache_hits: int, fetched: bool) -> None:
        """Record backfill activity within a tick."""
        self.cache_hits += cache_hits
        if fetched:
            self.network_backfills += 1

    def record_provider_switch(self) -> None:
        self.provider_switches += 1

    def record_selection_failure(self) -> None:
        self.selection_failures += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticks": self.ticks,
            "success_rate": round(self.success_rate, 3),
            "success": self.success_count,
            "fail": self.fail_count,
            "backfilling": self.backfill_count,
            "cache_hits": self.cache_hits,
            "network_backfills": self.network_backfills,
            "provider_switches": self.provider_switches,
            "selection_failures": self.selection_failures,
            "last_block": self.last_block,
            "started_at": self.started_at,
        }
