"""
chains/selector.py - Provider selection and staleness detection.

Provides:
- Fast startup selection (first live candidate wins)
- Best-height selection across all candidates
- Staleness detection from the last snapshot time
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

from chains.base import ChainDataProvider
from core.constants import DEFAULT_STALE_THRESHOLD_S
from core.exceptions import ProviderExhaustedError
from core.logging import get_logger
from core.models import Snapshot
from core.time import age_seconds

logger = get_logger(__name__)


@dataclass
class Selection:
    """A chosen provider and the height it reported (if probed)."""
    provider: ChainDataProvider
    height: Optional[int] = None


class ProviderSelector:
    """
    Chooses between candidate providers.

    The candidate list is an explicit snapshot: it only changes when
    refresh() is called, never behind the caller's back.
    """

    def __init__(
        self,
        candidates: Sequence[ChainDataProvider] = (),
        stale_threshold_s: float = DEFAULT_STALE_THRESHOLD_S,
    ):
        self._candidates = list(candidates)
        self.stale_threshold_s = stale_threshold_s

    @property
    def candidates(self) -> list[ChainDataProvider]:
        return list(self._candidates)

    def refresh(self, candidates: Sequence[ChainDataProvider]) -> None:
        """
        Replace the candidate snapshot.

        The scheduler calls this between ticks after an endpoint reload
        (SIGHUP in the CLI); it never reads configuration itself.
        """
        self._candidates = list(candidates)

    async def _probe_live(self, provider: ChainDataProvider) -> Selection:
        block = await provider.get_block("latest")
        if block is None:
            raise LookupError(f"{provider.provider_id} returned no latest block")
        return Selection(provider=provider, height=block.number)

    async def select_initial(
        self,
        candidates: Optional[Sequence[ChainDataProvider]] = None,
    ) -> Selection:
        """
        Return the first candidate to answer a liveness probe.

        Optimizes for fast startup, not for the most current provider.

        Raises:
            ProviderExhaustedError: If no candidate answers
        """
        candidates = list(self._candidates if candidates is None else candidates)
        if not candidates:
            raise ProviderExhaustedError("No provider candidates configured")

        tasks = [asyncio.ensure_future(self._probe_live(p)) for p in candidates]
        errors: dict[str, str] = {}
        try:
            for next_done in asyncio.as_completed(tasks):
                try:
                    selection = await next_done
                except Exception as e:
                    logger.debug(f"Liveness probe failed: {e}")
                    continue
                logger.info(
                    "Initial provider selected",
                    extra={"context": {"provider": selection.provider.provider_id, "height": selection.height}},
                )
                return selection
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            # Collect failures for the error report; reap cancelled probes
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for provider, result in zip(candidates, results):
                if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                    errors[provider.provider_id] = str(result)

        raise ProviderExhaustedError(
            "No provider answered the liveness probe",
            details={"candidates": len(candidates), "errors": errors},
        )

    async def select_best(
        self,
        candidates: Optional[Sequence[ChainDataProvider]] = None,
    ) -> Selection:
        """
        Query every candidate's height concurrently and pick the highest.

        Per-candidate errors exclude that candidate only. Ties go to the
        earlier candidate.

        Raises:
            ProviderExhaustedError: If every candidate fails
        """
        candidates = list(self._candidates if candidates is None else candidates)
        if not candidates:
            raise ProviderExhaustedError("No provider candidates configured")

        results = await asyncio.gather(
            *(p.get_height() for p in candidates),
            return_exceptions=True,
        )

        best: Optional[Selection] = None
        errors: dict[str, str] = {}
        for provider, result in zip(candidates, results):
            if isinstance(result, BaseException):
                errors[provider.provider_id] = str(result)
                logger.debug(
                    "Provider excluded from selection",
                    extra={"context": {"provider": provider.provider_id, "error": str(result)}},
                )
                continue
            if best is None or result > best.height:
                best = Selection(provider=provider, height=result)

        if best is None:
            raise ProviderExhaustedError(
                "All providers failed height query",
                details={"candidates": len(candidates), "errors": errors},
            )

        logger.info(
            "Best provider selected",
            extra={
                "context": {
                    "provider": best.provider.provider_id,
                    "height": best.height,
                    "failed": len(errors),
                }
            },
        )
        return best

    def is_stale(self, snapshot: Optional[Snapshot], now: Optional[float] = None) -> bool:
        """
        True when the snapshot's last block time is too far from now.

        Without a snapshot time there is nothing to judge, so not stale.
        """
        if snapshot is None or snapshot.last_time is None:
            return False
        return age_seconds(snapshot.last_time, now) > self.stale_threshold_s

    async def release(self, keep: ChainDataProvider) -> None:
        """Close every candidate connection except the selected one."""
        for provider in self._candidates:
            if provider is not keep:
                await provider.close()
