"""
sampler/scheduler.py - Adaptive poll loop.

One tick:
1. Request "latest" every resync_every ticks, else the next expected block
2. Fetch block and (unless legacy) base fee concurrently, all-settle
3. New block with transactions -> normalize, insert, advance -> SUCCESS
4. Window below target -> one bounded backfill step; progress without
   SUCCESS -> BACKFILLING
5. Otherwise FAIL; on FAIL re-select the provider if it has gone stale
6. Next delay from next_interval()

Ticks never overlap: run() awaits each tick before sleeping, and tick()
refuses to start while another tick is active. SchedulerState is passed
in and returned, never shared.
"""

import asyncio
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from chains.base import ChainDataProvider
from chains.registry import build_candidates
from chains.selector import ProviderSelector
from core.constants import FetchState
from core.exceptions import InfraError, ProviderExhaustedError
from core.logging import get_logger
from core.time import now_timestamp
from monitoring.health import SamplerHealth
from sampler.backfill import BackfillController, BackfillResult
from sampler.config import SamplerConfig
from sampler.interval import next_interval
from sampler.normalizer import FeeNormalizer
from sampler.window import SampleWindow
from storage.sink import JsonFileSink, PersistenceSink
from storage.snapshot_store import SnapshotLayout, SnapshotStore

logger = get_logger(__name__)


@dataclass
class SchedulerState:
    """Owned exclusively by the scheduler; replaced between ticks."""
    current_interval: float
    # Cursor: next block number expected. A fetched block is new when
    # its number >= last_fetched_block; accepting block N sets it to N + 1.
    last_fetched_block: int = 0
    legacy_fee_mode: bool = False
    tick_count: int = 0


@dataclass
class TickResult:
    """Outcome of one tick and the state to pass to the next."""
    state: SchedulerState
    outcome: FetchState
    delay_ms: float
    block_number: Optional[int] = None
    backfill: Optional[BackfillResult] = None


class PollScheduler:
    """
    The sampling control loop.

    Owns the current provider, the Sample Window and the scheduler state.
    """

    def __init__(
        self,
        config: SamplerConfig,
        selector: ProviderSelector,
        window: SampleWindow,
        backfill: BackfillController,
        normalizer: FeeNormalizer,
        store: Optional[SnapshotStore] = None,
        health: Optional[SamplerHealth] = None,
        clock: Callable[[], float] = now_timestamp,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.selector = selector
        self.window = window
        self.backfill = backfill
        self.normalizer = normalizer
        self.store = store
        self.health = health or SamplerHealth()
        self.clock = clock
        self.sleep = sleep
        self.provider: Optional[ChainDataProvider] = None
        self._tick_active = False
        # Candidate snapshot waiting to be adopted between ticks
        self._pending_candidates: Optional[list[ChainDataProvider]] = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def connect(self) -> SchedulerState:
        """
        Load the prior snapshot, pick a provider and detect the fee model.

        Raises:
            ProviderExhaustedError: If no provider answers (fatal at startup)
        """
        logger.info("Starting gas oracle...", extra={"context": {"network": self.config.network}})

        if self.store is not None:
            self.backfill.cache = self.store.load()

        selection = await self.selector.select_initial()
        self._use_provider(selection.provider)

        height = selection.height
        if height is None:
            height = await self.provider.get_height()

        legacy = self.config.legacy_fee
        if legacy is None:
            legacy = not await self._probe_base_fee()
            if legacy:
                logger.info("Using legacy gas", extra={"context": {"network": self.config.network}})

        logger.info(
            f"Connected to {self.config.network}. Fetching {self.config.sample_size} blocks before serving data.",
            extra={
                "context": {
                    "provider": self.provider.provider_id,
                    "height": height,
                    "legacy_fee_mode": legacy,
                }
            },
        )

        return SchedulerState(
            current_interval=self.config.interval_ms,
            last_fetched_block=height,
            legacy_fee_mode=legacy,
        )

    async def _probe_base_fee(self) -> bool:
        """True when the chain reports a non-zero base fee for latest."""
        try:
            return bool(await self.provider.get_base_fee("latest"))
        except InfraError as e:
            logger.debug(f"Base fee probe failed: {e}")
            return False

    def _use_provider(self, provider: ChainDataProvider) -> None:
        self.provider = provider
        self.window.provider_id = provider.provider_id

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def _block_to_request(self, state: SchedulerState):
        if state.tick_count % self.config.resync_every == 0:
            return "latest"
        return state.last_fetched_block

    async def _fetch_live(self, state: SchedulerState, target):
        fetches = [self.provider.get_block(target)]
        if not state.legacy_fee_mode:
            fetches.append(self.provider.get_base_fee(target))

        outcomes = await asyncio.gather(*fetches, return_exceptions=True)

        block = outcomes[0]
        if isinstance(block, BaseException):
            logger.debug(
                f"Block fetch failed: {block}",
                extra={"context": {"block": target, "provider": self.provider.provider_id}},
            )
            return None
        if block is None:
            return None

        # A missing base fee never invalidates the block
        if len(outcomes) > 1:
            base_fee = outcomes[1]
            if isinstance(base_fee, BaseException):
                logger.debug(f"Base fee fetch failed: {base_fee}", extra={"context": {"block": target}})
            elif base_fee:
                block = replace(block, base_fee=base_fee)
        return block

    async def tick(self, state: SchedulerState) -> TickResult:
        """
        Run one tick.

        Args:
            state: State returned by connect() or the previous tick

        Returns:
            TickResult with the new state and the delay before the next tick
        """
        if self._tick_active:
            raise RuntimeError("tick() called while another tick is active")
        if self.provider is None:
            raise RuntimeError("tick() called before connect()")

        self._tick_active = True
        try:
            return await self._tick(replace(state))
        finally:
            self._tick_active = False

    async def _tick(self, state: SchedulerState) -> TickResult:
        outcome = FetchState.FAIL
        accepted: Optional[int] = None
        target = self._block_to_request(state)

        block = await self._fetch_live(state, target)
        if block is not None and block.number >= state.last_fetched_block:
            if block.has_transactions:
                sample = await self.normalizer.normalize_block(block, self.provider)
                self.window.insert(sample)
                accepted = block.number
                state.last_fetched_block = block.number + 1
                outcome = FetchState.SUCCESS
            elif block.transactions is not None:
                # Real empty block: step past it without counting a success
                state.last_fetched_block = block.number + 1

        backfill_result = None
        if self.window.size() < self.config.sample_size:
            backfill_result = await self.backfill.backfill(
                self.window,
                self.config.sample_size,
                self.provider,
                legacy_fee_mode=state.legacy_fee_mode,
            )
            self.health.record_backfill(backfill_result.cache_hits, backfill_result.fetched is not None)
            if backfill_result.progressed and outcome is not FetchState.SUCCESS:
                outcome = FetchState.BACKFILLING

        if outcome is FetchState.FAIL:
            if self.config.resync_on_fail:
                await self._resync_cursor(state)
            await self._reselect_if_stale(state)

        delay = next_interval(
            state.current_interval,
            outcome,
            self.config.min_interval_ms,
            self.config.max_interval_ms,
            self.config.speed_factor,
        )
        state.current_interval = delay
        state.tick_count += 1

        if outcome is FetchState.SUCCESS and self.window.is_full():
            logger.info(
                f"New block {accepted} read. Next update: {delay:.1f}ms",
                extra={"context": {"block_number": accepted, "interval_ms": round(delay, 1)}},
            )
        elif outcome is FetchState.FAIL:
            logger.info(
                f"Failed to fetch new blocks. I will try again in {delay:.1f}ms",
                extra={"context": {"block": target, "provider": self.provider.provider_id}},
            )

        self.health.record_outcome(outcome, accepted)
        return TickResult(
            state=state,
            outcome=outcome,
            delay_ms=delay,
            block_number=accepted,
            backfill=backfill_result,
        )

    async def _resync_cursor(self, state: SchedulerState) -> None:
        """Heights can jump; never let the cursor sit below chain height."""
        try:
            height = await self.provider.get_height()
        except InfraError as e:
            logger.debug(f"Height resync failed: {e}")
            return
        state.last_fetched_block = max(height, state.last_fetched_block)

    def _freshness_snapshot(self):
        if self.window.size():
            return self.window.to_snapshot()
        return self.store.current if self.store is not None else None

    async def _reselect_if_stale(self, state: SchedulerState) -> None:
        """Switch to the best provider when the current one has gone stale."""
        if not self.selector.is_stale(self._freshness_snapshot(), self.clock()):
            return

        try:
            selection = await self.selector.select_best()
        except ProviderExhaustedError as e:
            # Recoverable in steady state: keep ticking with backoff
            self.health.record_selection_failure()
            logger.warning(
                f"Provider re-selection failed: {e}",
                extra={"context": {"provider": self.provider.provider_id, **e.details}},
            )
            return

        previous = self.provider
        self._use_provider(selection.provider)
        if selection.height is not None:
            state.last_fetched_block = selection.height
        state.current_interval = self.config.interval_ms
        self.health.record_provider_switch()
        await self.selector.release(keep=selection.provider)
        if previous is not None and previous not in self.selector.candidates:
            # Dropped by a refresh while it was still in use
            await previous.close()

        logger.info(
            f"Switching provider to {selection.provider.provider_id}",
            extra={
                "context": {
                    "previous": previous.provider_id if previous else None,
                    "previous_rpc": previous.get_stats_summary() if previous else None,
                    "height": selection.height,
                }
            },
        )

    # ------------------------------------------------------------------
    # Candidate refresh
    # ------------------------------------------------------------------

    def request_refresh(self, candidates: list[ChainDataProvider]) -> None:
        """
        Queue a new candidate snapshot.

        Safe to call from a signal handler; run() adopts it before the next
        tick, so a refresh never lands inside a tick.
        """
        self._pending_candidates = list(candidates)

    async def _apply_refresh(self) -> None:
        candidates, self._pending_candidates = self._pending_candidates, None
        if not candidates:
            return

        current_id = self.provider.provider_id if self.provider is not None else None
        merged: list[ChainDataProvider] = []
        for candidate in candidates:
            if candidate.provider_id == current_id and self.provider not in merged:
                # Keep the live connection for the endpoint in use
                await candidate.close()
                merged.append(self.provider)
            else:
                merged.append(candidate)

        for old in self.selector.candidates:
            if old is not self.provider and old not in merged:
                await old.close()

        self.selector.refresh(merged)
        logger.info(
            "Provider candidates refreshed",
            extra={
                "context": {
                    "candidates": [p.provider_id for p in merged],
                    "current_kept": self.provider in merged,
                }
            },
        )

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _wait(self, delay_ms: float, stop_event: Optional[asyncio.Event]) -> bool:
        """Sleep for delay_ms. Returns True if a stop was requested."""
        if stop_event is None:
            await self.sleep(delay_ms / 1000)
            return False
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay_ms / 1000)
            return True
        except asyncio.TimeoutError:
            return False

    def health_context(self, delay_ms: float) -> dict:
        """Health counters plus the current provider's request stats."""
        return {
            **self.health.to_dict(),
            "window_size": self.window.size(),
            "interval_ms": round(delay_ms, 1),
            "provider": self.provider.provider_id,
            "rpc": self.provider.get_stats_summary(),
        }

    def _log_health(self, delay_ms: float) -> None:
        logger.info("Sampler health", extra={"context": self.health_context(delay_ms)})

    async def run(
        self,
        stop_event: Optional[asyncio.Event] = None,
        max_ticks: Optional[int] = None,
        state: Optional[SchedulerState] = None,
    ) -> SchedulerState:
        """
        Connect (unless a state is given) and tick until stopped.

        Args:
            stop_event: Set to stop after the current tick
            max_ticks: Stop after this many ticks (None for infinite)
            state: Resume from an existing state instead of connecting

        Returns:
            Final SchedulerState
        """
        if state is None:
            state = await self.connect()

        delay = next_interval(
            state.current_interval,
            FetchState.INIT,
            self.config.min_interval_ms,
            self.config.max_interval_ms,
            self.config.speed_factor,
        )

        ticks = 0
        while not (stop_event is not None and stop_event.is_set()):
            if await self._wait(delay, stop_event):
                break

            await self._apply_refresh()
            result = await self.tick(state)
            state = result.state
            delay = result.delay_ms
            ticks += 1

            if state.tick_count % self.config.health_every == 0:
                self._log_health(delay)

            if max_ticks is not None and ticks >= max_ticks:
                break

        return state

    async def close(self) -> None:
        """Close every candidate provider and the provider in use."""
        candidates = self.selector.candidates
        for provider in candidates:
            await provider.close()
        if self.provider is not None and self.provider not in candidates:
            await self.provider.close()


def build_scheduler(
    config: SamplerConfig,
    sink: Optional[PersistenceSink] = None,
    candidates: Optional[list[ChainDataProvider]] = None,
) -> PollScheduler:
    """
    Wire a PollScheduler from configuration.

    Args:
        config: Validated sampler configuration
        sink: Persistence sink (default: JSON files on disk)
        candidates: Pre-built providers (default: built from config endpoints)
    """
    if candidates is None:
        candidates = build_candidates(config.family, config.endpoints, config.request_timeout_s)
    if not candidates:
        raise ProviderExhaustedError(
            f"No usable endpoints for {config.network}",
            details={"configured": len(config.endpoints)},
        )

    store = SnapshotStore(
        sink or JsonFileSink(),
        str(config.snapshot_path),
        SnapshotLayout.for_family(config.family),
    )
    normalizer = FeeNormalizer(
        fee_mode=config.fee_mode,
        fee_decimals=config.fee_decimals,
        receipt_gas_fallback=config.receipt_gas_fallback,
    )

    return PollScheduler(
        config=config,
        selector=ProviderSelector(candidates, stale_threshold_s=config.stale_threshold_s),
        window=SampleWindow(config.sample_size, store=store),
        backfill=BackfillController(
            normalizer,
            floor=config.backfill_floor,
            empty_block_retries=config.empty_block_retries,
        ),
        normalizer=normalizer,
        store=store,
    )
