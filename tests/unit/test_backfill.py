"""
tests/unit/test_backfill.py - Tests for sampler/backfill.py

Critical tests for:
- cache hits are drained before any network call
- at most one network fetch per call
- failed / empty blocks are retried on a later tick
- the floor is never crossed
"""

import pytest

from conftest import FakeProvider, make_block
from core.exceptions import RPCError
from core.models import Snapshot
from sampler.backfill import BackfillController
from sampler.normalizer import FeeNormalizer
from sampler.window import SampleWindow


def cache_snapshot(numbers, last_block=None):
    """Consistent Snapshot holding one fee-bearing sample per block number."""
    numbers = sorted(numbers)
    return Snapshot(
        number=list(numbers),
        ntx=[2] * len(numbers),
        timestamp=[1_700_000_000 + n for n in numbers],
        fees=[[1.0, 2.0] for _ in numbers],
        avg_gas=[21000.0] * len(numbers),
        last_block=numbers[-1] if last_block is None else last_block,
        last_time=1_700_000_000 + numbers[-1],
        provider_id="https://old.rpc",
    )


@pytest.fixture
def controller():
    return BackfillController(FeeNormalizer())


class TestCacheThenNetwork:
    @pytest.mark.asyncio
    async def test_cache_then_one_attempt_with_empty_retry(self):
        """Cache [10,9,8] plus empty block 7: cache first, one attempt at 7 per tick."""
        provider = FakeProvider(blocks={7: make_block(7, fees=[])})
        backfill = BackfillController(FeeNormalizer(), cache=cache_snapshot([8, 9, 10]))
        window = SampleWindow(5)

        result = await backfill.backfill(window, 5, provider)

        assert sorted(s.block_number for s in window) == [8, 9, 10]
        assert all(s.cached for s in window)
        assert result.cache_hits == 3
        assert result.attempted == 7
        assert result.fetched is None
        assert provider.block_requests == [7]

        # Later tick: 7 is retried, no cache work left
        result = await backfill.backfill(window, 5, provider)
        assert result.cache_hits == 0
        assert result.attempted == 7
        assert provider.block_requests == [7, 7]

    @pytest.mark.asyncio
    async def test_empty_block_accepted_after_retries(self):
        provider = FakeProvider(blocks={7: make_block(7, fees=[]), 6: make_block(6)})
        backfill = BackfillController(
            FeeNormalizer(), cache=cache_snapshot([8, 9, 10]), empty_block_retries=3
        )
        window = SampleWindow(5)

        for _ in range(2):
            result = await backfill.backfill(window, 5, provider)
            assert result.fetched is None

        result = await backfill.backfill(window, 5, provider)
        assert result.fetched == 7
        assert window.get(7).is_empty

        result = await backfill.backfill(window, 5, provider)
        assert result.fetched == 6
        assert window.size() == 5

    @pytest.mark.asyncio
    async def test_failed_fetch_retried(self, controller):
        provider = FakeProvider(blocks={9: RPCError("timeout")})
        window = SampleWindow(5)
        window.insert(controller.normalizer.normalize(make_block(10)))

        result = await controller.backfill(window, 5, provider)
        assert result.attempted == 9
        assert not result.progressed

        provider.blocks[9] = make_block(9)
        result = await controller.backfill(window, 5, provider)
        assert result.fetched == 9
        assert result.progressed

    @pytest.mark.asyncio
    async def test_unknown_block_retried(self, controller):
        provider = FakeProvider(blocks={})
        window = SampleWindow(5)
        window.insert(controller.normalizer.normalize(make_block(10)))

        result = await controller.backfill(window, 5, provider)

        assert result.attempted == 9
        assert window.size() == 1


class TestBounds:
    @pytest.mark.asyncio
    async def test_full_window_is_noop(self, controller):
        provider = FakeProvider()
        window = SampleWindow(1)
        window.insert(controller.normalizer.normalize(make_block(10)))

        result = await controller.backfill(window, 1, provider)

        assert not result.progressed
        assert result.attempted is None
        assert provider.block_requests == []

    @pytest.mark.asyncio
    async def test_no_anchor_without_window_or_cache(self, controller):
        provider = FakeProvider()

        result = await controller.backfill(SampleWindow(5), 5, provider)

        assert result.attempted is None
        assert provider.block_requests == []

    @pytest.mark.asyncio
    async def test_floor_stops_walk(self):
        provider = FakeProvider(blocks={n: make_block(n) for n in range(0, 10)})
        backfill = BackfillController(FeeNormalizer(), floor=8)
        window = SampleWindow(10)
        window.insert(backfill.normalizer.normalize(make_block(9)))

        first = await backfill.backfill(window, 10, provider)
        second = await backfill.backfill(window, 10, provider)

        assert first.fetched == 8
        assert second.attempted is None
        assert window.size() == 2

    @pytest.mark.asyncio
    async def test_chain_shorter_than_target_is_not_an_error(self, controller):
        provider = FakeProvider(blocks={0: make_block(0)})
        window = SampleWindow(100)
        window.insert(controller.normalizer.normalize(make_block(1)))

        await controller.backfill(window, 100, provider)
        result = await controller.backfill(window, 100, provider)

        assert window.size() == 2
        assert result.attempted is None

    @pytest.mark.asyncio
    async def test_cache_drain_stops_at_target(self):
        backfill = BackfillController(FeeNormalizer(), cache=cache_snapshot(range(1, 21)))
        provider = FakeProvider()
        window = SampleWindow(5)

        result = await backfill.backfill(window, 5, provider)

        assert result.cache_hits == 5
        assert [s.block_number for s in window] == [16, 17, 18, 19, 20]
        assert provider.block_requests == []


class TestCacheValidation:
    @pytest.mark.asyncio
    async def test_inconsistent_cache_is_a_miss(self):
        """Ragged columns after a crash: nothing is trusted."""
        snapshot = cache_snapshot([8, 9, 10])
        snapshot.fees.pop()
        provider = FakeProvider(blocks={10: make_block(10)})
        backfill = BackfillController(FeeNormalizer(), cache=snapshot)
        window = SampleWindow(5)

        result = await backfill.backfill(window, 5, provider)

        assert result.cache_hits == 0
        assert result.fetched == 10
        assert not window.get(10).cached

    @pytest.mark.asyncio
    async def test_number_column_disagreement_is_a_miss(self):
        snapshot = cache_snapshot([8, 9, 10])
        snapshot.number = [7, 9, 10]
        backfill = BackfillController(FeeNormalizer(), cache=snapshot)
        window = SampleWindow(5)

        result = await backfill.backfill(window, 5, FakeProvider())

        # 10 and 9 hit; 8 disagrees with the number column
        assert result.cache_hits == 2
        assert result.attempted == 8

    @pytest.mark.asyncio
    async def test_cache_below_interior_gap_still_hits(self):
        """Block 7 was empty and never written: 6 and 5 still come from the cache."""
        snapshot = cache_snapshot([5, 6, 8, 9, 10])
        provider = FakeProvider(blocks={7: make_block(7, fees=[])})
        backfill = BackfillController(FeeNormalizer(), cache=snapshot, empty_block_retries=1)
        window = SampleWindow(6)

        first = await backfill.backfill(window, 6, provider)

        assert first.cache_hits == 3
        assert first.fetched == 7
        assert window.get(7).is_empty

        second = await backfill.backfill(window, 6, provider)

        assert second.cache_hits == 2
        assert second.attempted is None
        assert window.get(6).cached and window.get(5).cached
        assert window.get(6).transaction_count == 2
        assert provider.block_requests == [7]

    @pytest.mark.asyncio
    async def test_base_fee_attached_unless_legacy(self, controller):
        provider = FakeProvider(blocks={9: make_block(9)}, base_fee=25.0)
        window = SampleWindow(5)
        window.insert(controller.normalizer.normalize(make_block(10)))

        await controller.backfill(window, 5, provider, legacy_fee_mode=False)
        assert window.get(9).base_fee == 25.0

        provider.blocks[8] = make_block(8)
        await controller.backfill(window, 5, provider, legacy_fee_mode=True)
        assert window.get(8).base_fee is None
