"""
tests/unit/test_selector.py - Tests for chains/selector.py
"""

import asyncio

import pytest

from conftest import FakeProvider, make_block
from chains.selector import ProviderSelector
from core.exceptions import ProviderExhaustedError, RPCError
from core.models import Snapshot


def provider(name, height, fail=False):
    return FakeProvider(name=name, height=height, fail_height=fail,
                        blocks={height: make_block(height)})


class SlowProvider(FakeProvider):
    def __init__(self, *args, delay=0.5, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay
        self.cancelled = False

    async def get_block(self, block="latest"):
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return await super().get_block(block)


class TestSelectBest:
    @pytest.mark.asyncio
    async def test_highest_height_wins(self):
        candidates = [provider("a", 100), provider("b", 105), provider("c", 98)]

        selection = await ProviderSelector(candidates).select_best()

        assert selection.provider.provider_id == "b"
        assert selection.height == 105

    @pytest.mark.asyncio
    async def test_errors_excluded(self):
        candidates = [provider("a", 0, fail=True), provider("b", 105), provider("c", 0, fail=True)]

        selection = await ProviderSelector(candidates).select_best()

        assert selection.provider.provider_id == "b"
        assert selection.height == 105

    @pytest.mark.asyncio
    async def test_all_errors(self):
        candidates = [provider(n, 0, fail=True) for n in "abc"]

        with pytest.raises(ProviderExhaustedError) as exc_info:
            await ProviderSelector(candidates).select_best()

        assert set(exc_info.value.details["errors"]) == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_tie_goes_to_first(self):
        candidates = [provider("a", 105), provider("b", 105)]

        selection = await ProviderSelector(candidates).select_best()

        assert selection.provider.provider_id == "a"

    @pytest.mark.asyncio
    async def test_no_candidates(self):
        with pytest.raises(ProviderExhaustedError):
            await ProviderSelector([]).select_best()

    @pytest.mark.asyncio
    async def test_explicit_candidates_override_snapshot(self):
        selector = ProviderSelector([provider("a", 100)])

        selection = await selector.select_best([provider("z", 500)])

        assert selection.provider.provider_id == "z"


class TestSelectInitial:
    @pytest.mark.asyncio
    async def test_first_responder_wins(self):
        slow = SlowProvider(name="slow", height=200, blocks={200: make_block(200)}, delay=1.0)
        fast = provider("fast", 100)

        selection = await ProviderSelector([slow, fast]).select_initial()

        assert selection.provider is fast
        assert selection.height == 100
        assert slow.cancelled

    @pytest.mark.asyncio
    async def test_skips_failing_candidates(self):
        broken = FakeProvider(name="broken", height=100, blocks={100: RPCError("boom")})
        empty = FakeProvider(name="empty", height=100, blocks={})
        good = provider("good", 90)

        selection = await ProviderSelector([broken, empty, good]).select_initial()

        assert selection.provider is good

    @pytest.mark.asyncio
    async def test_none_answer(self):
        broken = FakeProvider(name="broken", height=100, blocks={100: RPCError("boom")})

        with pytest.raises(ProviderExhaustedError) as exc_info:
            await ProviderSelector([broken]).select_initial()

        assert "broken" in exc_info.value.details["errors"]


class TestIsStale:
    def test_stale_after_threshold(self):
        selector = ProviderSelector(stale_threshold_s=300)
        snapshot = Snapshot(last_block=10, last_time=1000)

        assert not selector.is_stale(snapshot, now=1300)
        assert selector.is_stale(snapshot, now=1301)

    def test_future_timestamp_counts_as_distance(self):
        selector = ProviderSelector(stale_threshold_s=300)
        snapshot = Snapshot(last_block=10, last_time=2000)

        assert selector.is_stale(snapshot, now=1000)

    def test_no_snapshot_not_stale(self):
        selector = ProviderSelector()

        assert not selector.is_stale(None, now=10**10)
        assert not selector.is_stale(Snapshot(), now=10**10)


class TestCandidates:
    def test_refresh_replaces_snapshot(self):
        selector = ProviderSelector([provider("a", 1)])
        selector.refresh([provider("b", 1), provider("c", 1)])

        assert [p.provider_id for p in selector.candidates] == ["b", "c"]

    def test_candidates_is_a_copy(self):
        selector = ProviderSelector([provider("a", 1)])
        selector.candidates.append(provider("x", 1))

        assert len(selector.candidates) == 1

    @pytest.mark.asyncio
    async def test_release_closes_others(self):
        a, b, c = provider("a", 1), provider("b", 1), provider("c", 1)
        selector = ProviderSelector([a, b, c])

        await selector.release(keep=b)

        assert a.closed and c.closed
        assert not b.closed
