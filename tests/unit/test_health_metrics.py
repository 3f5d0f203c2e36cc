# PATH: tests/unit/test_health_metrics.py
"""
Tests for sampler health metrics.

Key invariant: ticks == success + fail + backfilling
"""

import unittest

from chains.base import RPCStats
from core.constants import FetchState
from monitoring.health import SamplerHealth


class TestSamplerHealthBasic(unittest.TestCase):
    """Basic tests for SamplerHealth."""

    def test_initial_state(self):
        """Fresh metrics have zero counts."""
        h = SamplerHealth()

        self.assertEqual(h.ticks, 0)
        self.assertEqual(h.success_rate, 0.0)
        self.assertIsNone(h.last_block)

    def test_record_outcomes(self):
        """Each outcome lands in its own counter."""
        h = SamplerHealth()

        h.record_outcome(FetchState.SUCCESS, 100)
        h.record_outcome(FetchState.SUCCESS, 101)
        h.record_outcome(FetchState.FAIL)
        h.record_outcome(FetchState.BACKFILLING)

        self.assertEqual(h.success_count, 2)
        self.assertEqual(h.fail_count, 1)
        self.assertEqual(h.backfill_count, 1)
        self.assertEqual(h.ticks, 4)
        self.assertEqual(h.last_block, 101)
        self.assertAlmostEqual(h.success_rate, 0.5)

    def test_init_not_counted(self):
        """INIT is not a tick outcome."""
        h = SamplerHealth()

        h.record_outcome(FetchState.INIT)

        self.assertEqual(h.ticks, 0)

    def test_backfill_activity(self):
        h = SamplerHealth()

        h.record_backfill(cache_hits=3, fetched=False)
        h.record_backfill(cache_hits=0, fetched=True)

        self.assertEqual(h.cache_hits, 3)
        self.assertEqual(h.network_backfills, 1)

    def test_provider_events(self):
        h = SamplerHealth()

        h.record_provider_switch()
        h.record_selection_failure()
        h.record_selection_failure()

        self.assertEqual(h.provider_switches, 1)
        self.assertEqual(h.selection_failures, 2)

    def test_to_dict(self):
        h = SamplerHealth()
        h.record_outcome(FetchState.SUCCESS, 7)
        h.record_outcome(FetchState.FAIL)
        h.record_outcome(FetchState.FAIL)

        d = h.to_dict()

        self.assertEqual(d["ticks"], 3)
        self.assertEqual(d["success_rate"], 0.333)
        self.assertEqual(d["last_block"], 7)
        self.assertEqual(d["started_at"], h.started_at)

    def test_started_at_is_utc_iso(self):
        """Start time is stamped once, as a timezone-aware ISO string."""
        h = SamplerHealth()

        self.assertIn("T", h.started_at)
        self.assertTrue(h.started_at.endswith("+00:00"))


class TestRPCStats(unittest.TestCase):
    """Per-endpoint request statistics."""

    def test_success_and_failure(self):
        stats = RPCStats(url="https://rpc.example")

        stats.record_success(latency_ms=100)
        stats.record_success(latency_ms=300)
        stats.record_failure("timeout")

        self.assertEqual(stats.total_requests, 3)
        self.assertEqual(stats.avg_latency_ms, 200)
        self.assertAlmostEqual(stats.success_rate, 2 / 3)
        self.assertEqual(stats.last_error, "timeout")
        # Milliseconds since the epoch
        self.assertGreater(stats.last_success_ts, 10**12)

    def test_empty(self):
        stats = RPCStats(url="https://rpc.example")

        self.assertEqual(stats.avg_latency_ms, 0)
        self.assertEqual(stats.success_rate, 0.0)
        self.assertEqual(stats.to_dict()["total_requests"], 0)


if __name__ == "__main__":
    unittest.main()
