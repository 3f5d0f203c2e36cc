"""
sampler/interval.py - Adaptive poll interval.

Successes speed polling up toward the chain's block cadence; failures and
pure-backfill ticks slow it down. The result never leaves [min, max]
except for the fixed INIT delay.
"""

from core.constants import FetchState, INIT_INTERVAL_MS, SPEED_FACTOR


def next_interval(
    current_interval: float,
    state: FetchState,
    min_interval: float,
    max_interval: float,
    speed_factor: float = SPEED_FACTOR,
) -> float:
    """
    Compute the delay (ms) before the next tick.

    Args:
        current_interval: Current delay in ms
        state: Outcome of the tick just finished
        min_interval: Lower bound in ms
        max_interval: Upper bound in ms
        speed_factor: Multiplicative step (> 1)

    Returns:
        Next delay in ms
    """
    if state is FetchState.INIT:
        return INIT_INTERVAL_MS

    if state is FetchState.SUCCESS:
        interval = current_interval / speed_factor
    else:
        # FAIL and BACKFILLING
        interval = current_interval * speed_factor

    return min(max_interval, max(min_interval, interval))
