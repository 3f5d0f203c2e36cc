"""
Sampler package: fee normalization, the sample window, backfill and the
adaptive poll scheduler.
"""

from sampler.backfill import BackfillController, BackfillResult
from sampler.config import SamplerConfig, build_sampler_config, load_sampler_config
from sampler.interval import next_interval
from sampler.normalizer import FeeNormalizer
from sampler.scheduler import PollScheduler, SchedulerState, TickResult, build_scheduler
from sampler.window import SampleWindow, progress_bar

__all__ = [
    "BackfillController",
    "BackfillResult",
    "FeeNormalizer",
    "PollScheduler",
    "SampleWindow",
    "SamplerConfig",
    "SchedulerState",
    "TickResult",
    "build_sampler_config",
    "build_scheduler",
    "load_sampler_config",
    "next_interval",
    "progress_bar",
]
