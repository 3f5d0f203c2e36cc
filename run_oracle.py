#!/usr/bin/env python3
"""
run_oracle.py - CLI entrypoint for the gas oracle sampler.

Usage:
    python run_oracle.py --network ethereum
    python run_oracle.py -n arbitrum -s 200 -t 500 --no-json-logs
    gas-oracle --network cosmoshub --output-dir data/
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Callable, Optional

import click

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from chains.registry import build_candidates
from core.exceptions import ConfigError, ProviderExhaustedError
from core.logging import get_logger, set_global_context, setup_logging
from sampler.config import load_sampler_config
from sampler.scheduler import PollScheduler, build_scheduler

logger = get_logger("oracle.cli")

EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2


def install_signal_handlers(
    stop_event: asyncio.Event,
    on_reload: Optional[Callable[[], None]] = None,
) -> None:
    """SIGINT / SIGTERM request a stop after the current tick; SIGHUP reloads endpoints."""
    loop = asyncio.get_running_loop()

    def handle_shutdown(signum: int) -> None:
        logger.info("Shutdown requested", extra={"context": {"signal": signum}})
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, handle_shutdown, signum)
        except NotImplementedError:
            # Windows event loops: fall back to KeyboardInterrupt
            pass

    if on_reload is not None and hasattr(signal, "SIGHUP"):
        try:
            loop.add_signal_handler(signal.SIGHUP, on_reload)
        except NotImplementedError:
            pass


def reload_endpoints(
    scheduler: PollScheduler,
    network: str,
    config_path: Optional[str] = None,
) -> bool:
    """
    Re-read the network catalogue and queue a fresh candidate snapshot.

    A bad catalogue or an empty endpoint list keeps the current candidates.

    Returns:
        True if a refresh was queued
    """
    try:
        config = load_sampler_config(network, config_path)
    except ConfigError as e:
        logger.warning(f"Endpoint reload failed: {e}", extra={"context": e.details})
        return False

    candidates = build_candidates(
        scheduler.config.family,
        config.endpoints,
        scheduler.config.request_timeout_s,
    )
    if not candidates:
        logger.warning(
            "Endpoint reload found no usable endpoints",
            extra={"context": {"configured": len(config.endpoints)}},
        )
        return False

    scheduler.request_refresh(candidates)
    logger.info("Endpoint reload queued", extra={"context": {"candidates": len(candidates)}})
    return True


async def run_sampler(
    scheduler: PollScheduler,
    max_ticks: int | None,
    on_reload: Optional[Callable[[], None]] = None,
) -> None:
    """Run the scheduler until a signal arrives or max_ticks is reached."""
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event, on_reload)

    try:
        state = await scheduler.run(stop_event=stop_event, max_ticks=max_ticks)
        logger.info(
            "Gas oracle stopped",
            extra={
                "context": {
                    **scheduler.health.to_dict(),
                    "window_size": scheduler.window.size(),
                    "last_fetched_block": state.last_fetched_block,
                }
            },
        )
    finally:
        await scheduler.close()


@click.command()
@click.option(
    "--network",
    "-n",
    default="ethereum",
    help="Network to sample (key in networks.yaml)",
)
@click.option(
    "--sample-size",
    "-s",
    default=None,
    type=int,
    help="Number of blocks kept in the window (default: 1000)",
)
@click.option(
    "--time-interval",
    "-t",
    default=None,
    type=float,
    help="Base poll interval in milliseconds (default: per chain family)",
)
@click.option(
    "--legacy-fee/--dynamic-fee",
    default=None,
    help="Force the fee model (default: detect from fee history)",
)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Path to a networks.yaml catalogue",
)
@click.option(
    "--output-dir",
    "-o",
    default=None,
    help="Directory for blockStats_<network>.json",
)
@click.option(
    "--log-level",
    "-l",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON log format",
)
@click.option(
    "--max-ticks",
    default=None,
    type=int,
    help="Stop after this many ticks (default: run until signalled)",
)
def main(
    network: str,
    sample_size: int | None,
    time_interval: float | None,
    legacy_fee: bool | None,
    config_path: str | None,
    output_dir: str | None,
    log_level: str,
    json_logs: bool,
    max_ticks: int | None,
) -> None:
    """
    Gas oracle sampler.

    Keeps a rolling window of per-block fee samples for one network and
    persists it as blockStats_<network>.json.
    """
    setup_logging(level=log_level, json_output=json_logs)
    set_global_context(service="gas-oracle", network=network)

    try:
        config = load_sampler_config(
            network,
            config_path,
            sample_size=sample_size,
            interval_ms=time_interval,
            legacy_fee=legacy_fee,
            output_dir=output_dir,
        )
        if output_dir:
            Path(output_dir).mkdir(parents=True, exist_ok=True)
        scheduler = build_scheduler(config)

    except ConfigError as e:
        logger.error(f"Configuration error: {e}", extra={"context": e.details})
        sys.exit(EXIT_CONFIG_ERROR)
    except ProviderExhaustedError as e:
        logger.error(f"No usable provider: {e}", extra={"context": e.details})
        sys.exit(EXIT_RUNTIME_ERROR)

    logger.info(
        "Starting gas oracle sampler",
        extra={
            "context": {
                "family": config.family.value,
                "endpoints": len(config.endpoints),
                "sample_size": config.sample_size,
                "interval_ms": config.interval_ms,
                "snapshot_path": str(config.snapshot_path),
            }
        },
    )

    try:
        asyncio.run(
            run_sampler(
                scheduler,
                max_ticks,
                on_reload=lambda: reload_endpoints(scheduler, network, config_path),
            )
        )

    except KeyboardInterrupt:
        logger.info("Gas oracle interrupted")
    except ProviderExhaustedError as e:
        logger.error(f"No provider answered at startup: {e}", extra={"context": e.details})
        sys.exit(EXIT_RUNTIME_ERROR)
    except Exception as e:
        logger.error(
            f"Gas oracle error: {e}",
            extra={"context": {"error": str(e)}},
            exc_info=True,
        )
        sys.exit(EXIT_RUNTIME_ERROR)


if __name__ == "__main__":
    main()
