"""
sampler/config.py - Sampler configuration.

Defaults per chain family with per-network overrides from networks.yaml
and caller overrides (CLI) on top.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from config import get_network_config
from core.constants import (
    ChainFamily,
    DEFAULT_BACKFILL_FLOOR,
    DEFAULT_EMPTY_BLOCK_RETRIES,
    DEFAULT_HEALTH_EVERY,
    DEFAULT_REQUEST_TIMEOUT_S,
    DEFAULT_RESYNC_EVERY,
    DEFAULT_SAMPLE_SIZE,
    DEFAULT_STALE_THRESHOLD_S,
    ETHER_DECIMALS,
    FAMILY_INTERVALS_MS,
    FeeMode,
    GWEI_DECIMALS,
    SPEED_FACTOR,
)
from core.exceptions import ConfigError


@dataclass
class SamplerConfig:
    """Full sampler configuration for one network."""

    network: str
    family: ChainFamily = ChainFamily.EVM
    endpoints: list[str] = field(default_factory=list)

    # Window
    sample_size: int = DEFAULT_SAMPLE_SIZE

    # Adaptive polling (ms)
    interval_ms: float = 1000
    min_interval_ms: float = 100
    max_interval_ms: float = 15000
    speed_factor: float = SPEED_FACTOR
    resync_every: int = DEFAULT_RESYNC_EVERY

    # Provider selection
    stale_threshold_s: float = DEFAULT_STALE_THRESHOLD_S
    request_timeout_s: int = DEFAULT_REQUEST_TIMEOUT_S

    # Fees
    fee_mode: FeeMode = FeeMode.NOMINAL
    fee_decimals: int = GWEI_DECIMALS
    legacy_fee: Optional[bool] = None  # None = detect at connect
    receipt_gas_fallback: bool = True

    # Backfill
    empty_block_retries: int = DEFAULT_EMPTY_BLOCK_RETRIES
    backfill_floor: int = DEFAULT_BACKFILL_FLOOR

    # Cosmos heights can jump; resync the cursor to chain height on failure
    resync_on_fail: bool = False

    # Output
    output_dir: str = "."
    health_every: int = DEFAULT_HEALTH_EVERY

    @property
    def snapshot_path(self) -> Path:
        return Path(self.output_dir) / f"blockStats_{self.network}.json"

    def validate(self) -> "SamplerConfig":
        """
        Check bounds and sizes.

        Raises:
            ConfigError: On any invalid value
        """
        problems = []
        if not self.endpoints:
            problems.append("no endpoints configured")
        if self.sample_size <= 0:
            problems.append(f"sample_size must be positive (got {self.sample_size})")
        if self.min_interval_ms <= 0:
            problems.append(f"min_interval_ms must be positive (got {self.min_interval_ms})")
        if self.min_interval_ms > self.max_interval_ms:
            problems.append(
                f"min_interval_ms {self.min_interval_ms} > max_interval_ms {self.max_interval_ms}"
            )
        if self.speed_factor <= 1:
            problems.append(f"speed_factor must be > 1 (got {self.speed_factor})")
        if self.resync_every <= 0:
            problems.append(f"resync_every must be positive (got {self.resync_every})")
        if self.empty_block_retries <= 0:
            problems.append(f"empty_block_retries must be positive (got {self.empty_block_retries})")

        if problems:
            raise ConfigError(
                f"Invalid configuration for {self.network}: {'; '.join(problems)}",
                details={"network": self.network, "problems": problems},
            )
        return self


def _default_fee_decimals(family: ChainFamily, fee_mode: FeeMode) -> int:
    if family is ChainFamily.COSMOS:
        return 0
    if fee_mode is FeeMode.EFFECTIVE:
        return ETHER_DECIMALS
    return GWEI_DECIMALS


def build_sampler_config(network: str, entry: dict[str, Any], **overrides: Any) -> SamplerConfig:
    """
    Build a SamplerConfig from a networks.yaml entry plus overrides.

    Overrides with value None are ignored so CLI options can be passed
    through unconditionally.

    Raises:
        ConfigError: On unknown family/fee mode or invalid values
    """
    try:
        family = ChainFamily(entry.get("family", ChainFamily.EVM.value))
        fee_mode = FeeMode(entry.get("fee_mode", FeeMode.NOMINAL.value))
    except ValueError as e:
        raise ConfigError(f"Invalid network entry for {network}: {e}") from e

    endpoints = entry.get("endpoints") or []
    if isinstance(endpoints, str):
        endpoints = [endpoints]

    base_ms, min_ms, max_ms = FAMILY_INTERVALS_MS[family]

    values: dict[str, Any] = {
        "network": network,
        "family": family,
        "endpoints": list(endpoints),
        "interval_ms": base_ms,
        "min_interval_ms": min_ms,
        "max_interval_ms": max_ms,
        "fee_mode": fee_mode,
        "fee_decimals": _default_fee_decimals(family, fee_mode),
        "resync_on_fail": family is ChainFamily.COSMOS,
        "receipt_gas_fallback": family is ChainFamily.EVM,
    }
    if family is ChainFamily.COSMOS:
        # No base fee market on Cosmos
        values["legacy_fee"] = True

    known = {f.name for f in fields(SamplerConfig)}
    for key, value in entry.items():
        if key in known and key not in ("network", "family", "fee_mode", "endpoints"):
            values[key] = value

    for key, value in overrides.items():
        if value is None:
            continue
        if key not in known:
            raise ConfigError(f"Unknown config override: {key}")
        values[key] = value

    try:
        return SamplerConfig(**values).validate()
    except TypeError as e:
        raise ConfigError(f"Invalid network entry for {network}: {e}") from e


def load_sampler_config(
    network: str,
    networks_path: Optional[str | Path] = None,
    **overrides: Any,
) -> SamplerConfig:
    """
    Load the sampler configuration for a network.

    Args:
        network: Network identifier in the catalogue
        networks_path: Optional catalogue path (default: bundled networks.yaml)
        **overrides: Caller overrides (sample_size, interval_ms, legacy_fee, ...)

    Raises:
        ConfigError: Unknown network or invalid values (fatal at startup)
    """
    entry = get_network_config(network, networks_path)
    return build_sampler_config(network, entry, **overrides)
