# PATH: core/constants.py
"""
Constants for the gas oracle.

Contains enums, defaults, and configuration constants.
"""

from enum import Enum
from typing import Final


# =============================================================================
# SAMPLING DEFAULTS
# =============================================================================

DEFAULT_SAMPLE_SIZE: Final[int] = 1000

# Adaptive polling
SPEED_FACTOR: Final[float] = 1.1
INIT_INTERVAL_MS: Final[float] = 10.0

# Resynchronise with chain head every N ticks
DEFAULT_RESYNC_EVERY: Final[int] = 100

# Provider staleness (seconds between now and snapshot lastTime)
DEFAULT_STALE_THRESHOLD_S: Final[int] = 300

# Backfill
DEFAULT_EMPTY_BLOCK_RETRIES: Final[int] = 3
DEFAULT_BACKFILL_FLOOR: Final[int] = 0

# Networking
DEFAULT_REQUEST_TIMEOUT_S: Final[int] = 10

# Health summary cadence (ticks)
DEFAULT_HEALTH_EVERY: Final[int] = 100

# Progress bar width used while the window is filling
PROGRESS_BAR_SIZE: Final[int] = 50

# Unit conversion (smallest unit -> display unit)
GWEI_DECIMALS: Final[int] = 9
ETHER_DECIMALS: Final[int] = 18


class ChainFamily(str, Enum):
    """Chain families with distinct provider protocols."""
    EVM = "evm"
    COSMOS = "cosmos"


class FeeMode(str, Enum):
    """How a transaction's fee value is derived."""
    # Nominal gas price of the transaction
    NOMINAL = "nominal"
    # effectiveGasPrice * gasUsed from the receipt (L2 refund model)
    EFFECTIVE = "effective"


class FetchState(str, Enum):
    """Outcome of one scheduler tick."""
    INIT = "INIT"
    SUCCESS = "SUCCESS"
    FAIL = "FAIL"
    BACKFILLING = "BACKFILLING"


# Interval bounds per family: (base, min, max) in milliseconds
FAMILY_INTERVALS_MS: Final[dict] = {
    ChainFamily.EVM: (1000, 100, 15000),
    ChainFamily.COSMOS: (5000, 1000, 15000),
}

# Snapshot document keys per family: (fee column, provider key)
FAMILY_SNAPSHOT_KEYS: Final[dict] = {
    ChainFamily.EVM: ("minGwei", "rpc"),
    ChainFamily.COSMOS: ("minFee", "api"),
}


class ErrorCode(str, Enum):
    """
    Error codes carried by OracleError subclasses.

    Used in logs and exception details for operator triage.
    """
    # Infrastructure
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_TIMEOUT = "INFRA_TIMEOUT"
    INFRA_BAD_RESPONSE = "INFRA_BAD_RESPONSE"
    PROVIDER_EXHAUSTED = "PROVIDER_EXHAUSTED"

    # Data
    DECODE_ERROR = "DECODE_ERROR"

    # Persistence
    PERSISTENCE_WRITE_FAILED = "PERSISTENCE_WRITE_FAILED"
    PERSISTENCE_READ_FAILED = "PERSISTENCE_READ_FAILED"

    # Configuration
    CONFIG_UNKNOWN_NETWORK = "CONFIG_UNKNOWN_NETWORK"
    CONFIG_INVALID = "CONFIG_INVALID"

    UNKNOWN = "UNKNOWN"
