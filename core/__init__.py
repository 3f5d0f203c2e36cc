"""
core - Core utilities and models for the gas oracle.

This package contains:
- constants.py: Enums and defaults
- exceptions.py: Typed exceptions with error codes
- models.py: Raw provider models, Sample, Snapshot
- math.py: Quantity decoding and unit conversion
- time.py: Timestamps and RFC 3339 parsing
- logging.py: Structured JSON logging
"""

from core.constants import (
    ChainFamily,
    ErrorCode,
    FeeMode,
    FetchState,
)
from core.exceptions import (
    ConfigError,
    DecodeError,
    InfraError,
    OracleError,
    PersistenceError,
    ProviderExhaustedError,
    RPCError,
    RPCTimeoutError,
)
from core.logging import get_logger, setup_logging, set_global_context
from core.models import (
    RawBlock,
    RawReceipt,
    RawTransaction,
    Sample,
    Snapshot,
)

__all__ = [
    # Constants
    "ChainFamily",
    "ErrorCode",
    "FeeMode",
    "FetchState",
    # Exceptions
    "ConfigError",
    "DecodeError",
    "InfraError",
    "OracleError",
    "PersistenceError",
    "ProviderExhaustedError",
    "RPCError",
    "RPCTimeoutError",
    # Models
    "RawBlock",
    "RawReceipt",
    "RawTransaction",
    "Sample",
    "Snapshot",
    # Logging
    "get_logger",
    "setup_logging",
    "set_global_context",
]
