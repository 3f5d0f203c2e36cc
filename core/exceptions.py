# PATH: core/exceptions.py
"""
Typed exceptions for the gas oracle.

Infrastructure failures (RPC, timeouts, exhausted providers) are kept apart
from persistence and configuration failures so callers can decide which
ones are recoverable.
"""

from typing import Optional

from core.constants import ErrorCode


class OracleError(Exception):
    """Base exception for the gas oracle."""

    default_code = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"


class InfraError(OracleError):
    """Infrastructure-related errors (RPC, timeouts, providers)."""
    default_code = ErrorCode.INFRA_RPC_ERROR


class RPCError(InfraError):
    """RPC call failed or returned an error object."""
    default_code = ErrorCode.INFRA_RPC_ERROR


class RPCTimeoutError(InfraError):
    """RPC call timed out."""
    default_code = ErrorCode.INFRA_TIMEOUT


class ProviderExhaustedError(InfraError):
    """No candidate provider answered during selection."""
    default_code = ErrorCode.PROVIDER_EXHAUSTED


class DecodeError(OracleError):
    """A provider payload could not be decoded."""
    default_code = ErrorCode.DECODE_ERROR


class PersistenceError(OracleError):
    """Snapshot could not be written or read."""
    default_code = ErrorCode.PERSISTENCE_WRITE_FAILED


class ConfigError(OracleError):
    """Invalid or unknown configuration."""
    default_code = ErrorCode.CONFIG_INVALID
