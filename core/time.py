# PATH: core/time.py
"""
Time utilities for the gas oracle.

Block timestamps are unix seconds; scheduler delays are milliseconds.
"""

import re
import time
from datetime import datetime, timezone
from typing import Optional

# 2023-01-01T12:00:00.123456789Z (fraction and offset optional)
_RFC3339_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.\d+)?(Z|[+-]\d{2}:\d{2})?$"
)


def now_utc() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Get current UTC datetime as ISO string."""
    return now_utc().isoformat()


def now_timestamp() -> float:
    """Get current Unix timestamp."""
    return time.time()


def now_ms() -> int:
    """Get current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def age_seconds(
    timestamp: float,
    current_time: Optional[float] = None,
) -> float:
    """
    Absolute distance in seconds between a timestamp and now.

    Clock skew between us and the chain can put block timestamps slightly
    in the future, so the distance is unsigned.
    """
    current = now_timestamp() if current_time is None else current_time
    return abs(current - timestamp)


def parse_rfc3339(value: str) -> int:
    """
    Parse an RFC 3339 timestamp into unix seconds.

    Fractional seconds are dropped (Cosmos emits nanoseconds, which
    datetime cannot represent).

    Raises:
        ValueError: If the string is not an RFC 3339 timestamp
    """
    match = _RFC3339_RE.match(value.strip())
    if not match:
        raise ValueError(f"Not an RFC 3339 timestamp: {value!r}")

    base, offset = match.groups()
    if offset is None or offset == "Z":
        offset = "+00:00"

    return int(datetime.fromisoformat(base + offset).timestamp())
