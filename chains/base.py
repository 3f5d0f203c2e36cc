"""
chains/base.py - Chain Data Provider interface and shared HTTP plumbing.

Every provider answers for exactly one endpoint. Failover between endpoints
is the Provider Selector's job, not the provider's.
"""

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

import httpx

from core.constants import ChainFamily, DEFAULT_REQUEST_TIMEOUT_S
from core.models import BlockId, RawBlock, RawReceipt
from core.time import now_ms


@runtime_checkable
class ChainDataProvider(Protocol):
    """What the sampler needs from a chain endpoint."""

    family: ChainFamily

    @property
    def provider_id(self) -> str: ...

    async def get_height(self) -> int: ...

    async def get_block(self, block: BlockId) -> Optional[RawBlock]: ...

    async def get_base_fee(self, block: BlockId) -> Optional[float]: ...

    async def get_tx_receipt(self, tx_hash: str) -> RawReceipt: ...

    async def close(self) -> None: ...

    def get_stats_summary(self) -> dict: ...


@dataclass
class RPCStats:
    """Statistics for one endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    def record_success(self, latency_ms: int) -> None:
        self.total_requests += 1
        self.successful_requests += 1
        self.total_latency_ms += latency_ms
        self.last_success_ts = now_ms()

    def record_failure(self, error: str) -> None:
        self.total_requests += 1
        self.failed_requests += 1
        self.last_error = error

    def to_dict(self) -> dict:
        return {
            "total_requests": self.total_requests,
            "success_rate": round(self.success_rate, 3),
            "avg_latency_ms": self.avg_latency_ms,
            "last_error": self.last_error,
        }


class HTTPProvider:
    """
    HTTP client lifecycle and request bookkeeping shared by providers.

    The client is created lazily so providers can be constructed outside
    a running event loop.
    """

    family: ChainFamily

    def __init__(
        self,
        url: str,
        timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_S,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client
        self.stats = RPCStats(url=self.url)

    @property
    def provider_id(self) -> str:
        return self.url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def get_stats_summary(self) -> dict:
        """Get statistics summary for this endpoint."""
        return {self.url: self.stats.to_dict()}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r})"
