"""
chains/providers.py - EVM JSON-RPC provider.

Provides block, base fee, height and receipt access for one endpoint with:
- Request timeout handling
- Connection pooling
- Latency tracking
- Typed errors (RPCError / RPCTimeoutError), never raw httpx errors
"""

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from chains.base import HTTPProvider
from core.constants import ChainFamily, ErrorCode, GWEI_DECIMALS
from core.exceptions import DecodeError, RPCError, RPCTimeoutError
from core.logging import get_logger
from core.math import decode_quantity, to_display_unit
from core.models import BlockId, RawBlock, RawReceipt, RawTransaction, block_id_to_int
from core.time import now_ms

logger = get_logger(__name__)


@dataclass
class RPCResponse:
    """Response from an RPC call."""
    result: Any
    latency_ms: int
    endpoint_used: str


def to_block_tag(block: BlockId) -> str:
    """'latest' stays a tag, numbers become hex quantities."""
    if isinstance(block, str) and block in ("latest", "pending", "earliest", "safe", "finalized"):
        return block
    return hex(block_id_to_int(block))


def parse_transaction(tx: Any) -> RawTransaction:
    """Full tx objects carry gasPrice; hash-only bodies carry nothing."""
    if isinstance(tx, dict):
        return RawTransaction(hash=tx.get("hash"), gas_price=tx.get("gasPrice"))
    if isinstance(tx, str):
        return RawTransaction(hash=tx)
    return RawTransaction()


def parse_block(result: dict) -> RawBlock:
    """
    Decode an eth_getBlockByNumber result.

    Raises:
        DecodeError: If the block number or timestamp is missing
    """
    number = decode_quantity(result.get("number"))
    timestamp = decode_quantity(result.get("timestamp"))
    if number is None or timestamp is None:
        raise DecodeError(
            "Block is missing number or timestamp",
            details={"number": result.get("number"), "timestamp": result.get("timestamp")},
        )

    transactions = result.get("transactions")
    base_fee = result.get("baseFeePerGas")

    return RawBlock(
        number=number,
        timestamp=timestamp,
        gas_used=decode_quantity(result.get("gasUsed")) or 0,
        transactions=[parse_transaction(tx) for tx in transactions] if isinstance(transactions, list) else None,
        base_fee=to_display_unit(base_fee, GWEI_DECIMALS) if base_fee is not None else None,
    )


class RPCProvider(HTTPProvider):
    """
    JSON-RPC provider for one EVM endpoint.

    Tracks statistics for monitoring.
    """

    family = ChainFamily.EVM

    def __init__(self, url: str, timeout_seconds: int = 10, client: httpx.AsyncClient | None = None):
        super().__init__(url, timeout_seconds, client)
        self._request_id = 0

    def _next_request_id(self) -> int:
        """Generate next request ID."""
        self._request_id += 1
        return self._request_id

    async def call(
        self,
        method: str,
        params: list | None = None,
    ) -> RPCResponse:
        """
        Make an RPC call.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            RPCResponse with result and metadata

        Raises:
            RPCTimeoutError: If the request timed out
            RPCError: On transport errors or JSON-RPC error objects
        """
        client = await self._get_client()

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": self._next_request_id(),
        }

        start_ms = now_ms()

        try:
            resp = await client.post(self.url, json=payload)
            latency_ms = now_ms() - start_ms
            result = resp.json()

        except httpx.TimeoutException as e:
            latency_ms = now_ms() - start_ms
            self.stats.record_failure(f"Timeout after {latency_ms}ms")
            logger.debug(f"RPC timeout for {self.url}: {latency_ms}ms")
            raise RPCTimeoutError(
                f"RPC timeout after {latency_ms}ms",
                details={"url": self.url, "method": method},
            ) from e

        except (httpx.HTTPError, ValueError) as e:
            self.stats.record_failure(str(e))
            logger.debug(f"RPC failed for {self.url}: {e}")
            raise RPCError(
                f"RPC request failed: {e}",
                details={"url": self.url, "method": method},
            ) from e

        if not isinstance(result, dict):
            self.stats.record_failure("Malformed response")
            raise RPCError(
                "Malformed RPC response",
                code=ErrorCode.INFRA_BAD_RESPONSE,
                details={"url": self.url, "method": method},
            )

        if "error" in result:
            error = result["error"]
            error_msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            self.stats.record_failure(error_msg)
            logger.debug(f"RPC error from {self.url}: {error_msg}")
            raise RPCError(
                f"RPC error: {error_msg}",
                details={"url": self.url, "method": method},
            )

        self.stats.record_success(latency_ms)

        return RPCResponse(
            result=result.get("result"),
            latency_ms=latency_ms,
            endpoint_used=self.url,
        )

    async def get_height(self) -> int:
        """Get latest block number."""
        response = await self.call("eth_blockNumber")
        height = decode_quantity(response.result)
        if height is None:
            raise RPCError(
                "Malformed block number",
                code=ErrorCode.INFRA_BAD_RESPONSE,
                details={"url": self.url, "result": response.result},
            )
        return height

    async def get_block(self, block: BlockId = "latest") -> Optional[RawBlock]:
        """
        Get a block with full transaction objects.

        Returns:
            RawBlock, or None if the endpoint does not know the block yet
        """
        response = await self.call("eth_getBlockByNumber", [to_block_tag(block), True])
        if not response.result:
            return None
        return parse_block(response.result)

    async def get_base_fee(self, block: BlockId = "latest") -> Optional[float]:
        """
        Get the base fee of a block in gwei via eth_feeHistory.

        Returns:
            Base fee in gwei, or 0.0 if the chain reports none (legacy chain)
        """
        response = await self.call("eth_feeHistory", [1, to_block_tag(block), [0]])
        history = response.result or {}
        base_fees = history.get("baseFeePerGas") if isinstance(history, dict) else None
        if not base_fees:
            return 0.0
        return to_display_unit(base_fees[0], GWEI_DECIMALS)

    async def get_tx_receipt(self, tx_hash: str) -> RawReceipt:
        """Get effectiveGasPrice / gasUsed for a transaction."""
        response = await self.call("eth_getTransactionReceipt", [tx_hash])
        receipt = response.result
        if not isinstance(receipt, dict):
            raise RPCError(
                "Receipt not available",
                details={"url": self.url, "tx_hash": tx_hash},
            )
        return RawReceipt(
            effective_gas_price=receipt.get("effectiveGasPrice"),
            gas_used=receipt.get("gasUsed"),
        )
