"""
chains/cosmos.py - Cosmos SDK REST (LCD) provider.

Cosmos chains have no base fee and no per-gas price on the transaction;
the fee is the first coin of auth_info.fee.amount in the smallest
denomination. Heights can jump, so callers resynchronise on failure.
"""

from typing import Any, Optional

import httpx

from chains.base import HTTPProvider
from core.constants import ChainFamily, ErrorCode
from core.exceptions import DecodeError, RPCError, RPCTimeoutError
from core.logging import get_logger
from core.math import decode_quantity
from core.models import BlockId, RawBlock, RawReceipt, RawTransaction, block_id_to_int
from core.time import now_ms, parse_rfc3339

logger = get_logger(__name__)

LATEST_BLOCK_PATH = "/cosmos/base/tendermint/v1beta1/blocks/latest"
BLOCK_PATH = "/cosmos/base/tendermint/v1beta1/blocks/{height}"
TXS_PATH = "/cosmos/tx/v1beta1/txs"


def extract_fee_amount(tx: Any) -> Any:
    """First fee coin amount, or None when the tx has no fee."""
    try:
        amounts = tx["auth_info"]["fee"]["amount"]
        if not amounts:
            return None
        return amounts[0]["amount"]
    except (KeyError, IndexError, TypeError):
        return None


def _block_header(data: dict) -> dict:
    # Newer SDKs return sdk_block alongside (or instead of) block
    block = data.get("block") or data.get("sdk_block") or {}
    return block.get("header") or {}


class CosmosProvider(HTTPProvider):
    """REST provider for one Cosmos LCD endpoint."""

    family = ChainFamily.COSMOS

    async def _get(self, path: str, params: dict | None = None) -> dict:
        """
        GET a JSON document.

        Raises:
            RPCTimeoutError: If the request timed out
            RPCError: On transport errors, non-JSON bodies or error payloads
        """
        client = await self._get_client()
        url = f"{self.url}{path}"
        start_ms = now_ms()

        try:
            resp = await client.get(url, params=params)
            latency_ms = now_ms() - start_ms
            data = resp.json()

        except httpx.TimeoutException as e:
            latency_ms = now_ms() - start_ms
            self.stats.record_failure(f"Timeout after {latency_ms}ms")
            logger.debug(f"API timeout for {url}: {latency_ms}ms")
            raise RPCTimeoutError(
                f"API timeout after {latency_ms}ms",
                details={"url": url},
            ) from e

        except (httpx.HTTPError, ValueError) as e:
            self.stats.record_failure(str(e))
            logger.debug(f"API request failed for {url}: {e}")
            raise RPCError(f"API request failed: {e}", details={"url": url}) from e

        if not isinstance(data, dict):
            self.stats.record_failure("Malformed response")
            raise RPCError(
                "Malformed API response",
                code=ErrorCode.INFRA_BAD_RESPONSE,
                details={"url": url},
            )

        # gRPC-gateway errors: {"code": 5, "message": "...", "details": []}
        if data.get("code") and "message" in data:
            self.stats.record_failure(str(data["message"]))
            raise RPCError(
                f"API error: {data['message']}",
                details={"url": url, "grpc_code": data["code"]},
            )

        self.stats.record_success(latency_ms)
        return data

    async def get_height(self) -> int:
        """Get latest block height."""
        data = await self._get(LATEST_BLOCK_PATH)
        height = decode_quantity(_block_header(data).get("height"))
        if height is None:
            raise RPCError(
                "Malformed block height",
                code=ErrorCode.INFRA_BAD_RESPONSE,
                details={"url": self.url},
            )
        return height

    async def _get_block_time(self, height: int) -> int:
        data = await self._get(BLOCK_PATH.format(height=height))
        header_time = _block_header(data).get("time")
        if not header_time:
            raise DecodeError("Block header has no time", details={"height": height})
        return parse_rfc3339(header_time)

    async def get_block(self, block: BlockId = "latest") -> Optional[RawBlock]:
        """
        Get the transactions of one height.

        Returns:
            RawBlock, or None if the endpoint returned no tx list
        """
        height = await self.get_height() if block == "latest" else block_id_to_int(block)

        data = await self._get(TXS_PATH, params={"events": f"tx.height={height}"})
        txs = data.get("txs")
        if txs is None:
            return None

        responses = data.get("tx_responses") or []

        transactions = []
        for i, tx in enumerate(txs):
            tx_hash = None
            if i < len(responses) and isinstance(responses[i], dict):
                tx_hash = responses[i].get("txhash")
            transactions.append(RawTransaction(hash=tx_hash, gas_price=extract_fee_amount(tx)))

        gas_used = sum(
            decode_quantity(r.get("gas_used")) or 0
            for r in responses if isinstance(r, dict)
        )

        try:
            timestamp = parse_rfc3339(responses[0]["timestamp"])
        except (IndexError, KeyError, TypeError, ValueError):
            timestamp = await self._get_block_time(height)

        return RawBlock(
            number=height,
            timestamp=timestamp,
            gas_used=gas_used,
            transactions=transactions,
        )

    async def get_base_fee(self, block: BlockId = "latest") -> Optional[float]:
        """Cosmos has no base fee market."""
        return None

    async def get_tx_receipt(self, tx_hash: str) -> RawReceipt:
        raise RPCError(
            "Receipts are not available on Cosmos providers",
            code=ErrorCode.INFRA_BAD_RESPONSE,
            details={"url": self.url, "tx_hash": tx_hash},
        )
