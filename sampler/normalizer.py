"""
sampler/normalizer.py - Convert provider blocks into chain-agnostic Samples.

Fee values:
- NOMINAL:   the transaction's gas price, in display units (gwei on EVM,
             smallest denomination on Cosmos)
- EFFECTIVE: effectiveGasPrice * gasUsed from the receipt, per transaction
             (L2 refund model). One receipt lookup per transaction, so this
             mode is only used when configured.

Zero, negative, missing or malformed fees are excluded; they never abort
normalization of the rest of the block.
"""

import asyncio
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Optional

from chains.base import ChainDataProvider
from core.constants import ChainFamily, FeeMode, GWEI_DECIMALS
from core.logging import get_logger
from core.math import decode_quantity, safe_decimal, to_display_unit
from core.models import RawBlock, RawReceipt, RawTransaction, Sample

logger = get_logger(__name__)


class FeeNormalizer:
    """Turns one RawBlock into one Sample."""

    def __init__(
        self,
        fee_mode: FeeMode = FeeMode.NOMINAL,
        fee_decimals: int = GWEI_DECIMALS,
        receipt_gas_fallback: bool = True,
    ):
        self.fee_mode = FeeMode(fee_mode)
        self.fee_decimals = fee_decimals
        # Recompute block gasUsed from receipts when the node reports 0
        self.receipt_gas_fallback = receipt_gas_fallback

    @staticmethod
    def _nominal_price(tx: RawTransaction) -> Decimal:
        return safe_decimal(getattr(tx, "gas_price", None))

    def transaction_fee(
        self,
        tx: RawTransaction,
        receipt: Optional[RawReceipt] = None,
    ) -> float:
        """
        Fee of one transaction in display units.

        Returns:
            Positive fee, or 0.0 when the transaction is not fee-bearing or
            cannot be decoded
        """
        try:
            price = self._nominal_price(tx)
            if price <= 0:
                return 0.0

            if self.fee_mode is FeeMode.EFFECTIVE:
                if receipt is None:
                    return 0.0
                effective = safe_decimal(receipt.effective_gas_price)
                gas_used = safe_decimal(receipt.gas_used)
                value = effective * gas_used
            else:
                value = price

            if value <= 0:
                return 0.0
            return to_display_unit(value, self.fee_decimals)

        except (AttributeError, TypeError, ValueError, ArithmeticError):
            return 0.0

    def normalize(
        self,
        block: RawBlock,
        receipts: Optional[Dict[str, RawReceipt]] = None,
    ) -> Sample:
        """
        Build the Sample for a block.

        Args:
            block: Provider block (transactions may be None or empty)
            receipts: Receipts by tx hash (EFFECTIVE mode only)

        Returns:
            Sample with ascending fee_list; average_gas only when at least
            one fee-bearing transaction exists
        """
        receipts = receipts or {}
        fees = []
        for tx in block.transactions or []:
            receipt = receipts.get(getattr(tx, "hash", None)) if receipts else None
            fee = self.transaction_fee(tx, receipt)
            if fee > 0:
                fees.append(fee)
        fees.sort()

        count = len(fees)
        gas_used = decode_quantity(block.gas_used) or 0

        return Sample(
            block_number=block.number,
            timestamp=block.timestamp,
            transaction_count=count,
            fee_list=fees,
            average_gas=gas_used / count if count else None,
            # A zero base fee means "not reported"
            base_fee=block.base_fee if block.base_fee else None,
        )

    async def _fetch_receipts(
        self,
        provider: ChainDataProvider,
        hashes: list[str],
    ) -> Dict[str, RawReceipt]:
        results = await asyncio.gather(
            *(provider.get_tx_receipt(h) for h in hashes),
            return_exceptions=True,
        )
        receipts = {}
        failed = 0
        for tx_hash, result in zip(hashes, results):
            if isinstance(result, BaseException):
                failed += 1
                continue
            receipts[tx_hash] = result
        if failed:
            logger.debug(
                "Some receipts could not be fetched",
                extra={"context": {"failed": failed, "requested": len(hashes)}},
            )
        return receipts

    async def normalize_block(
        self,
        block: RawBlock,
        provider: ChainDataProvider,
    ) -> Sample:
        """
        Normalize a block, fetching receipts where the mode needs them.

        Receipts are fetched when:
        - fee mode is EFFECTIVE (fee-bearing transactions only)
        - the block has transactions but reports gasUsed == 0 (EVM only)
        """
        transactions = block.transactions or []
        receipts: Dict[str, RawReceipt] = {}

        if self.fee_mode is FeeMode.EFFECTIVE:
            hashes = [
                tx.hash for tx in transactions
                if tx.hash and self._nominal_price(tx) > 0
            ]
            receipts = await self._fetch_receipts(provider, hashes)

        gas_missing = transactions and not decode_quantity(block.gas_used)
        if gas_missing and self.receipt_gas_fallback and provider.family is ChainFamily.EVM:
            missing = [tx.hash for tx in transactions if tx.hash and tx.hash not in receipts]
            receipts.update(await self._fetch_receipts(provider, missing))
            block = replace(
                block,
                gas_used=sum(decode_quantity(r.gas_used) or 0 for r in receipts.values()),
            )

        return self.normalize(block, receipts if self.fee_mode is FeeMode.EFFECTIVE else None)
