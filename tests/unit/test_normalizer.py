"""
tests/unit/test_normalizer.py - Tests for sampler/normalizer.py

Critical tests for:
- Zero / negative / malformed fees are excluded, never fatal
- averageGas only with fee-bearing transactions
- Effective fee mode (receipt effectiveGasPrice * gasUsed)
- gasUsed == 0 receipt fallback
"""

import pytest

from conftest import FakeProvider, make_block
from core.constants import ChainFamily, FeeMode
from core.models import RawBlock, RawReceipt, RawTransaction
from sampler.normalizer import FeeNormalizer


class TestTransactionFee:
    def test_nominal_fee_in_gwei(self):
        normalizer = FeeNormalizer()
        tx = RawTransaction(hash="0x1", gas_price="0x3b9aca00")  # 1 gwei

        assert normalizer.transaction_fee(tx) == pytest.approx(1.0)

    def test_zero_and_missing_fee(self):
        normalizer = FeeNormalizer()

        assert normalizer.transaction_fee(RawTransaction(gas_price=0)) == 0.0
        assert normalizer.transaction_fee(RawTransaction(gas_price=None)) == 0.0

    def test_malformed_fee_is_zero(self):
        normalizer = FeeNormalizer()

        assert normalizer.transaction_fee(RawTransaction(gas_price="0xZZ")) == 0.0
        assert normalizer.transaction_fee(RawTransaction(gas_price="abc")) == 0.0
        assert normalizer.transaction_fee(RawTransaction(gas_price={"x": 1})) == 0.0

    def test_object_without_fee_fields(self):
        """Anything that is not a transaction decodes to zero fee."""
        normalizer = FeeNormalizer()

        assert normalizer.transaction_fee(object()) == 0.0

    def test_effective_mode_needs_receipt(self):
        normalizer = FeeNormalizer(fee_mode=FeeMode.EFFECTIVE, fee_decimals=18)
        tx = RawTransaction(hash="0x1", gas_price=100_000_000)

        assert normalizer.transaction_fee(tx) == 0.0

    def test_effective_mode_uses_receipt(self):
        normalizer = FeeNormalizer(fee_mode=FeeMode.EFFECTIVE, fee_decimals=18)
        tx = RawTransaction(hash="0x1", gas_price=100_000_000)
        receipt = RawReceipt(effective_gas_price=10**10, gas_used=100_000)

        # 1e10 * 1e5 wei = 1e-3 ether
        assert normalizer.transaction_fee(tx, receipt) == pytest.approx(0.001)


class TestNormalize:
    def test_excludes_zero_and_negative_fees(self):
        """[{fee:0},{fee:5},{fee:-1}] -> feeList == [5], transactionCount == 1."""
        normalizer = FeeNormalizer(fee_decimals=0)
        block = make_block(10, fees=[0, 5, -1])

        sample = normalizer.normalize(block)

        assert sample.fee_list == [5]
        assert sample.transaction_count == 1

    def test_average_gas(self):
        """gasUsed=1000000 with 2 fee-bearing txs -> averageGas = 500000."""
        normalizer = FeeNormalizer(fee_decimals=0)
        block = make_block(10, fees=[3, 7, 0], gas_used=1_000_000)

        sample = normalizer.normalize(block)

        assert sample.transaction_count == 2
        assert sample.average_gas == 500_000

    def test_average_gas_absent_without_fees(self):
        normalizer = FeeNormalizer()
        block = make_block(10, fees=[0, 0], gas_used=42_000)

        sample = normalizer.normalize(block)

        assert sample.transaction_count == 0
        assert sample.fee_list == []
        assert sample.average_gas is None

    def test_fees_sorted_ascending(self):
        normalizer = FeeNormalizer(fee_decimals=0)
        block = make_block(10, fees=[9, 1, 5, 3])

        sample = normalizer.normalize(block)

        assert sample.fee_list == [1, 3, 5, 9]

    def test_malformed_transaction_does_not_abort_block(self):
        normalizer = FeeNormalizer(fee_decimals=0)
        block = RawBlock(
            number=10,
            timestamp=1_700_000_000,
            gas_used="0x5208",
            transactions=[
                RawTransaction(hash="0x1", gas_price="garbage"),
                RawTransaction(hash="0x2", gas_price="0x2"),
                None,
            ],
        )

        sample = normalizer.normalize(block)

        assert sample.fee_list == [2]
        assert sample.average_gas == 21000

    def test_block_without_body(self):
        normalizer = FeeNormalizer()
        block = RawBlock(number=10, timestamp=1_700_000_000, transactions=None)

        sample = normalizer.normalize(block)

        assert sample.is_empty

    def test_base_fee_carried(self):
        normalizer = FeeNormalizer()

        assert normalizer.normalize(make_block(1, base_fee=12.5)).base_fee == 12.5
        assert normalizer.normalize(make_block(1, base_fee=0.0)).base_fee is None

    def test_cosmos_amounts_kept_in_smallest_unit(self):
        normalizer = FeeNormalizer(fee_decimals=0)
        block = make_block(10, fees=["5000", "2500"])

        sample = normalizer.normalize(block)

        assert sample.fee_list == [2500.0, 5000.0]


class TestNormalizeBlock:
    @pytest.mark.asyncio
    async def test_nominal_mode_fetches_no_receipts(self):
        normalizer = FeeNormalizer()
        provider = FakeProvider()
        provider.get_tx_receipt = None  # would fail if called

        sample = await normalizer.normalize_block(make_block(5, fees=[2_000_000_000]), provider)

        assert sample.fee_list == [pytest.approx(2.0)]

    @pytest.mark.asyncio
    async def test_effective_mode(self):
        block = make_block(5, fees=[100, 100, 0])
        tx_a, tx_b, _ = [tx.hash for tx in block.transactions]
        provider = FakeProvider(receipts={
            tx_a: RawReceipt(effective_gas_price=10**9, gas_used=21000),
            tx_b: RawReceipt(effective_gas_price=2 * 10**9, gas_used=50000),
        })
        normalizer = FeeNormalizer(fee_mode=FeeMode.EFFECTIVE, fee_decimals=18)

        sample = await normalizer.normalize_block(block, provider)

        assert sample.transaction_count == 2
        assert sample.fee_list == [pytest.approx(21000e-9), pytest.approx(100000e-9)]

    @pytest.mark.asyncio
    async def test_effective_mode_missing_receipt_excluded(self):
        block = make_block(5, fees=[100, 100])
        tx_a = block.transactions[0].hash
        provider = FakeProvider(receipts={
            tx_a: RawReceipt(effective_gas_price=10**9, gas_used=21000),
        })
        normalizer = FeeNormalizer(fee_mode=FeeMode.EFFECTIVE, fee_decimals=18)

        sample = await normalizer.normalize_block(block, provider)

        assert sample.transaction_count == 1

    @pytest.mark.asyncio
    async def test_zero_gas_used_recomputed_from_receipts(self):
        block = make_block(5, fees=[10**9, 10**9], gas_used=0)
        tx_a, tx_b = [tx.hash for tx in block.transactions]
        provider = FakeProvider(receipts={
            tx_a: RawReceipt(effective_gas_price=10**9, gas_used="0x5208"),
            tx_b: RawReceipt(effective_gas_price=10**9, gas_used=40000),
        })
        normalizer = FeeNormalizer()

        sample = await normalizer.normalize_block(block, provider)

        assert sample.average_gas == (21000 + 40000) / 2
        # Nominal fees are unchanged by the receipts
        assert sample.fee_list == [pytest.approx(1.0), pytest.approx(1.0)]

    @pytest.mark.asyncio
    async def test_zero_gas_fallback_disabled(self):
        block = make_block(5, fees=[10**9], gas_used=0)
        provider = FakeProvider(receipts={
            block.transactions[0].hash: RawReceipt(gas_used=21000),
        })
        normalizer = FeeNormalizer(receipt_gas_fallback=False)

        sample = await normalizer.normalize_block(block, provider)

        assert sample.average_gas == 0

    @pytest.mark.asyncio
    async def test_zero_gas_fallback_skipped_for_cosmos(self):
        block = make_block(5, fees=[5000], gas_used=0)
        provider = FakeProvider()
        provider.family = ChainFamily.COSMOS
        normalizer = FeeNormalizer(fee_decimals=0)

        sample = await normalizer.normalize_block(block, provider)

        assert sample.fee_list == [5000.0]
        assert sample.average_gas == 0
