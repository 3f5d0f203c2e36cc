# PATH: tests/conftest.py
"""
Pytest configuration and fixtures for gas oracle tests.
"""

import sys
from pathlib import Path
from typing import Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.constants import ChainFamily
from core.exceptions import RPCError
from core.models import RawBlock, RawReceipt, RawTransaction


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


def make_block(
    number: int,
    fees: Optional[list] = None,
    timestamp: Optional[int] = None,
    gas_used: int = 21000,
    base_fee: Optional[float] = None,
) -> RawBlock:
    """RawBlock with one transaction per fee (wei). fees=[] is an empty block."""
    fees = [1_000_000_000] if fees is None else fees
    return RawBlock(
        number=number,
        timestamp=1_700_000_000 + number * 12 if timestamp is None else timestamp,
        gas_used=gas_used,
        transactions=[
            RawTransaction(hash=f"0x{number:04x}{i:04x}", gas_price=fee)
            for i, fee in enumerate(fees)
        ],
        base_fee=base_fee,
    )


class FakeProvider:
    """
    In-memory ChainDataProvider.

    blocks maps block number -> RawBlock (or an Exception to raise).
    height is what get_height() and get_block("latest") report.
    """

    family = ChainFamily.EVM

    def __init__(
        self,
        name: str = "fake",
        height: int = 100,
        blocks: Optional[dict] = None,
        base_fee: Optional[float] = 0.0,
        receipts: Optional[dict] = None,
        fail_height: bool = False,
    ):
        self.name = name
        self.height = height
        self.blocks = blocks if blocks is not None else {}
        self.base_fee = base_fee
        self.receipts = receipts or {}
        self.fail_height = fail_height
        self.block_requests: list = []
        self.closed = False

    @property
    def provider_id(self) -> str:
        return self.name

    async def get_height(self) -> int:
        if self.fail_height:
            raise RPCError(f"{self.name} is down")
        return self.height

    async def get_block(self, block="latest") -> Optional[RawBlock]:
        self.block_requests.append(block)
        number = self.height if block == "latest" else int(block)
        result = self.blocks.get(number)
        if isinstance(result, Exception):
            raise result
        return result

    async def get_base_fee(self, block="latest") -> Optional[float]:
        if isinstance(self.base_fee, Exception):
            raise self.base_fee
        return self.base_fee

    async def get_tx_receipt(self, tx_hash: str) -> RawReceipt:
        if tx_hash not in self.receipts:
            raise RPCError(f"no receipt for {tx_hash}")
        return self.receipts[tx_hash]

    async def close(self) -> None:
        self.closed = True

    def get_stats_summary(self) -> dict:
        return {self.name: {"block_requests": len(self.block_requests)}}


@pytest.fixture
def fake_provider():
    return FakeProvider()
