# PATH: core/models.py
"""
Core data models for the gas oracle.

RAW MODELS (provider output, chain-specific values left undecoded):
  RawTransaction, RawReceipt, RawBlock

NORMALIZED MODELS:
  Sample   - one block's fee observation
  Snapshot - column-oriented projection of a window of Samples

SNAPSHOT CONTRACT
================================================
All column arrays have the same length and are ordered by ascending
timestamp. Only Samples with transaction_count > 0 appear in columns.
last_block / last_time describe the highest block in the window, which
may itself be an empty block that has no column entry.
================================================
"""

from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

BlockId = Union[int, str]


def block_id_to_int(value: BlockId) -> int:
    """Block numbers arrive as ints or numeric strings."""
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


# ============================================================================
# RAW PROVIDER MODELS
# ============================================================================

@dataclass
class RawTransaction:
    """A transaction as returned by a provider (fee fields undecoded)."""
    hash: Optional[str] = None
    gas_price: Any = None


@dataclass
class RawReceipt:
    """Receipt fields needed for the effective-price fee mode."""
    effective_gas_price: Any = None
    gas_used: Any = None


@dataclass
class RawBlock:
    """
    A block as returned by a provider.

    transactions is None when the provider answered without a block body
    (unknown block, pruned node); an empty list is a real empty block.
    """
    number: int
    timestamp: int
    gas_used: Any = 0
    transactions: Optional[List[RawTransaction]] = None
    base_fee: Optional[float] = None

    @property
    def has_transactions(self) -> bool:
        return bool(self.transactions)


# ============================================================================
# NORMALIZED MODELS
# ============================================================================

@dataclass
class Sample:
    """
    One block's fee observation.

    fee_list is sorted ascending and has exactly transaction_count entries.
    average_gas is None when transaction_count == 0.
    """
    block_number: int
    timestamp: int
    transaction_count: int = 0
    fee_list: List[float] = field(default_factory=list)
    average_gas: Optional[float] = None
    base_fee: Optional[float] = None
    # True when the sample was restored from a prior snapshot
    cached: bool = False

    def __post_init__(self) -> None:
        if len(self.fee_list) != self.transaction_count:
            raise ValueError(
                f"fee_list has {len(self.fee_list)} entries for "
                f"{self.transaction_count} transactions (block {self.block_number})"
            )

    @property
    def is_empty(self) -> bool:
        return self.transaction_count == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "transaction_count": self.transaction_count,
            "fee_list": list(self.fee_list),
            "average_gas": self.average_gas,
            "base_fee": self.base_fee,
            "cached": self.cached,
        }


@dataclass
class Snapshot:
    """Column-oriented projection of a Sample Window."""
    number: List[int] = field(default_factory=list)
    ntx: List[int] = field(default_factory=list)
    timestamp: List[int] = field(default_factory=list)
    fees: List[List[float]] = field(default_factory=list)
    avg_gas: List[Optional[float]] = field(default_factory=list)
    # None when no retained sample carries a base fee
    base_fee: Optional[List[Optional[float]]] = None
    last_block: Optional[int] = None
    last_time: Optional[int] = None
    provider_id: Optional[str] = None

    def columns(self) -> Dict[str, list]:
        """Column arrays by attribute name (number may be absent in old files)."""
        cols = {
            "ntx": self.ntx,
            "timestamp": self.timestamp,
            "fees": self.fees,
            "avg_gas": self.avg_gas,
        }
        if self.number:
            cols["number"] = self.number
        if self.base_fee is not None:
            cols["base_fee"] = self.base_fee
        return cols

    def __len__(self) -> int:
        return len(self.ntx)

    def is_consistent(self) -> bool:
        """All column arrays share one length and last_block is known."""
        if self.last_block is None:
            return False
        lengths = {len(col) for col in self.columns().values()}
        return len(lengths) == 1

    def _index_of(self, block_number: int) -> Optional[int]:
        """Column index holding block_number, or None."""
        size = len(self.ntx)
        if self.number:
            # Columns skip empty and resynced-over blocks, so search by number
            try:
                index = bisect_left(self.number, block_number)
            except TypeError:
                return None
            if index < size and self.number[index] == block_number:
                return index
            return None

        # Older documents without a number column: positional formula
        if block_number <= self.last_block - size or block_number > self.last_block:
            return None
        index = size - (self.last_block - block_number) - 1
        if index < 0 or index >= size:
            return None
        return index

    def sample_at(self, block_number: int) -> Optional[Sample]:
        """
        Look up a cached Sample by block number.

        Searches the number column when present, else falls back to the
        positional index len - (last_block - n) - 1. Any inconsistency
        (ragged columns, out of range, empty cached block, malformed
        entry) is a miss.
        """
        if not self.is_consistent():
            return None

        index = self._index_of(block_number)
        if index is None:
            return None

        try:
            ntx = int(self.ntx[index])
            fees = sorted(float(f) for f in self.fees[index])
            if ntx <= 0 or len(fees) != ntx:
                return None
            avg_gas = self.avg_gas[index]
            base_fee = self.base_fee[index] if self.base_fee is not None else None
            return Sample(
                block_number=block_number,
                timestamp=int(self.timestamp[index]),
                transaction_count=ntx,
                fee_list=fees,
                average_gas=float(avg_gas) if avg_gas is not None else None,
                base_fee=float(base_fee) if base_fee is not None else None,
                cached=True,
            )
        except (TypeError, ValueError):
            return None
