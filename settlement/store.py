"""
settlement/store.py - Trade record store.

Append-only, 1-based. Records are never removed; only their state and
leg flags change.
"""

from typing import Iterator, List, Optional

from core.exceptions import ErrorCode, StateError
from core.models import Trade


class TradeStore:
    """Indexed collection of trades."""

    def __init__(self):
        self._trades: List[Trade] = []

    def __len__(self) -> int:
        return len(self._trades)

    def __iter__(self) -> Iterator[Trade]:
        return iter(self._trades)

    @property
    def count(self) -> int:
        return len(self._trades)

    def next_index(self) -> int:
        return len(self._trades) + 1

    def add(self, trade: Trade) -> Trade:
        if trade.index != self.next_index():
            raise StateError(
                f"Trade index {trade.index} out of order (expected {self.next_index()})",
                ErrorCode.INVALID_TRANSITION,
            )
        self._trades.append(trade)
        return trade

    def find(self, index: int) -> Optional[Trade]:
        if 1 <= index <= len(self._trades):
            return self._trades[index - 1]
        return None

    def get(self, index: int) -> Trade:
        trade = self.find(index)
        if trade is None:
            raise StateError(
                f"Trade {index} does not exist",
                ErrorCode.TRADE_NOT_FOUND,
                {"trade_index": index},
            )
        return trade

    def by_holder(self, address: str) -> List[Trade]:
        return [t for t in self._trades if t.is_holder(address)]
