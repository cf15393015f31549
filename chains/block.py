"""
chains/block.py - Ledger clock.

Provides:
- Current block number and timestamp
- Manual time travel for tests and scenario replay
- Monotonic time (the clock never moves backwards)
"""

from dataclasses import dataclass

from core.logging import get_logger
from core.time import now_timestamp, to_iso

logger = get_logger(__name__)


@dataclass
class BlockState:
    """Current block of the ledger."""
    block_number: int
    timestamp: int

    def to_dict(self) -> dict:
        return {
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "time": to_iso(self.timestamp),
        }


class LedgerClock:
    """
    Block clock for the in-memory ledger.

    Every state-changing call is mined into its own block; time only moves
    when advanced explicitly.
    """

    def __init__(self, timestamp: int | None = None, block_number: int = 0):
        if timestamp is None:
            timestamp = int(now_timestamp())
        self._block = BlockState(block_number=block_number, timestamp=timestamp)

    @property
    def now(self) -> int:
        return self._block.timestamp

    @property
    def block_number(self) -> int:
        return self._block.block_number

    def current(self) -> BlockState:
        return BlockState(self._block.block_number, self._block.timestamp)

    def mine(self) -> BlockState:
        """Open a new block at the current timestamp."""
        self._block.block_number += 1
        return self.current()

    def advance(self, seconds: int) -> BlockState:
        """Move time forward by seconds and mine a block."""
        if seconds < 0:
            raise ValueError(f"Cannot move clock backwards by {seconds}s")
        self._block.timestamp += seconds
        self._block.block_number += 1
        logger.debug(
            f"Clock advanced {seconds}s",
            extra={"context": self._block.to_dict()},
        )
        return self.current()

    def set_time(self, timestamp: int) -> BlockState:
        """Jump to an absolute timestamp (not earlier than now)."""
        return self.advance(timestamp - self._block.timestamp)
