"""
core/constants.py - Constants for the DvP settlement engine.

Contains enums, wire flags, sentinels and timing defaults.
"""

from enum import Enum, IntEnum
from typing import Final

# =============================================================================
# SENTINELS
# =============================================================================

ZERO_ADDRESS: Final = "0x" + "00" * 20
ZERO_BYTES32: Final = bytes(32)

# Price table wildcard for "any partition"
ALL_PARTITIONS: Final = bytes(32)

# =============================================================================
# PUSH PAYLOAD FLAGS
# =============================================================================

TRADE_PROPOSAL_FLAG: Final = bytes([0xCC]) * 32
TRADE_ACCEPTANCE_FLAG: Final = bytes([0xDD]) * 32

WORD_SIZE = 32
PROPOSAL_PAYLOAD_WORDS = 10
ACCEPTANCE_PAYLOAD_WORDS = 2

# =============================================================================
# TIMING DEFAULTS
# =============================================================================

SECONDS_PER_DAY = 24 * 60 * 60
DEFAULT_EXPIRATION_DAYS = 30
VARIABLE_PRICE_MIN_DELAY_DAYS = 7

# =============================================================================
# ENUMS
# =============================================================================


class TokenStandard(IntEnum):
    """Asset standard of one trade leg (wire values are fixed)."""
    OFFCHAIN = 0
    NATIVE = 1
    FUNGIBLE = 2
    NON_FUNGIBLE = 3
    PARTITIONED = 4


class TradeType(IntEnum):
    """Settlement mode of one trade leg."""
    SWAP = 0
    HOLD = 1  # recognised on the wire, not supported
    ESCROW = 2


class TradeState(str, Enum):
    """Trade lifecycle states."""
    PENDING = "PENDING"
    EXECUTED = "EXECUTED"
    FORCED = "FORCED"
    CANCELLED = "CANCELLED"


TERMINAL_STATES: Final = frozenset(
    {TradeState.EXECUTED, TradeState.FORCED, TradeState.CANCELLED}
)


class EventType(str, Enum):
    """Events appended to the engine event log."""
    REQUESTED = "REQUESTED"
    ACCEPTED = "ACCEPTED"
    APPROVED = "APPROVED"
    DISAPPROVED = "DISAPPROVED"
    EXECUTED = "EXECUTED"
    FORCED = "FORCED"
    CANCELLED = "CANCELLED"
    EXECUTERS_SET = "EXECUTERS_SET"
    CONTROLLERS_SET = "CONTROLLERS_SET"
    ORACLES_SET = "ORACLES_SET"
    PRICE_OWNERSHIP_SET = "PRICE_OWNERSHIP_SET"
    PRICE_SET = "PRICE_SET"
    PRICE_START_DATE_SET = "PRICE_START_DATE_SET"
    OWNERSHIP_RENOUNCED = "OWNERSHIP_RENOUNCED"
