"""
core - Core utilities and models for the DvP settlement engine.

This package contains:
- models.py: Asset descriptors, TradeLeg, Trade, TradeRequest, TradeEvent
- constants.py: Enums, wire flags and sentinels
- exceptions.py: Typed exceptions with error codes
- math.py: Integer amount math (round half up division)
- time.py: Ledger-time helpers
- validators.py: Address / bytes32 / amount validation
- logging.py: Structured JSON logging
"""

from core.constants import (
    ALL_PARTITIONS,
    ZERO_ADDRESS,
    EventType,
    TokenStandard,
    TradeState,
    TradeType,
)
from core.exceptions import (
    AmbiguityError,
    AuthorizationError,
    ErrorCode,
    FundsError,
    SettlementError,
    StateError,
    TimingError,
    ValidationError,
)
from core.logging import get_logger, setup_logging
from core.models import (
    FungibleAsset,
    NativeAsset,
    NonFungibleAsset,
    OffchainAsset,
    PartitionedAsset,
    Trade,
    TradeEvent,
    TradeLeg,
    TradeRequest,
    make_asset,
)

__all__ = [
    # Constants
    "ALL_PARTITIONS",
    "ZERO_ADDRESS",
    "EventType",
    "TokenStandard",
    "TradeState",
    "TradeType",
    # Exceptions
    "AmbiguityError",
    "AuthorizationError",
    "ErrorCode",
    "FundsError",
    "SettlementError",
    "StateError",
    "TimingError",
    "ValidationError",
    # Models
    "FungibleAsset",
    "NativeAsset",
    "NonFungibleAsset",
    "OffchainAsset",
    "PartitionedAsset",
    "Trade",
    "TradeEvent",
    "TradeLeg",
    "TradeRequest",
    "make_asset",
    # Logging
    "get_logger",
    "setup_logging",
]
