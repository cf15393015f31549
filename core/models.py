"""
core/models.py - Core data models for the settlement engine.

ASSET DESCRIPTOR CONTRACT
=========================
Each trade leg carries exactly one asset descriptor:

  OffchainAsset                         no token, acceptance only
  NativeAsset                           ledger native currency
  FungibleAsset(address)                balance/allowance token
  NonFungibleAsset(address, token_id)   single-owner token id
  PartitionedAsset(address, partition)  fungible within a 32-byte partition

Raw wire data is decoded into these once (settlement/codec.py); nothing
downstream re-parses bytes. `token_id_bytes` is the 32-byte identifier
used as the partition key in the price table.

HOLDER CONTRACT
===============
holder2 is None for an open offer; the first party other than holder1
to accept becomes holder2. executer is None when no executer is set.
=========================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from core.constants import (
    ALL_PARTITIONS,
    TERMINAL_STATES,
    EventType,
    TokenStandard,
    TradeState,
    TradeType,
)
from core.exceptions import ErrorCode, ValidationError

SIDE_1 = 1
SIDE_2 = 2
SIDES = (SIDE_1, SIDE_2)


# =============================================================================
# ASSET DESCRIPTORS
# =============================================================================

@dataclass(frozen=True)
class OffchainAsset:
    """Leg settled outside the ledger (e.g., a bank payment)."""
    standard = TokenStandard.OFFCHAIN

    @property
    def address(self) -> Optional[str]:
        return None

    @property
    def token_id_bytes(self) -> bytes:
        return ALL_PARTITIONS

    def to_dict(self) -> Dict[str, Any]:
        return {"standard": self.standard.name}


@dataclass(frozen=True)
class NativeAsset:
    """Ledger native currency."""
    standard = TokenStandard.NATIVE

    @property
    def address(self) -> Optional[str]:
        return None

    @property
    def token_id_bytes(self) -> bytes:
        return ALL_PARTITIONS

    def to_dict(self) -> Dict[str, Any]:
        return {"standard": self.standard.name}


@dataclass(frozen=True)
class FungibleAsset:
    address: str
    standard = TokenStandard.FUNGIBLE

    @property
    def token_id_bytes(self) -> bytes:
        return ALL_PARTITIONS

    def to_dict(self) -> Dict[str, Any]:
        return {"standard": self.standard.name, "address": self.address}


@dataclass(frozen=True)
class NonFungibleAsset:
    address: str
    token_id: int
    standard = TokenStandard.NON_FUNGIBLE

    @property
    def token_id_bytes(self) -> bytes:
        return self.token_id.to_bytes(32, "big")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "standard": self.standard.name,
            "address": self.address,
            "token_id": self.token_id,
        }


@dataclass(frozen=True)
class PartitionedAsset:
    address: str
    partition: bytes
    standard = TokenStandard.PARTITIONED

    @property
    def token_id_bytes(self) -> bytes:
        return self.partition

    def to_dict(self) -> Dict[str, Any]:
        return {
            "standard": self.standard.name,
            "address": self.address,
            "partition": "0x" + self.partition.hex(),
        }


Asset = Union[OffchainAsset, NativeAsset, FungibleAsset, NonFungibleAsset, PartitionedAsset]


def make_asset(
    standard: Union[TokenStandard, int, str],
    address: Optional[str] = None,
    token_id: Union[bytes, int, None] = None,
) -> Asset:
    """
    Build an asset descriptor from loose fields.

    Args:
        standard: TokenStandard, its wire value, or its name
        address: token contract (None for OFFCHAIN / NATIVE)
        token_id: NFT id (int or 32 bytes) or partition (32 bytes)

    Raises:
        ValidationError: on an unknown standard or a missing/extra address
    """
    try:
        if isinstance(standard, str):
            standard = TokenStandard[standard.upper()]
        else:
            standard = TokenStandard(standard)
    except (KeyError, ValueError):
        raise ValidationError(
            f"Unknown token standard: {standard!r}",
            ErrorCode.UNSUPPORTED_STANDARD,
        ) from None

    if standard in (TokenStandard.OFFCHAIN, TokenStandard.NATIVE):
        if address is not None:
            raise ValidationError(
                f"{standard.name} leg cannot carry a token address",
                ErrorCode.INVALID_ASSET,
                {"address": address},
            )
        return OffchainAsset() if standard == TokenStandard.OFFCHAIN else NativeAsset()

    if address is None:
        raise ValidationError(
            f"{standard.name} leg requires a token address",
            ErrorCode.INVALID_ASSET,
        )

    if standard == TokenStandard.FUNGIBLE:
        return FungibleAsset(address)
    if standard == TokenStandard.NON_FUNGIBLE:
        if isinstance(token_id, (bytes, bytearray)):
            token_id = int.from_bytes(token_id, "big")
        return NonFungibleAsset(address, int(token_id or 0))
    if token_id is None:
        token_id = ALL_PARTITIONS
    if not isinstance(token_id, (bytes, bytearray)) or len(token_id) != 32:
        raise ValidationError(
            "Partition must be 32 bytes",
            ErrorCode.INVALID_ASSET,
        )
    return PartitionedAsset(address, bytes(token_id))


# =============================================================================
# TRADE
# =============================================================================

@dataclass
class TradeLeg:
    """One side of a trade."""
    asset: Asset
    amount: int
    trade_type: TradeType = TradeType.ESCROW
    accepted: bool = False
    approved: bool = False
    # controller address -> last vote
    votes: Dict[str, bool] = field(default_factory=dict)

    @property
    def standard(self) -> TokenStandard:
        return self.asset.standard

    @property
    def token(self) -> Optional[str]:
        return self.asset.address

    @property
    def is_offchain(self) -> bool:
        return self.asset.standard == TokenStandard.OFFCHAIN

    @property
    def is_escrow(self) -> bool:
        return self.trade_type == TradeType.ESCROW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset": self.asset.to_dict(),
            "amount": self.amount,
            "trade_type": self.trade_type.name,
            "accepted": self.accepted,
            "approved": self.approved,
            "votes": dict(self.votes),
        }


@dataclass
class StateTransition:
    """Record of a trade state transition."""
    from_state: TradeState
    to_state: TradeState
    timestamp: int
    reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "timestamp": self.timestamp,
            "reason": self.reason,
            "metadata": self.metadata,
        }


@dataclass
class Trade:
    """A negotiated exchange between holder1 and holder2."""
    index: int
    holder1: str
    holder2: Optional[str]
    executer: Optional[str]
    expiration_date: int
    settlement_date: int
    leg1: TradeLeg
    leg2: TradeLeg
    state: TradeState = TradeState.PENDING
    created_at: int = 0
    preimage: bytes = bytes(32)
    history: List[StateTransition] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        """holder2 not yet bound (marketplace offer)."""
        return self.holder2 is None

    @property
    def is_pending(self) -> bool:
        return self.state == TradeState.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def both_accepted(self) -> bool:
        return self.leg1.accepted and self.leg2.accepted

    @property
    def both_approved(self) -> bool:
        return self.leg1.approved and self.leg2.approved

    def leg(self, side: int) -> TradeLeg:
        return self.leg1 if side == SIDE_1 else self.leg2

    def holder(self, side: int) -> Optional[str]:
        return self.holder1 if side == SIDE_1 else self.holder2

    def counterparty(self, side: int) -> Optional[str]:
        return self.holder2 if side == SIDE_1 else self.holder1

    def is_holder(self, address: str) -> bool:
        return address in (self.holder1, self.holder2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "holder1": self.holder1,
            "holder2": self.holder2,
            "executer": self.executer,
            "expiration_date": self.expiration_date,
            "settlement_date": self.settlement_date,
            "state": self.state.value,
            "created_at": self.created_at,
            "preimage": "0x" + self.preimage.hex(),
            "leg1": self.leg1.to_dict(),
            "leg2": self.leg2.to_dict(),
            "history": [t.to_dict() for t in self.history],
        }


@dataclass
class TradeRequest:
    """Terms of a new trade, as submitted to request_trade."""
    holder1: str
    holder2: Optional[str]
    asset1: Asset
    amount1: int
    asset2: Asset
    amount2: int
    trade_type1: TradeType = TradeType.ESCROW
    trade_type2: TradeType = TradeType.ESCROW
    executer: Optional[str] = None
    expiration_date: int = 0
    settlement_date: int = 0


@dataclass
class TradeEvent:
    """Entry in the engine event log."""
    event: EventType
    timestamp: int
    trade_index: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.value,
            "timestamp": self.timestamp,
            "trade_index": self.trade_index,
            "data": self.data,
        }
