"""
settlement/codec.py - Push payload encoding.

Payloads carried in the data field of a partitioned-token transfer into
the engine. Fixed-width 32-byte words, flag first:

  Trade proposal (10 words):
    [0xcc x32 flag][recipient][executer][expiration date][settlement date]
    [counterparty token address][counterparty amount][counterparty token id]
    [counterparty standard][counterparty trade type]

  Trade acceptance (2 words):
    [0xdd x32 flag][trade index]

Addresses are right-aligned in their word (12 zero bytes, 20 address
bytes); integers are big-endian unsigned. The zero address decodes to None.
"""

from dataclasses import dataclass
from typing import Optional, Union

from core.constants import (
    ACCEPTANCE_PAYLOAD_WORDS,
    PROPOSAL_PAYLOAD_WORDS,
    TRADE_ACCEPTANCE_FLAG,
    TRADE_PROPOSAL_FLAG,
    WORD_SIZE,
    ZERO_ADDRESS,
    TokenStandard,
    TradeType,
)
from core.exceptions import ErrorCode, SettlementError, ValidationError
from core.models import Asset, make_asset

PROPOSAL_LENGTH = PROPOSAL_PAYLOAD_WORDS * WORD_SIZE
ACCEPTANCE_LENGTH = ACCEPTANCE_PAYLOAD_WORDS * WORD_SIZE


@dataclass(frozen=True)
class TradeProposal:
    """Counterparty terms proposed alongside pushed tokens."""
    recipient: Optional[str]
    executer: Optional[str]
    expiration_date: int
    settlement_date: int
    asset: Asset
    amount: int
    trade_type: TradeType


@dataclass(frozen=True)
class TradeAcceptance:
    """Pushed tokens accept an existing trade."""
    trade_index: int


Instruction = Union[TradeProposal, TradeAcceptance]


# =============================================================================
# WORDS
# =============================================================================

def encode_uint(value: int) -> bytes:
    return value.to_bytes(WORD_SIZE, "big")


def encode_address(address: Optional[str]) -> bytes:
    address = address or ZERO_ADDRESS
    return bytes(12) + bytes.fromhex(address[2:])


def decode_uint(word: bytes) -> int:
    return int.from_bytes(word, "big")


def decode_address(word: bytes) -> Optional[str]:
    if any(word[:12]):
        raise ValidationError(
            "Address word has non-zero padding",
            ErrorCode.INVALID_PAYLOAD,
            {"word": "0x" + word.hex()},
        )
    address = "0x" + word[12:].hex()
    return None if address == ZERO_ADDRESS else address


def _words(data: bytes) -> list:
    return [data[i:i + WORD_SIZE] for i in range(0, len(data), WORD_SIZE)]


# =============================================================================
# ENCODE
# =============================================================================

def encode_trade_proposal(
    recipient: Optional[str],
    executer: Optional[str],
    expiration_date: int,
    settlement_date: int,
    asset: Asset,
    amount: int,
    trade_type: TradeType,
) -> bytes:
    """Build a proposal payload for the counterparty leg."""
    return b"".join([
        TRADE_PROPOSAL_FLAG,
        encode_address(recipient),
        encode_address(executer),
        encode_uint(expiration_date),
        encode_uint(settlement_date),
        encode_address(asset.address),
        encode_uint(amount),
        asset.token_id_bytes,
        encode_uint(int(asset.standard)),
        encode_uint(int(trade_type)),
    ])


def encode_trade_acceptance(trade_index: int) -> bytes:
    """Build an acceptance payload for an existing trade."""
    return TRADE_ACCEPTANCE_FLAG + encode_uint(trade_index)


# =============================================================================
# DECODE
# =============================================================================

def decode_payload(data: bytes) -> Instruction:
    """
    Decode a push payload.

    Raises:
        ValidationError: wrong length, unknown flag, or malformed fields
    """
    data = bytes(data or b"")
    if len(data) == PROPOSAL_LENGTH and data[:WORD_SIZE] == TRADE_PROPOSAL_FLAG:
        return _decode_proposal(data)
    if len(data) == ACCEPTANCE_LENGTH and data[:WORD_SIZE] == TRADE_ACCEPTANCE_FLAG:
        return TradeAcceptance(trade_index=decode_uint(data[WORD_SIZE:]))
    raise ValidationError(
        f"Unrecognised payload ({len(data)} bytes)",
        ErrorCode.INVALID_PAYLOAD,
        {"length": len(data)},
    )


def is_valid_payload(data: bytes) -> bool:
    try:
        decode_payload(data)
    except SettlementError:
        return False
    return True


def _decode_proposal(data: bytes) -> TradeProposal:
    (
        _flag,
        recipient,
        executer,
        expiration,
        settlement,
        token_address,
        amount,
        token_id,
        standard,
        trade_type,
    ) = _words(data)

    standard_value = decode_uint(standard)
    if standard_value not in TokenStandard._value2member_map_:
        raise ValidationError(
            f"Unknown token standard {standard_value}",
            ErrorCode.UNSUPPORTED_STANDARD,
        )
    type_value = decode_uint(trade_type)
    if type_value not in TradeType._value2member_map_:
        raise ValidationError(
            f"Unknown trade type {type_value}",
            ErrorCode.UNSUPPORTED_TRADE_TYPE,
        )

    return TradeProposal(
        recipient=decode_address(recipient),
        executer=decode_address(executer),
        expiration_date=decode_uint(expiration),
        settlement_date=decode_uint(settlement),
        asset=make_asset(standard_value, decode_address(token_address), token_id),
        amount=decode_uint(amount),
        trade_type=TradeType(type_value),
    )
