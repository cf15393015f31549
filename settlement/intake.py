"""
settlement/intake.py - Push-notification intake.

A partitioned token calls the engine's tokens_received hook synchronously
while transferring tokens to it. The payload in the transfer's data field
is decoded here into a TradeProposal or TradeAcceptance value object and
handed to the engine as a plain call; the engine never parses bytes.

Rules:
- the hook caller must be a registered partitioned-token contract
- the transfer must be addressed to the engine
- operator data must be non-empty
- transfers the engine makes to itself (escrow pulls) are not instructions
"""

from typing import TYPE_CHECKING, Any

from core.exceptions import AuthorizationError, ErrorCode, ValidationError
from core.logging import get_logger
from settlement.codec import Instruction, TradeAcceptance, decode_payload, is_valid_payload

if TYPE_CHECKING:
    from settlement.engine import SettlementEngine

logger = get_logger(__name__)


def is_partitioned_token(contract: Any) -> bool:
    return contract is not None and all(
        hasattr(contract, name)
        for name in ("balance_of_by_partition", "operator_transfer_by_partition", "transfer_by_partition")
    )


def can_receive(
    engine: "SettlementEngine",
    partition: bytes,
    operator: str,
    holder: str,
    to: str,
    value: int,
    data: bytes,
    operator_data: bytes,
) -> bool:
    """Whether a transfer with this payload would be accepted by the hook."""
    if operator == engine.address:
        return True
    if not operator_data:
        return False
    return is_valid_payload(data)


def parse_instruction(
    engine: "SettlementEngine",
    token: str,
    to: str,
    data: bytes,
    operator_data: bytes,
) -> Instruction:
    """
    Validate a hook call and decode its payload.

    Raises:
        AuthorizationError: hook not called by a partitioned token
        ValidationError: wrong recipient, missing operator data, bad payload
    """
    if not is_partitioned_token(engine.ledger.get_contract(token)):
        raise AuthorizationError(
            f"Hook called by {token}, which is not a partitioned token",
            ErrorCode.UNKNOWN_TOKEN_CALLER,
            {"caller": token},
        )
    if to != engine.address:
        raise ValidationError(
            f"Transfer recipient {to} is not the engine",
            ErrorCode.INVALID_RECIPIENT,
            {"to": to},
        )
    if not operator_data:
        raise ValidationError(
            "Operator data is empty",
            ErrorCode.INVALID_PAYLOAD,
        )
    instruction = decode_payload(data)
    logger.debug(
        f"Decoded {type(instruction).__name__}",
        extra={"context": {
            "token": token,
            "trade_index": instruction.trade_index if isinstance(instruction, TradeAcceptance) else None,
        }},
    )
    return instruction
