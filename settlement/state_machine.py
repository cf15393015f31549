"""
settlement/state_machine.py - Trade lifecycle state machine.

SETTLEMENT STATE CONTRACT:
==========================

States (TradeState):
  PENDING    -> requested, legs being accepted / approved
  EXECUTED   -> both legs delivered
  FORCED     -> voided by force, accepted leg returned to its holder
  CANCELLED  -> voided, escrowed legs returned

Transitions:
  PENDING -> EXECUTED   (execute_trade, or auto-execution)
  PENDING -> FORCED     (force_trade)
  PENDING -> CANCELLED  (cancel_trade)

EXECUTED, FORCED and CANCELLED are terminal.
==========================
"""

from typing import Any, Dict, List, Optional

from core.constants import TradeState
from core.exceptions import ErrorCode, StateError
from core.models import StateTransition, Trade

VALID_TRANSITIONS: Dict[TradeState, List[TradeState]] = {
    TradeState.PENDING: [TradeState.EXECUTED, TradeState.FORCED, TradeState.CANCELLED],
    TradeState.EXECUTED: [],  # Terminal state
    TradeState.FORCED: [],  # Terminal state
    TradeState.CANCELLED: [],  # Terminal state
}


class InvalidTransitionError(StateError):
    """Raised when an invalid state transition is attempted."""
    default_code = ErrorCode.INVALID_TRANSITION


def can_transition(trade: Trade, new_state: TradeState) -> bool:
    """Check if transition to new_state is valid."""
    return new_state in VALID_TRANSITIONS.get(trade.state, [])


def require_pending(trade: Trade) -> None:
    """Raise StateError unless the trade is PENDING."""
    if trade.state != TradeState.PENDING:
        raise StateError(
            f"Trade {trade.index} is {trade.state.value}, not PENDING",
            ErrorCode.TRADE_NOT_PENDING,
            {"trade_index": trade.index, "state": trade.state.value},
        )


def transition(
    trade: Trade,
    new_state: TradeState,
    timestamp: int,
    reason: str = "",
    metadata: Optional[Dict[str, Any]] = None,
) -> StateTransition:
    """
    Move a trade to new_state and record the transition.

    Raises InvalidTransitionError if the transition is not valid.
    """
    if not can_transition(trade, new_state):
        raise InvalidTransitionError(
            f"Cannot transition trade {trade.index} from {trade.state.value} to {new_state.value}. "
            f"Valid transitions: {[s.value for s in VALID_TRANSITIONS.get(trade.state, [])]}",
            details={"trade_index": trade.index},
        )

    record = StateTransition(
        from_state=trade.state,
        to_state=new_state,
        timestamp=timestamp,
        reason=reason,
        metadata=metadata or {},
    )
    trade.history.append(record)
    trade.state = new_state
    return record
