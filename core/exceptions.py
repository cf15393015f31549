"""
core/exceptions.py - Typed exceptions for the settlement engine.

Every failure carries an ErrorCode so callers (and logs) can tell the
cause apart without parsing messages. The class says which kind of
precondition was violated; the code says which one.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Canonical error codes."""
    # Authorization
    NOT_A_HOLDER = "NOT_A_HOLDER"
    NOT_EXECUTER = "NOT_EXECUTER"
    NOT_OWNER = "NOT_OWNER"
    NOT_CONTROLLER = "NOT_CONTROLLER"
    NOT_ORACLE = "NOT_ORACLE"
    NOT_TOKEN_OWNER_OR_MEMBER = "NOT_TOKEN_OWNER_OR_MEMBER"
    NO_STANDING = "NO_STANDING"
    UNKNOWN_TOKEN_CALLER = "UNKNOWN_TOKEN_CALLER"
    UNAUTHORIZED_OPERATOR = "UNAUTHORIZED_OPERATOR"

    # State
    TRADE_NOT_FOUND = "TRADE_NOT_FOUND"
    TRADE_NOT_PENDING = "TRADE_NOT_PENDING"
    ALREADY_ACCEPTED = "ALREADY_ACCEPTED"
    NOT_FULLY_ACCEPTED = "NOT_FULLY_ACCEPTED"
    NOT_APPROVED = "NOT_APPROVED"
    BOTH_SIDES_ACCEPTED = "BOTH_SIDES_ACCEPTED"
    FORCE_BLOCKED_BY_CONTROLLERS = "FORCE_BLOCKED_BY_CONTROLLERS"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOT_OWNED = "NOT_OWNED"

    # Funds
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INSUFFICIENT_ALLOWANCE = "INSUFFICIENT_ALLOWANCE"
    VALUE_MISMATCH = "VALUE_MISMATCH"
    TRANSFER_REJECTED = "TRANSFER_REJECTED"
    PRICE_ABOVE_NOMINAL = "PRICE_ABOVE_NOMINAL"
    NOT_TOKEN_OWNER = "NOT_TOKEN_OWNER"

    # Validation
    INVALID_ADDRESS = "INVALID_ADDRESS"
    MISSING_HOLDER = "MISSING_HOLDER"
    NATIVE_REQUIRES_ESCROW = "NATIVE_REQUIRES_ESCROW"
    BOTH_SIDES_OFFCHAIN = "BOTH_SIDES_OFFCHAIN"
    UNSUPPORTED_TRADE_TYPE = "UNSUPPORTED_TRADE_TYPE"
    UNSUPPORTED_STANDARD = "UNSUPPORTED_STANDARD"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_ASSET = "INVALID_ASSET"
    INVALID_DATES = "INVALID_DATES"
    INVALID_PREIMAGE = "INVALID_PREIMAGE"
    EXECUTER_NOT_ALLOWED = "EXECUTER_NOT_ALLOWED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    INVALID_RECIPIENT = "INVALID_RECIPIENT"
    ASSET_MISMATCH = "ASSET_MISMATCH"
    INVALID_MULTIPLIER = "INVALID_MULTIPLIER"
    START_DATE_TOO_EARLY = "START_DATE_TOO_EARLY"

    # Timing
    TRADE_EXPIRED = "TRADE_EXPIRED"
    TRADE_NOT_EXPIRED = "TRADE_NOT_EXPIRED"
    SETTLEMENT_DATE_NOT_REACHED = "SETTLEMENT_DATE_NOT_REACHED"

    # Ambiguity
    PRICE_OWNERSHIP_COMPETITION = "PRICE_OWNERSHIP_COMPETITION"
    PRICE_OWNERSHIP_UNSET = "PRICE_OWNERSHIP_UNSET"

    UNKNOWN = "UNKNOWN"


class SettlementError(Exception):
    """Base exception for the settlement engine."""

    default_code = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> dict:
        return {
            "error_code": self.code.value,
            "error_class": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class AuthorizationError(SettlementError):
    """Caller lacks the role required for the operation."""
    default_code = ErrorCode.NO_STANDING


class StateError(SettlementError):
    """Trade missing or not in the state the operation requires."""
    default_code = ErrorCode.TRADE_NOT_PENDING


class FundsError(SettlementError):
    """Insufficient balance, allowance or attached value."""
    default_code = ErrorCode.INSUFFICIENT_BALANCE


class ValidationError(SettlementError):
    """Malformed input."""
    default_code = ErrorCode.INVALID_PAYLOAD


class TimingError(SettlementError):
    """Expiration or settlement-date precondition not met."""
    default_code = ErrorCode.TRADE_EXPIRED


class AmbiguityError(SettlementError):
    """Price ownership is competing or absent."""
    default_code = ErrorCode.PRICE_OWNERSHIP_UNSET
