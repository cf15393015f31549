"""
tests/unit/test_exceptions.py - Typed error contract.
"""

import pytest

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


class TestSettlementError:
    def test_str_includes_code(self):
        err = FundsError("not enough", ErrorCode.INSUFFICIENT_ALLOWANCE)
        assert str(err) == "[INSUFFICIENT_ALLOWANCE] not enough"

    def test_to_dict(self):
        err = StateError("gone", ErrorCode.TRADE_NOT_FOUND, {"trade_index": 9})
        assert err.to_dict() == {
            "error_code": "TRADE_NOT_FOUND",
            "error_class": "StateError",
            "message": "gone",
            "details": {"trade_index": 9},
        }

    def test_details_default_to_empty(self):
        assert ValidationError("bad").details == {}

    @pytest.mark.parametrize(
        "cls, code",
        [
            (AuthorizationError, ErrorCode.NO_STANDING),
            (StateError, ErrorCode.TRADE_NOT_PENDING),
            (FundsError, ErrorCode.INSUFFICIENT_BALANCE),
            (ValidationError, ErrorCode.INVALID_PAYLOAD),
            (TimingError, ErrorCode.TRADE_EXPIRED),
            (AmbiguityError, ErrorCode.PRICE_OWNERSHIP_UNSET),
        ],
    )
    def test_default_codes(self, cls, code):
        err = cls("x")
        assert err.code == code
        assert isinstance(err, SettlementError)

    def test_error_codes_are_strings(self):
        assert ErrorCode.TRADE_EXPIRED == "TRADE_EXPIRED"
