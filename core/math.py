"""
core/math.py - Math utilities for settlement amounts.

Token amounts are integers in base units; no float money. Division uses
Decimal with ROUND_HALF_UP so a multiplier that does not divide evenly
rounds 0.5 away from zero.
"""

from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Union

UINT256_MAX = 2**256 - 1


def to_base_units(value: Union[str, int, Decimal]) -> int:
    """
    Convert an amount to an integer number of base units.

    Raises:
        ValueError: if the value is fractional or negative
    """
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    d = Decimal(str(value))
    if d != d.to_integral_value() or d < 0:
        raise ValueError(f"Amount must be a non-negative integer: {value!r}")
    return int(d)


def mul_amount(amount: int, multiplier: int) -> int:
    """amount * multiplier, kept in integers."""
    return amount * multiplier


def div_round_half_up(amount: int, divisor: int) -> int:
    """
    Divide two integers, rounding half up.

    Examples:
        >>> div_round_half_up(10, 4)
        3
        >>> div_round_half_up(10, 3)
        3
        >>> div_round_half_up(9, 6)
        2
    """
    if divisor <= 0:
        raise ValueError(f"Divisor must be positive: {divisor}")
    with localcontext() as ctx:
        # 256-bit amounts need ~78 significant digits
        ctx.prec = 100
        quotient = Decimal(amount) / Decimal(divisor)
        return int(quotient.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_uint256(value: int) -> bool:
    """Check that value fits in an unsigned 256-bit word."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= UINT256_MAX
