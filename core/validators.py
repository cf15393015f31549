"""
core/validators.py - Input validators for addresses, identifiers and amounts.

CONTRACTS:
- normalize_address(): lower-cased 0x + 40 hex, raises ValidationError
- optional_address(): None for None/zero address, else normalized
- require_bytes32(): exactly 32 bytes, raises ValidationError
"""

import re
from typing import Optional, Union

from core.constants import ZERO_ADDRESS
from core.exceptions import ErrorCode, ValidationError
from core.math import is_uint256

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_address(value: object) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def normalize_address(value: str, field_name: str = "address") -> str:
    """
    Normalize an address to lower case.

    Raises:
        ValidationError: if value is not a 0x-prefixed 20-byte hex string
    """
    if not is_address(value):
        raise ValidationError(
            f"Invalid {field_name}: {value!r}",
            ErrorCode.INVALID_ADDRESS,
            {"field": field_name},
        )
    return value.lower()


def optional_address(value: Optional[str], field_name: str = "address") -> Optional[str]:
    """Normalize an address where the zero address means 'not set'."""
    if value is None:
        return None
    address = normalize_address(value, field_name)
    if address == ZERO_ADDRESS:
        return None
    return address


def require_bytes32(value: Union[bytes, bytearray, str], field_name: str = "value") -> bytes:
    """
    Coerce a 32-byte identifier.

    Accepts raw bytes or a 0x-prefixed 64-digit hex string.
    """
    if isinstance(value, str):
        hex_part = value[2:] if value.startswith("0x") else value
        try:
            value = bytes.fromhex(hex_part)
        except ValueError:
            raise ValidationError(
                f"Invalid {field_name}: not hex",
                ErrorCode.INVALID_PAYLOAD,
                {"field": field_name},
            ) from None
    if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
        raise ValidationError(
            f"Invalid {field_name}: expected 32 bytes",
            ErrorCode.INVALID_PAYLOAD,
            {"field": field_name},
        )
    return bytes(value)


def require_amount(value: int, field_name: str = "amount") -> int:
    """Amounts are unsigned 256-bit integers."""
    if not is_uint256(value):
        raise ValidationError(
            f"Invalid {field_name}: {value!r}",
            ErrorCode.INVALID_AMOUNT,
            {"field": field_name},
        )
    return value
