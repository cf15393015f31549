"""
core/time.py - Time utilities for the settlement engine.

All engine timestamps are integer Unix seconds read from the ledger clock,
never from the wall clock.
"""

from datetime import datetime, timezone

from core.constants import (
    DEFAULT_EXPIRATION_DAYS,
    SECONDS_PER_DAY,
    VARIABLE_PRICE_MIN_DELAY_DAYS,
)


def now_timestamp() -> float:
    """Current wall-clock Unix timestamp; used only to seed a new ledger clock."""
    return datetime.now(timezone.utc).timestamp()


def days(n: int) -> int:
    """Number of seconds in n days."""
    return n * SECONDS_PER_DAY


def weeks(n: int) -> int:
    """Number of seconds in n weeks."""
    return days(7 * n)


def default_expiration(now: int, expiration_days: int = DEFAULT_EXPIRATION_DAYS) -> int:
    """Expiration applied when a trade is requested with expiration 0."""
    return now + days(expiration_days)


def earliest_price_start(now: int, min_delay_days: int = VARIABLE_PRICE_MIN_DELAY_DAYS) -> int:
    """Earliest accepted variable price start date."""
    return now + days(min_delay_days)


def is_expired(now: int, expiration_date: int) -> bool:
    """A trade is expired strictly after its expiration date."""
    return now > expiration_date


def to_iso(timestamp: int) -> str:
    """Render a ledger timestamp as ISO 8601 UTC."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
