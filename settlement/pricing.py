"""
settlement/pricing.py - Price override subsystem.

PRICE CONTRACT:
===============
A trade delivers amount1 of token1 against amount2 of token2. Once either
token's variable price start date has been reached, the amount of token2
due is recomputed from a multiplier set by the oracle that owns the pair:

  key (token1, token2, p1, p2)  ->  due = amount1 * m
  key (token2, token1, p2, p1)  ->  due = round_half_up(amount1 / m)

A multiplier keyed (A, B) prices B per A, whichever oracle wrote it. The
owner token's own direction is read first; when it holds no multiplier the
opposite direction is used.

Exactly one ownership direction must be claimed; both (competition) or
neither raise AmbiguityError. Multiplier lookup falls back from the most
specific key to the least:

  1. (owner partition,  other partition)
  2. (owner partition,  ALL_PARTITIONS)
  3. (ALL_PARTITIONS,   other partition)
  4. (ALL_PARTITIONS,   ALL_PARTITIONS)

No multiplier at any tier means no override: the nominal amount2 stands.
Tokens without a contract (off-chain, native) are keyed by ZERO_ADDRESS.
===============
"""

from typing import Dict, Tuple

from core.constants import ALL_PARTITIONS
from core.exceptions import AmbiguityError, ErrorCode, ValidationError
from core.math import div_round_half_up, mul_amount
from core.time import earliest_price_start

PriceKey = Tuple[str, str, bytes, bytes]


class PriceBook:
    """Ownership claims, multipliers and start dates owned by one engine."""

    def __init__(self):
        self._ownership: Dict[Tuple[str, str], bool] = {}
        self._prices: Dict[PriceKey, int] = {}
        self._start_dates: Dict[str, int] = {}

    # =========================================================================
    # OWNERSHIP
    # =========================================================================

    def owns(self, token_from: str, token_to: str) -> bool:
        return self._ownership.get((token_from, token_to), False)

    def set_ownership(self, token_from: str, token_to: str, owned: bool) -> None:
        self._ownership[(token_from, token_to)] = owned

    def owner_token(self, token1: str, token2: str) -> str:
        """
        Token whose oracles own pricing for the pair.

        Raises:
            AmbiguityError: both directions claimed, or neither
        """
        forward = self.owns(token1, token2)
        backward = self.owns(token2, token1)
        if forward and backward:
            raise AmbiguityError(
                f"Competing price ownership between {token1} and {token2}",
                ErrorCode.PRICE_OWNERSHIP_COMPETITION,
                {"token1": token1, "token2": token2},
            )
        if not forward and not backward:
            raise AmbiguityError(
                f"No price ownership for {token1} / {token2}",
                ErrorCode.PRICE_OWNERSHIP_UNSET,
                {"token1": token1, "token2": token2},
            )
        return token1 if forward else token2

    # =========================================================================
    # MULTIPLIERS
    # =========================================================================

    def price(self, token1: str, token2: str, partition1: bytes, partition2: bytes) -> int:
        return self._prices.get((token1, token2, partition1, partition2), 0)

    def set_price(
        self, token1: str, token2: str, partition1: bytes, partition2: bytes, multiplier: int
    ) -> None:
        if isinstance(multiplier, bool) or not isinstance(multiplier, int) or multiplier <= 0:
            raise ValidationError(
                f"Price multiplier must be a positive integer: {multiplier!r}",
                ErrorCode.INVALID_MULTIPLIER,
            )
        self._prices[(token1, token2, partition1, partition2)] = multiplier

    def clear_price(self, token1: str, token2: str, partition1: bytes, partition2: bytes) -> None:
        self._prices.pop((token1, token2, partition1, partition2), None)

    def resolve_multiplier(
        self, owner: str, other: str, owner_partition: bytes, other_partition: bytes
    ) -> int:
        """Most specific multiplier for the pair, 0 when none is set."""
        for p_owner, p_other in (
            (owner_partition, other_partition),
            (owner_partition, ALL_PARTITIONS),
            (ALL_PARTITIONS, other_partition),
            (ALL_PARTITIONS, ALL_PARTITIONS),
        ):
            multiplier = self.price(owner, other, p_owner, p_other)
            if multiplier:
                return multiplier
        return 0

    # =========================================================================
    # START DATES
    # =========================================================================

    def start_date(self, token: str) -> int:
        return self._start_dates.get(token, 0)

    def set_start_date(self, token: str, start_date: int, now: int, min_delay_days: int) -> None:
        """0 clears the date; anything else must be at least min_delay_days away."""
        if start_date == 0:
            self._start_dates.pop(token, None)
            return
        earliest = earliest_price_start(now, min_delay_days)
        if start_date < earliest:
            raise ValidationError(
                f"Start date {start_date} is earlier than {earliest}",
                ErrorCode.START_DATE_TOO_EARLY,
                {"token": token, "start_date": start_date, "earliest": earliest},
            )
        self._start_dates[token] = start_date

    def is_active(self, token: str, now: int) -> bool:
        start = self.start_date(token)
        return start != 0 and now >= start

    # =========================================================================
    # EFFECTIVE PRICE
    # =========================================================================

    def effective_amount(
        self,
        token1: str,
        token2: str,
        partition1: bytes,
        partition2: bytes,
        amount1: int,
        amount2: int,
        now: int,
    ) -> int:
        """Amount of token2 due against amount1 of token1."""
        if not (self.is_active(token1, now) or self.is_active(token2, now)):
            return amount2

        owner = self.owner_token(token1, token2)
        forward = self.resolve_multiplier(token1, token2, partition1, partition2)
        backward = self.resolve_multiplier(token2, token1, partition2, partition1)
        if owner == token2 and backward:
            return div_round_half_up(amount1, backward)
        if forward:
            return mul_amount(amount1, forward)
        if backward:
            return div_round_half_up(amount1, backward)
        return amount2
