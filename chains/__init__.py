"""
chains - In-memory ledger the settlement engine runs on.

- block.py: ledger clock
- ledger.py: native balances, contract registry, atomic call scopes
- tokens.py: fungible, non-fungible and partitioned token contracts
"""

from chains.block import BlockState, LedgerClock
from chains.ledger import Ledger, Stateful
from chains.tokens import FungibleToken, NonFungibleToken, PartitionedToken

__all__ = [
    "BlockState",
    "FungibleToken",
    "Ledger",
    "LedgerClock",
    "NonFungibleToken",
    "PartitionedToken",
    "Stateful",
]
