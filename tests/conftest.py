"""
tests/conftest.py - Pytest configuration and fixtures for settlement engine tests.
"""

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from chains.ledger import Ledger  # noqa: E402
from chains.tokens import FungibleToken, NonFungibleToken, PartitionedToken  # noqa: E402
from core.constants import TradeType  # noqa: E402
from core.models import TradeRequest  # noqa: E402
from settlement.engine import SettlementEngine  # noqa: E402

START_TIME = 1_700_000_000
PARTITION_RESERVED = b"reserved".ljust(32, b"\x00")
PARTITION_ISSUED = b"issued".ljust(32, b"\x00")
PARTITION_LOCKED = b"locked".ljust(32, b"\x00")
ISSUANCE = 1000
NFT_ID = 7

ACCOUNT_NAMES = (
    "owner",
    "alice",
    "bob",
    "carol",
    "executer",
    "controller",
    "controller2",
    "oracle",
    "oracle2",
    "stranger",
)


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


@pytest.fixture
def ledger():
    return Ledger(timestamp=START_TIME)


@pytest.fixture
def accounts(ledger):
    """Named externally owned addresses."""
    return SimpleNamespace(**{name: ledger.new_address(name) for name in ACCOUNT_NAMES})


@pytest.fixture
def engine(ledger, accounts):
    return SettlementEngine(ledger, accounts.owner)


@pytest.fixture
def owned_engine(ledger, accounts):
    return SettlementEngine(ledger, accounts.owner, owned=True)


@pytest.fixture
def tokens(ledger, accounts):
    """
    Deployed and funded tokens.

    alice: 1000 SEC, NFT #7, 1000 reserved PSEC, 10_000 native
    bob:   1000 CASH, 1000 issued PCASH, 10_000 native
    """
    owner = accounts.owner
    sec = FungibleToken(ledger, owner, "SEC")
    cash = FungibleToken(ledger, owner, "CASH")
    nft = NonFungibleToken(ledger, owner, "DEED")
    psec = PartitionedToken(ledger, owner, "PSEC")
    pcash = PartitionedToken(ledger, owner, "PCASH")

    sec.mint(owner, accounts.alice, ISSUANCE)
    cash.mint(owner, accounts.bob, ISSUANCE)
    nft.mint(owner, accounts.alice, NFT_ID)
    psec.issue_by_partition(owner, PARTITION_RESERVED, accounts.alice, ISSUANCE)
    pcash.issue_by_partition(owner, PARTITION_ISSUED, accounts.bob, ISSUANCE)
    ledger.mint_native(accounts.alice, 10_000)
    ledger.mint_native(accounts.bob, 10_000)

    return SimpleNamespace(sec=sec, cash=cash, nft=nft, psec=psec, pcash=pcash)


@pytest.fixture
def make_request(accounts):
    """Factory for TradeRequest with alice/bob as holders."""

    def _make(
        asset1,
        amount1,
        asset2,
        amount2,
        trade_type1=TradeType.ESCROW,
        trade_type2=TradeType.ESCROW,
        holder1="alice",
        holder2="bob",
        executer=None,
        expiration_date=0,
        settlement_date=0,
    ):
        return TradeRequest(
            holder1=getattr(accounts, holder1) if holder1 else None,
            holder2=getattr(accounts, holder2) if holder2 else None,
            asset1=asset1,
            amount1=amount1,
            asset2=asset2,
            amount2=amount2,
            trade_type1=trade_type1,
            trade_type2=trade_type2,
            executer=getattr(accounts, executer) if executer else None,
            expiration_date=expiration_date,
            settlement_date=settlement_date,
        )

    return _make
