"""
tests/integration/test_atomicity.py - All-or-nothing engine calls.

A failing call, including one failing deep inside a token hook or
auto-execution, leaves trades, registries, events and balances exactly
as they were.
"""

import pytest

from core.constants import TradeState
from core.exceptions import AmbiguityError, ErrorCode, FundsError, ValidationError
from core.models import FungibleAsset, NativeAsset, OffchainAsset, TradeRequest
from conftest import ISSUANCE, PARTITION_RESERVED

pytestmark = pytest.mark.integration


class RejectingReceiver:
    """Contract holder that refuses native currency."""

    accepts_native = False


def snapshot(ledger, engine, tokens, accounts):
    return (
        [t.to_dict() for t in engine.get_trades()],
        len(engine.events()),
        tokens.sec.balance_of(accounts.alice),
        tokens.cash.balance_of(accounts.bob),
        tokens.sec.balance_of(engine.address),
        tokens.cash.balance_of(engine.address),
        ledger.native_balance(engine.address),
        ledger.native_balance(accounts.bob),
    )


def test_failed_request_leaves_no_trade(ledger, engine, tokens, accounts, make_request):
    before = snapshot(ledger, engine, tokens, accounts)
    with pytest.raises(FundsError):
        engine.request_trade(
            accounts.alice,
            make_request(FungibleAsset(tokens.sec.address), 100, OffchainAsset(), 1),
        )
    assert snapshot(ledger, engine, tokens, accounts) == before
    assert engine.trade_count() == 0


def test_failed_auto_execution_rolls_back_acceptance(ledger, engine, tokens, accounts):
    receiver = ledger.register_contract(RejectingReceiver())
    index = engine.request_trade(
        accounts.carol,
        TradeRequest(
            holder1=receiver,
            holder2=accounts.bob,
            asset1=OffchainAsset(),
            amount1=1,
            asset2=NativeAsset(),
            amount2=500,
        ),
    )
    engine.accept_trade(receiver, index)
    before = snapshot(ledger, engine, tokens, accounts)

    with pytest.raises(FundsError) as exc:
        engine.accept_trade(accounts.bob, index, value=500)
    assert exc.value.code == ErrorCode.TRANSFER_REJECTED

    assert snapshot(ledger, engine, tokens, accounts) == before
    assert engine.get_trade_acceptance_status(index) == (True, False)
    assert engine.get_trade(index).state == TradeState.PENDING


def test_failed_escrow_after_value_transfer(ledger, engine, tokens, accounts, make_request):
    tokens.sec.approve(accounts.alice, engine.address, 100)
    index = engine.request_trade(
        accounts.alice,
        make_request(FungibleAsset(tokens.sec.address), 100, NativeAsset(), 300),
    )
    before = snapshot(ledger, engine, tokens, accounts)
    with pytest.raises(FundsError):
        engine.accept_trade(accounts.bob, index, value=200)
    assert snapshot(ledger, engine, tokens, accounts) == before


def test_failed_push_returns_tokens(ledger, engine, tokens, accounts):
    with pytest.raises(ValidationError):
        tokens.psec.operator_transfer_by_partition(
            accounts.alice, PARTITION_RESERVED, accounts.alice, engine.address, 10, b"", b"\x01"
        )
    assert tokens.psec.balance_of_by_partition(PARTITION_RESERVED, accounts.alice) == ISSUANCE
    assert engine.trade_count() == 0
    assert engine.events() == []


def test_failed_admin_call_keeps_registries(engine, tokens, accounts):
    engine.set_price_oracles(accounts.owner, tokens.sec.address, [accounts.oracle])
    engine.set_price_oracles(accounts.owner, tokens.cash.address, [accounts.oracle2])
    engine.set_price_ownership(accounts.oracle, tokens.sec.address, tokens.cash.address, True)
    engine.set_price_ownership(accounts.oracle2, tokens.cash.address, tokens.sec.address, True)
    events = len(engine.events())

    with pytest.raises(AmbiguityError):
        engine.set_token_price(
            accounts.oracle, tokens.sec.address, tokens.cash.address, bytes(32), bytes(32), 2
        )
    assert engine.token_price(tokens.sec.address, tokens.cash.address, bytes(32), bytes(32)) == 0
    assert len(engine.events()) == events
    assert engine.price_ownership(tokens.sec.address, tokens.cash.address)
