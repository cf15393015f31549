"""
tests/integration/test_settlement_scenarios.py - End-to-end settlement properties.

Each test drives a SettlementEngine on a fresh ledger with funded tokens
(see conftest.tokens) and checks balances and trade state afterwards.
"""

import pytest

from core.constants import ALL_PARTITIONS, TradeState, TradeType
from core.exceptions import AmbiguityError, AuthorizationError, ErrorCode, FundsError, StateError
from core.models import FungibleAsset, NativeAsset, OffchainAsset, PartitionedAsset
from core.time import days
from conftest import ISSUANCE, PARTITION_ISSUED, PARTITION_RESERVED

pytestmark = pytest.mark.integration


def balances(tokens, accounts, engine):
    return {
        "alice_sec": tokens.sec.balance_of(accounts.alice),
        "alice_cash": tokens.cash.balance_of(accounts.alice),
        "bob_sec": tokens.sec.balance_of(accounts.bob),
        "bob_cash": tokens.cash.balance_of(accounts.bob),
        "engine_sec": tokens.sec.balance_of(engine.address),
        "engine_cash": tokens.cash.balance_of(engine.address),
    }


class TestSwapAutoExecution:
    def test_holder2_acceptance_settles(self, engine, tokens, accounts, make_request):
        tokens.sec.approve(accounts.alice, engine.address, 100)
        index = engine.request_trade(
            accounts.alice,
            make_request(
                FungibleAsset(tokens.sec.address), 100,
                FungibleAsset(tokens.cash.address), 400,
                TradeType.SWAP, TradeType.SWAP,
            ),
        )
        assert engine.get_trade_acceptance_status(index) == (True, False)
        # acceptance alone moves nothing in SWAP mode
        assert tokens.sec.balance_of(engine.address) == 0

        tokens.cash.approve(accounts.bob, engine.address, 400)
        engine.accept_trade(accounts.bob, index)

        assert engine.get_trade(index).state == TradeState.EXECUTED
        assert balances(tokens, accounts, engine) == {
            "alice_sec": ISSUANCE - 100,
            "alice_cash": 400,
            "bob_sec": 100,
            "bob_cash": ISSUANCE - 400,
            "engine_sec": 0,
            "engine_cash": 0,
        }

    def test_accept_without_authorization_fails(self, engine, tokens, accounts, make_request):
        tokens.sec.approve(accounts.alice, engine.address, 100)
        index = engine.request_trade(
            accounts.alice,
            make_request(
                FungibleAsset(tokens.sec.address), 100,
                FungibleAsset(tokens.cash.address), 400,
                TradeType.SWAP, TradeType.SWAP,
            ),
        )
        with pytest.raises(FundsError) as exc:
            engine.accept_trade(accounts.bob, index)
        assert exc.value.code == ErrorCode.INSUFFICIENT_ALLOWANCE
        assert engine.get_trade_acceptance_status(index) == (True, False)

    def test_swap_deferred_when_holder1_withdraws_authorization(self, engine, tokens, accounts, make_request):
        tokens.sec.approve(accounts.alice, engine.address, 100)
        index = engine.request_trade(
            accounts.alice,
            make_request(
                FungibleAsset(tokens.sec.address), 100,
                FungibleAsset(tokens.cash.address), 400,
                TradeType.SWAP, TradeType.ESCROW,
            ),
        )
        tokens.sec.approve(accounts.alice, engine.address, 0)
        tokens.cash.approve(accounts.bob, engine.address, 400)
        engine.accept_trade(accounts.bob, index)

        trade = engine.get_trade(index)
        assert trade.state == TradeState.PENDING
        assert tokens.cash.balance_of(engine.address) == 400

        tokens.sec.approve(accounts.alice, engine.address, 100)
        engine.execute_trade(accounts.alice, index)
        assert engine.get_trade(index).state == TradeState.EXECUTED
        assert tokens.cash.balance_of(accounts.alice) == 400


class TestNativeEscrow:
    def test_native_leg_leaves_no_custody(self, ledger, engine, tokens, accounts, make_request):
        alice_native = ledger.native_balance(accounts.alice)
        index = engine.request_trade(
            accounts.alice,
            make_request(NativeAsset(), 250, FungibleAsset(tokens.cash.address), 400),
            value=250,
        )
        assert ledger.native_balance(engine.address) == 250

        tokens.cash.approve(accounts.bob, engine.address, 400)
        engine.accept_trade(accounts.bob, index)

        assert engine.get_trade(index).state == TradeState.EXECUTED
        assert ledger.native_balance(engine.address) == 0
        assert ledger.native_balance(accounts.alice) == alice_native - 250
        assert ledger.native_balance(accounts.bob) == 10_000 + 250
        assert tokens.cash.balance_of(accounts.alice) == 400

    def test_counterparty_must_send_exact_amount(self, ledger, engine, tokens, accounts, make_request):
        tokens.sec.approve(accounts.alice, engine.address, 100)
        index = engine.request_trade(
            accounts.alice,
            make_request(FungibleAsset(tokens.sec.address), 100, NativeAsset(), 300),
        )
        for wrong in (0, 299, 301):
            with pytest.raises(FundsError) as exc:
                engine.accept_trade(accounts.bob, index, value=wrong)
            assert exc.value.code == ErrorCode.VALUE_MISMATCH
        assert ledger.native_balance(accounts.bob) == 10_000

        engine.accept_trade(accounts.bob, index, value=300)
        assert ledger.native_balance(engine.address) == 0
        assert ledger.native_balance(accounts.alice) == 10_000 + 300
        assert tokens.sec.balance_of(accounts.bob) == 100


class TestPriceOverride:
    @pytest.fixture
    def priced_trade(self, engine, tokens, accounts, make_request):
        engine.set_price_oracles(accounts.owner, tokens.psec.address, [accounts.oracle])
        index = engine.request_trade(
            accounts.carol,
            make_request(
                PartitionedAsset(tokens.psec.address, PARTITION_RESERVED), 10,
                PartitionedAsset(tokens.pcash.address, PARTITION_ISSUED), 400,
            ),
        )
        return index

    def test_multiplier_applies_after_start_date(self, ledger, engine, tokens, accounts, priced_trade):
        engine.set_variable_price_start_date(accounts.oracle, tokens.psec.address, ledger.now + days(8))
        engine.set_price_ownership(accounts.oracle, tokens.psec.address, tokens.pcash.address, True)
        engine.set_token_price(
            accounts.oracle,
            tokens.psec.address,
            tokens.pcash.address,
            PARTITION_RESERVED,
            PARTITION_ISSUED,
            5,
        )
        assert engine.get_price(priced_trade) == 400

        ledger.advance(days(8) + 1)
        assert engine.get_price(priced_trade) == 50

    def test_execution_refunds_remainder(self, ledger, engine, tokens, accounts, priced_trade):
        engine.set_variable_price_start_date(accounts.oracle, tokens.psec.address, ledger.now + days(8))
        engine.set_price_ownership(accounts.oracle, tokens.psec.address, tokens.pcash.address, True)
        engine.set_token_price(
            accounts.oracle, tokens.psec.address, tokens.pcash.address,
            PARTITION_RESERVED, PARTITION_ISSUED, 5,
        )
        ledger.advance(days(9))

        tokens.psec.authorize_operator(accounts.alice, engine.address)
        tokens.pcash.authorize_operator(accounts.bob, engine.address)
        engine.accept_trade(accounts.alice, priced_trade)
        engine.accept_trade(accounts.bob, priced_trade)

        assert engine.get_trade(priced_trade).state == TradeState.EXECUTED
        assert tokens.pcash.balance_of_by_partition(PARTITION_ISSUED, accounts.alice) == 50
        assert tokens.pcash.balance_of_by_partition(PARTITION_ISSUED, accounts.bob) == ISSUANCE - 50
        assert tokens.pcash.balance_of_by_partition(PARTITION_ISSUED, engine.address) == 0
        assert tokens.psec.balance_of_by_partition(PARTITION_RESERVED, accounts.bob) == 10

    def test_competing_ownership_fails_price_query(self, ledger, engine, tokens, accounts, priced_trade):
        engine.set_price_oracles(accounts.owner, tokens.pcash.address, [accounts.oracle2])
        engine.set_variable_price_start_date(accounts.oracle, tokens.psec.address, ledger.now + days(7))
        engine.set_price_ownership(accounts.oracle, tokens.psec.address, tokens.pcash.address, True)
        engine.set_price_ownership(accounts.oracle2, tokens.pcash.address, tokens.psec.address, True)
        ledger.advance(days(7))

        with pytest.raises(AmbiguityError) as exc:
            engine.get_price(priced_trade)
        assert exc.value.code == ErrorCode.PRICE_OWNERSHIP_COMPETITION

        engine.set_price_ownership(accounts.oracle2, tokens.pcash.address, tokens.psec.address, False)
        assert engine.get_price(priced_trade) == 400

    def test_price_above_nominal_blocks_execution(self, ledger, engine, tokens, accounts, priced_trade):
        engine.set_variable_price_start_date(accounts.oracle, tokens.psec.address, ledger.now + days(7))
        engine.set_price_ownership(accounts.oracle, tokens.psec.address, tokens.pcash.address, True)
        engine.set_token_price(
            accounts.oracle, tokens.psec.address, tokens.pcash.address,
            PARTITION_RESERVED, PARTITION_ISSUED, 41,
        )
        ledger.advance(days(7))
        tokens.psec.authorize_operator(accounts.alice, engine.address)
        tokens.pcash.authorize_operator(accounts.bob, engine.address)
        engine.accept_trade(accounts.alice, priced_trade)
        with pytest.raises(FundsError) as exc:
            engine.accept_trade(accounts.bob, priced_trade)
        assert exc.value.code == ErrorCode.PRICE_ABOVE_NOMINAL
        assert engine.get_trade_acceptance_status(priced_trade) == (True, False)

    def test_second_token_owner_prices_in_trade_order(self, ledger, engine, tokens, accounts, priced_trade):
        engine.set_price_oracles(accounts.owner, tokens.pcash.address, [accounts.oracle2])
        engine.set_variable_price_start_date(accounts.oracle2, tokens.pcash.address, ledger.now + days(7))
        engine.set_price_ownership(accounts.oracle2, tokens.pcash.address, tokens.psec.address, True)
        engine.set_token_price(
            accounts.oracle2, tokens.psec.address, tokens.pcash.address,
            ALL_PARTITIONS, ALL_PARTITIONS, 2,
        )
        assert engine.token_price(
            tokens.psec.address, tokens.pcash.address, ALL_PARTITIONS, ALL_PARTITIONS
        ) == 2
        ledger.advance(days(7))

        assert engine.get_price(priced_trade) == 20


class TestForce:
    def test_both_accepted_cannot_be_forced(self, engine, tokens, accounts, make_request):
        index = engine.request_trade(
            accounts.alice,
            make_request(OffchainAsset(), 1, FungibleAsset(tokens.cash.address), 400, executer="executer"),
        )
        tokens.cash.approve(accounts.bob, engine.address, 400)
        engine.accept_trade(accounts.bob, index)
        with pytest.raises(StateError) as exc:
            engine.force_trade(accounts.executer, index)
        assert exc.value.code == ErrorCode.BOTH_SIDES_ACCEPTED

    def test_controlled_token_cannot_be_forced(self, engine, tokens, accounts, make_request):
        engine.set_token_controllers(accounts.owner, tokens.cash.address, [accounts.controller])
        index = engine.request_trade(
            accounts.alice,
            make_request(OffchainAsset(), 1, FungibleAsset(tokens.cash.address), 400),
        )
        with pytest.raises(StateError) as exc:
            engine.force_trade(accounts.alice, index)
        assert exc.value.code == ErrorCode.FORCE_BLOCKED_BY_CONTROLLERS

    def test_force_returns_accepted_leg(self, engine, tokens, accounts, make_request):
        tokens.sec.approve(accounts.alice, engine.address, 100)
        index = engine.request_trade(
            accounts.alice,
            make_request(FungibleAsset(tokens.sec.address), 100, FungibleAsset(tokens.cash.address), 400),
        )
        assert tokens.sec.balance_of(engine.address) == 100
        with pytest.raises(AuthorizationError) as exc:
            engine.force_trade(accounts.bob, index)
        assert exc.value.code == ErrorCode.NO_STANDING

        engine.force_trade(accounts.alice, index)
        assert engine.get_trade(index).state == TradeState.FORCED
        assert tokens.sec.balance_of(accounts.alice) == ISSUANCE
        assert tokens.sec.balance_of(engine.address) == 0
        assert tokens.cash.balance_of(accounts.alice) == 0


class TestRoundTrip:
    def test_cancel_returns_escrow_exactly(self, ledger, engine, tokens, accounts, make_request):
        tokens.psec.approve_by_partition(accounts.alice, PARTITION_RESERVED, engine.address, 100)
        index = engine.request_trade(
            accounts.alice,
            make_request(
                PartitionedAsset(tokens.psec.address, PARTITION_RESERVED), 100,
                FungibleAsset(tokens.cash.address), 400,
                expiration_date=ledger.now + days(2),
            ),
        )
        assert tokens.psec.balance_of_by_partition(PARTITION_RESERVED, engine.address) == 100

        ledger.advance(days(2) + 1)
        engine.cancel_trade(accounts.alice, index)

        assert engine.get_trade(index).state == TradeState.CANCELLED
        assert tokens.psec.balance_of_by_partition(PARTITION_RESERVED, accounts.alice) == ISSUANCE
        assert tokens.psec.balance_of_by_partition(PARTITION_RESERVED, engine.address) == 0


class TestApprovalIdempotence:
    def test_repeated_vote_changes_nothing(self, engine, tokens, accounts, make_request):
        engine.set_token_controllers(accounts.owner, tokens.cash.address, [accounts.controller])
        index = engine.request_trade(
            accounts.carol,
            make_request(OffchainAsset(), 1, FungibleAsset(tokens.cash.address), 400, executer="executer"),
        )
        assert engine.get_trade_approval_status(index) == (True, False)

        engine.approve_trade(accounts.controller, index, True)
        first = engine.get_trade_approval_status(index)
        engine.approve_trade(accounts.controller, index, True)
        assert engine.get_trade_approval_status(index) == first == (True, True)

        engine.approve_trade(accounts.controller, index, False)
        engine.approve_trade(accounts.controller, index, False)
        assert engine.get_trade_approval_status(index) == (True, False)
