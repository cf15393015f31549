"""
tests/integration/test_push_intake.py - Trades created and accepted by token pushes.

Partitioned tokens transferred to the engine with a proposal or
acceptance payload drive the trade lifecycle through tokens_received.
"""

import pytest

from core.constants import TradeState, TradeType
from core.exceptions import AuthorizationError, ErrorCode, FundsError, ValidationError
from core.models import FungibleAsset, PartitionedAsset
from core.time import days
from settlement.codec import encode_trade_acceptance, encode_trade_proposal
from conftest import ISSUANCE, PARTITION_ISSUED, PARTITION_LOCKED, PARTITION_RESERVED

pytestmark = pytest.mark.integration

OPERATOR_DATA = b"\x10" + bytes(31)


def push(token, holder, partition, to, amount, data, operator_data=OPERATOR_DATA):
    token.operator_transfer_by_partition(holder, partition, holder, to, amount, data, operator_data)


def proposal(ledger, accounts, tokens, **overrides):
    fields = dict(
        recipient=accounts.bob,
        executer=None,
        expiration_date=ledger.now + days(14),
        settlement_date=0,
        asset=PartitionedAsset(tokens.pcash.address, PARTITION_ISSUED),
        amount=400,
        trade_type=TradeType.ESCROW,
    )
    fields.update(overrides)
    return encode_trade_proposal(**fields)


class TestProposalPush:
    def test_creates_accepted_trade(self, ledger, engine, tokens, accounts):
        push(tokens.psec, accounts.alice, PARTITION_RESERVED, engine.address, 100, proposal(ledger, accounts, tokens))

        trade = engine.get_trade(1)
        assert trade.holder1 == accounts.alice
        assert trade.holder2 == accounts.bob
        assert trade.leg1.asset == PartitionedAsset(tokens.psec.address, PARTITION_RESERVED)
        assert trade.leg1.amount == 100
        assert trade.leg1.accepted and not trade.leg2.accepted
        assert tokens.psec.balance_of_by_partition(PARTITION_RESERVED, engine.address) == 100

    def test_acceptance_push_settles(self, ledger, engine, tokens, accounts):
        push(tokens.psec, accounts.alice, PARTITION_RESERVED, engine.address, 100, proposal(ledger, accounts, tokens))
        push(tokens.pcash, accounts.bob, PARTITION_ISSUED, engine.address, 400, encode_trade_acceptance(1))

        assert engine.get_trade(1).state == TradeState.EXECUTED
        assert tokens.psec.balance_of_by_partition(PARTITION_RESERVED, accounts.bob) == 100
        assert tokens.pcash.balance_of_by_partition(PARTITION_ISSUED, accounts.alice) == 400
        assert tokens.psec.balance_of_by_partition(PARTITION_RESERVED, engine.address) == 0
        assert tokens.pcash.balance_of_by_partition(PARTITION_ISSUED, engine.address) == 0

    def test_counterparty_may_accept_by_pull(self, ledger, engine, tokens, accounts):
        counter = FungibleAsset(tokens.cash.address)
        push(
            tokens.psec, accounts.alice, PARTITION_RESERVED, engine.address, 100,
            proposal(ledger, accounts, tokens, asset=counter),
        )
        tokens.cash.approve(accounts.bob, engine.address, 400)
        engine.accept_trade(accounts.bob, 1)
        assert engine.get_trade(1).state == TradeState.EXECUTED
        assert tokens.cash.balance_of(accounts.alice) == 400


class TestAcceptancePush:
    @pytest.fixture
    def pending(self, ledger, engine, tokens, accounts):
        push(tokens.psec, accounts.alice, PARTITION_RESERVED, engine.address, 100, proposal(ledger, accounts, tokens))
        tokens.pcash.issue_by_partition(accounts.owner, PARTITION_LOCKED, accounts.bob, ISSUANCE)
        return 1

    def test_wrong_partition(self, engine, tokens, accounts, pending):
        with pytest.raises(ValidationError) as exc:
            push(tokens.pcash, accounts.bob, PARTITION_LOCKED, engine.address, 400, encode_trade_acceptance(pending))
        assert exc.value.code == ErrorCode.ASSET_MISMATCH
        assert tokens.pcash.balance_of_by_partition(PARTITION_LOCKED, accounts.bob) == ISSUANCE

    def test_wrong_amount(self, engine, tokens, accounts, pending):
        with pytest.raises(FundsError) as exc:
            push(tokens.pcash, accounts.bob, PARTITION_ISSUED, engine.address, 399, encode_trade_acceptance(pending))
        assert exc.value.code == ErrorCode.VALUE_MISMATCH
        assert engine.get_trade_acceptance_status(pending) == (True, False)

    def test_stranger_push(self, engine, tokens, accounts, pending):
        tokens.pcash.issue_by_partition(accounts.owner, PARTITION_ISSUED, accounts.stranger, 400)
        with pytest.raises(AuthorizationError) as exc:
            push(tokens.pcash, accounts.stranger, PARTITION_ISSUED, engine.address, 400, encode_trade_acceptance(pending))
        assert exc.value.code == ErrorCode.NOT_A_HOLDER
        assert tokens.pcash.balance_of_by_partition(PARTITION_ISSUED, accounts.stranger) == 400


class TestHookValidation:
    def test_plain_transfer_rejected(self, engine, tokens, accounts):
        with pytest.raises(ValidationError) as exc:
            tokens.psec.transfer_by_partition(accounts.alice, PARTITION_RESERVED, engine.address, 10)
        assert exc.value.code == ErrorCode.INVALID_PAYLOAD
        assert tokens.psec.balance_of_by_partition(PARTITION_RESERVED, accounts.alice) == ISSUANCE

    def test_garbage_payload(self, engine, tokens, accounts):
        with pytest.raises(ValidationError) as exc:
            push(tokens.psec, accounts.alice, PARTITION_RESERVED, engine.address, 10, b"\x01" * 64)
        assert exc.value.code == ErrorCode.INVALID_PAYLOAD

    def test_hook_caller_must_be_partitioned_token(self, engine, tokens, accounts):
        with pytest.raises(AuthorizationError) as exc:
            engine.tokens_received(
                tokens.cash.address, PARTITION_ISSUED, accounts.bob, accounts.bob,
                engine.address, 1, encode_trade_acceptance(1), OPERATOR_DATA,
            )
        assert exc.value.code == ErrorCode.UNKNOWN_TOKEN_CALLER

    def test_wrong_recipient(self, engine, tokens, accounts):
        with pytest.raises(ValidationError) as exc:
            engine.tokens_received(
                tokens.pcash.address, PARTITION_ISSUED, accounts.bob, accounts.bob,
                accounts.carol, 1, encode_trade_acceptance(1), OPERATOR_DATA,
            )
        assert exc.value.code == ErrorCode.INVALID_RECIPIENT

    def test_can_receive(self, ledger, engine, tokens, accounts):
        args = (PARTITION_RESERVED, accounts.alice, accounts.alice, engine.address, 1)
        assert engine.can_receive(*args, proposal(ledger, accounts, tokens), OPERATOR_DATA)
        assert engine.can_receive(*args, encode_trade_acceptance(1), OPERATOR_DATA)
        assert not engine.can_receive(*args, encode_trade_acceptance(1), b"")
        assert not engine.can_receive(*args, b"nonsense", OPERATOR_DATA)
        assert engine.can_receive(PARTITION_RESERVED, engine.address, accounts.alice, engine.address, 1, b"", b"")
