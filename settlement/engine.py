"""
settlement/engine.py - Delivery-versus-payment settlement engine.

ENGINE CONTRACT:
================
Trade lifecycle:
  request_trade  -> PENDING (caller's own leg accepted when caller is a holder)
  accept_trade   -> leg accepted (escrowed, or pre-authorization checked)
  approve_trade  -> controller vote recorded
  execute_trade  -> EXECUTED (both legs accepted and approved, dates met)
  force_trade    -> FORCED (at most one leg accepted, no controllers)
  cancel_trade   -> CANCELLED (escrowed legs returned)

Auto-execution: after an acceptance or approval, a trade with no executer
executes in the same call once both legs are accepted and approved, the
settlement date is reached, the trade is not expired and every SWAP leg is
still covered. Otherwise it simply stays PENDING.

Every public call is one ledger.atomic() scope: any failure, including
inside nested hook calls and auto-execution, restores all state (trades,
registries, events, token balances) and re-raises.
================
"""

import copy
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Iterator, List, Optional, Tuple

from chains.ledger import Ledger, Stateful
from config import SettlementConfig
from core.constants import (
    ZERO_ADDRESS,
    ZERO_BYTES32,
    EventType,
    TokenStandard,
    TradeState,
    TradeType,
)
from core.exceptions import (
    AuthorizationError,
    ErrorCode,
    FundsError,
    SettlementError,
    StateError,
    TimingError,
    ValidationError,
)
from core.logging import get_logger, log_error, log_trade_event
from core.models import (
    SIDE_1,
    SIDE_2,
    SIDES,
    Asset,
    PartitionedAsset,
    Trade,
    TradeEvent,
    TradeLeg,
    TradeRequest,
)
from core.time import default_expiration, is_expired
from core.validators import normalize_address, optional_address, require_amount, require_bytes32
from settlement import intake
from settlement.access import AccessControl
from settlement.adapters import build_adapters
from settlement.codec import TradeAcceptance, TradeProposal
from settlement.pricing import PriceBook
from settlement.state_machine import require_pending, transition
from settlement.store import TradeStore

# Legs whose settlement amount can be repriced
DIVISIBLE_STANDARDS = frozenset(
    {TokenStandard.NATIVE, TokenStandard.FUNGIBLE, TokenStandard.PARTITIONED}
)


class SettlementEngine(Stateful):
    """
    DvP engine deployed on a Ledger.

    Every state-changing method takes the calling address first.

    Example:
        engine = SettlementEngine(ledger, deployer=owner)
        index = engine.request_trade(alice, TradeRequest(...))
        engine.accept_trade(bob, index)
    """

    __state_fields__ = ("_store", "_access", "_pricing", "_events")

    accepts_native = True

    def __init__(
        self,
        ledger: Ledger,
        deployer: str,
        owned: Optional[bool] = None,
        config: Optional[SettlementConfig] = None,
    ):
        self.config = config or SettlementConfig()
        if owned is None:
            owned = self.config.owned
        self._store = TradeStore()
        self._access = AccessControl(normalize_address(deployer, "deployer"), owned)
        self._pricing = PriceBook()
        self._events: List[TradeEvent] = []
        self.address: str = ""
        self.ledger = ledger
        ledger.register_contract(self)
        self._adapters = build_adapters(ledger, self.address)
        self.logger = get_logger("dvp.engine", engine=self.address)

    # =========================================================================
    # CALL SCOPE
    # =========================================================================

    @contextmanager
    def _call(self, operation: str, caller: str, value: int = 0, **context: Any) -> Iterator[str]:
        """Atomic scope for one public call; attached native value moves in first."""
        try:
            with self.ledger.atomic():
                caller = normalize_address(caller, "caller")
                if value:
                    require_amount(value, "value")
                    self.ledger.transfer_native(caller, self.address, value)
                yield caller
        except SettlementError as e:
            log_error(
                self.logger,
                e.code.value,
                f"{operation} rolled back: {e.message}",
                operation=operation,
                caller=caller,
                **context,
            )
            raise

    def _emit(self, event: EventType, trade: Optional[Trade] = None, caller: Optional[str] = None, **data: Any) -> None:
        record = TradeEvent(
            event=event,
            timestamp=self.ledger.now,
            trade_index=trade.index if trade else None,
            data={"caller": caller, **data},
        )
        self._events.append(record)
        if trade is not None:
            log_trade_event(self.logger, trade.index, event.value, trade.state.value, caller, **data)
        else:
            self.logger.info(event.value, extra={"context": {"caller": caller, **data}})

    # =========================================================================
    # TRADE LIFECYCLE
    # =========================================================================

    def request_trade(
        self,
        caller: str,
        request: TradeRequest,
        preimage: bytes = ZERO_BYTES32,
        value: int = 0,
    ) -> int:
        """
        Create a PENDING trade.

        When the caller is holder1 (or holder2) their leg is accepted in
        the same call; a NATIVE leg must then come with exactly its amount
        as value.

        Returns:
            The new trade index (1-based)
        """
        with self._call("request_trade", caller, value) as caller:
            trade = self._create_trade(request, preimage)
            self._emit(EventType.REQUESTED, trade, caller)

            side = self._requester_side(trade, caller)
            if side is None:
                self._require_no_value(value)
            else:
                self._accept_leg(trade, side, caller, value)
                self._try_auto_execute(trade, caller)
            return trade.index

    def accept_trade(
        self,
        caller: str,
        trade_index: int,
        preimage: bytes = ZERO_BYTES32,
        value: int = 0,
    ) -> None:
        """Accept the caller's unaccepted leg; binds holder2 on an open trade."""
        with self._call("accept_trade", caller, value, trade_index=trade_index) as caller:
            self._check_preimage(preimage)
            trade = self._pending_trade(trade_index)
            self._require_not_expired(trade)
            side = self._accepting_side(trade, caller)
            self._accept_leg(trade, side, caller, value)
            self._try_auto_execute(trade, caller)

    def approve_trade(self, caller: str, trade_index: int, approved: bool) -> None:
        """Record a controller vote on every leg whose token the caller controls."""
        with self._call("approve_trade", caller, trade_index=trade_index) as caller:
            trade = self._pending_trade(trade_index)
            sides = [s for s in SIDES if self._access.is_controller(trade.leg(s).token, caller)]
            if not sides:
                raise AuthorizationError(
                    f"Caller is not a controller of either token of trade {trade_index}",
                    ErrorCode.NOT_CONTROLLER,
                    {"caller": caller, "trade_index": trade_index},
                )
            for side in sides:
                trade.leg(side).votes[caller] = bool(approved)
            self._refresh_approvals(trade)
            self._emit(
                EventType.APPROVED if approved else EventType.DISAPPROVED,
                trade,
                caller,
                sides=sides,
            )
            if approved:
                self._try_auto_execute(trade, caller)

    def execute_trade(self, caller: str, trade_index: int) -> None:
        """Settle a fully accepted and approved trade."""
        with self._call("execute_trade", caller, trade_index=trade_index) as caller:
            trade = self._pending_trade(trade_index)
            if trade.executer is not None:
                if caller != trade.executer:
                    raise AuthorizationError(
                        f"Only the executer may execute trade {trade_index}",
                        ErrorCode.NOT_EXECUTER,
                        {"caller": caller, "executer": trade.executer},
                    )
            elif not trade.is_holder(caller):
                raise AuthorizationError(
                    f"Only a holder may execute trade {trade_index}",
                    ErrorCode.NOT_A_HOLDER,
                    {"caller": caller},
                )
            self._execute(trade, caller)

    def force_trade(self, caller: str, trade_index: int) -> None:
        """
        Void a trade that at most one side accepted.

        The accepted leg, if escrowed, goes back to its own holder; nothing
        reaches the counterparty.
        """
        with self._call("force_trade", caller, trade_index=trade_index) as caller:
            trade = self._pending_trade(trade_index)
            if trade.both_accepted:
                raise StateError(
                    f"Trade {trade_index} is accepted by both sides; execute it instead",
                    ErrorCode.BOTH_SIDES_ACCEPTED,
                    {"trade_index": trade_index},
                )
            controlled = [
                leg.token for leg in (trade.leg1, trade.leg2) if self._access.controllers(leg.token)
            ]
            if controlled:
                raise StateError(
                    f"Trade {trade_index} involves controlled tokens and cannot be forced",
                    ErrorCode.FORCE_BLOCKED_BY_CONTROLLERS,
                    {"tokens": controlled},
                )
            self._require_not_expired(trade)
            self._require_force_standing(trade, caller)

            for side in SIDES:
                if trade.leg(side).accepted:
                    self._refund(trade, side)
            transition(trade, TradeState.FORCED, self.ledger.now, reason="forced", metadata={"caller": caller})
            self._emit(EventType.FORCED, trade, caller)

    def cancel_trade(self, caller: str, trade_index: int) -> None:
        """
        Cancel a PENDING trade and return escrowed legs.

        The executer may always cancel. A holder may cancel freely while no
        leg is accepted, and only after expiration once one is.
        """
        with self._call("cancel_trade", caller, trade_index=trade_index) as caller:
            trade = self._pending_trade(trade_index)
            if trade.executer is not None and caller == trade.executer:
                pass
            elif trade.is_holder(caller):
                any_accepted = trade.leg1.accepted or trade.leg2.accepted
                if any_accepted and not is_expired(self.ledger.now, trade.expiration_date):
                    raise TimingError(
                        f"Trade {trade_index} has an accepted leg and is not expired",
                        ErrorCode.TRADE_NOT_EXPIRED,
                        {"expiration_date": trade.expiration_date, "now": self.ledger.now},
                    )
            else:
                raise AuthorizationError(
                    f"Caller has no standing to cancel trade {trade_index}",
                    ErrorCode.NO_STANDING,
                    {"caller": caller},
                )

            for side in SIDES:
                if trade.leg(side).accepted:
                    self._refund(trade, side)
            transition(trade, TradeState.CANCELLED, self.ledger.now, reason="cancelled", metadata={"caller": caller})
            self._emit(EventType.CANCELLED, trade, caller)

    # =========================================================================
    # PUSH INTAKE
    # =========================================================================

    def can_receive(
        self,
        partition: bytes,
        operator: str,
        holder: str,
        to: str,
        value: int,
        data: bytes,
        operator_data: bytes,
    ) -> bool:
        return intake.can_receive(self, partition, operator, holder, to, value, data, operator_data)

    def tokens_received(
        self,
        token: str,
        partition: bytes,
        operator: str,
        holder: str,
        to: str,
        value: int,
        data: bytes,
        operator_data: bytes,
    ) -> None:
        """Hook called by a partitioned token transferring into the engine."""
        if operator == self.address:
            return
        with self._call("tokens_received", token) as token:
            instruction = intake.parse_instruction(self, token, to, data, operator_data)
            holder = normalize_address(holder, "from")
            asset = PartitionedAsset(token, bytes(partition))
            if isinstance(instruction, TradeProposal):
                self._propose_from_push(holder, asset, value, instruction)
            else:
                self._accept_from_push(holder, asset, value, instruction)

    def _propose_from_push(
        self, holder: str, asset: PartitionedAsset, value: int, proposal: TradeProposal
    ) -> None:
        request = TradeRequest(
            holder1=holder,
            holder2=proposal.recipient,
            asset1=asset,
            amount1=value,
            asset2=proposal.asset,
            amount2=proposal.amount,
            trade_type1=TradeType.ESCROW,
            trade_type2=proposal.trade_type,
            executer=proposal.executer,
            expiration_date=proposal.expiration_date,
            settlement_date=proposal.settlement_date,
        )
        trade = self._create_trade(request, ZERO_BYTES32)
        self._emit(EventType.REQUESTED, trade, holder, via="push")
        # tokens already in custody
        trade.leg1.accepted = True
        self._emit(EventType.ACCEPTED, trade, holder, side=SIDE_1, via="push")
        self._try_auto_execute(trade, holder)

    def _accept_from_push(
        self, holder: str, asset: PartitionedAsset, value: int, acceptance: TradeAcceptance
    ) -> None:
        trade = self._pending_trade(acceptance.trade_index)
        self._require_not_expired(trade)
        side = self._accepting_side(trade, holder)
        leg = trade.leg(side)
        if leg.asset != asset or not leg.is_escrow:
            raise ValidationError(
                f"Pushed tokens do not match leg {side} of trade {trade.index}",
                ErrorCode.ASSET_MISMATCH,
                {"expected": leg.asset.to_dict(), "received": asset.to_dict()},
            )
        if value != leg.amount:
            raise FundsError(
                f"Pushed amount {value} does not match leg amount {leg.amount}",
                ErrorCode.VALUE_MISMATCH,
                {"expected": leg.amount, "received": value},
            )
        leg.accepted = True
        self._emit(EventType.ACCEPTED, trade, holder, side=side, via="push")
        self._try_auto_execute(trade, holder)

    # =========================================================================
    # ADMIN
    # =========================================================================

    def set_trade_executers(self, caller: str, executers: List[str]) -> None:
        with self._call("set_trade_executers", caller) as caller:
            addresses = [normalize_address(e, "executer") for e in executers]
            self._access.set_executers(caller, addresses)
            self._emit(EventType.EXECUTERS_SET, caller=caller, executers=addresses)

    def renounce_ownership(self, caller: str) -> None:
        with self._call("renounce_ownership", caller) as caller:
            self._access.renounce_ownership(caller)
            self._emit(EventType.OWNERSHIP_RENOUNCED, caller=caller)

    def set_token_controllers(self, caller: str, token: str, controllers: List[str]) -> None:
        with self._call("set_token_controllers", caller, token=token) as caller:
            token = normalize_address(token, "token")
            addresses = [normalize_address(c, "controller") for c in controllers]
            self._access.set_controllers(caller, token, self._token_owner(token), addresses)
            self._emit(EventType.CONTROLLERS_SET, caller=caller, token=token, controllers=addresses)

    def set_price_oracles(self, caller: str, token: str, oracles: List[str]) -> None:
        with self._call("set_price_oracles", caller, token=token) as caller:
            token = normalize_address(token, "token")
            addresses = [normalize_address(o, "oracle") for o in oracles]
            self._access.set_oracles(caller, token, self._token_owner(token), addresses)
            self._emit(EventType.ORACLES_SET, caller=caller, token=token, oracles=addresses)

    def set_price_ownership(self, caller: str, token1: str, token2: str, owned: bool) -> None:
        """Claim (or drop) pricing of the pair for token1's oracles."""
        with self._call("set_price_ownership", caller, token1=token1, token2=token2) as caller:
            token1 = normalize_address(token1, "token1")
            token2 = normalize_address(token2, "token2")
            self._access.require_oracle(token1, caller)
            self._pricing.set_ownership(token1, token2, bool(owned))
            self._emit(
                EventType.PRICE_OWNERSHIP_SET,
                caller=caller,
                token1=token1,
                token2=token2,
                owned=bool(owned),
            )

    def set_token_price(
        self,
        caller: str,
        token1: str,
        token2: str,
        partition1: bytes,
        partition2: bytes,
        price: int,
    ) -> None:
        """Set a multiplier; only an oracle of the pair's single owner token may."""
        with self._call("set_token_price", caller, token1=token1, token2=token2) as caller:
            key = self._price_key(token1, token2, partition1, partition2)
            owner = self._pricing.owner_token(key[0], key[1])
            self._access.require_oracle(owner, caller)
            self._pricing.set_price(*key, price)
            self._emit(
                EventType.PRICE_SET,
                caller=caller,
                token1=key[0],
                token2=key[1],
                partition1="0x" + key[2].hex(),
                partition2="0x" + key[3].hex(),
                price=price,
            )

    def clear_token_price(
        self,
        caller: str,
        token1: str,
        token2: str,
        partition1: bytes,
        partition2: bytes,
    ) -> None:
        with self._call("clear_token_price", caller, token1=token1, token2=token2) as caller:
            key = self._price_key(token1, token2, partition1, partition2)
            owner = self._pricing.owner_token(key[0], key[1])
            self._access.require_oracle(owner, caller)
            self._pricing.clear_price(*key)
            self._emit(
                EventType.PRICE_SET,
                caller=caller,
                token1=key[0],
                token2=key[1],
                partition1="0x" + key[2].hex(),
                partition2="0x" + key[3].hex(),
                price=0,
            )

    def set_variable_price_start_date(self, caller: str, token: str, start_date: int) -> None:
        with self._call("set_variable_price_start_date", caller, token=token) as caller:
            token = normalize_address(token, "token")
            self._access.require_oracle(token, caller)
            self._pricing.set_start_date(
                token,
                start_date,
                self.ledger.now,
                self.config.variable_price_min_delay_days,
            )
            self._emit(EventType.PRICE_START_DATE_SET, caller=caller, token=token, start_date=start_date)

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def owner(self) -> Optional[str]:
        return self._access.owner

    @property
    def owned(self) -> bool:
        return self._access.owned

    def trade_count(self) -> int:
        return self._store.count

    def get_trade(self, trade_index: int) -> Trade:
        """Copy of a trade record."""
        return copy.deepcopy(self._store.get(trade_index))

    def get_trades(self) -> List[Trade]:
        return [copy.deepcopy(t) for t in self._store]

    def get_trade_acceptance_status(self, trade_index: int) -> Tuple[bool, bool]:
        trade = self._store.get(trade_index)
        return trade.leg1.accepted, trade.leg2.accepted

    def get_trade_approval_status(self, trade_index: int) -> Tuple[bool, bool]:
        trade = self._store.get(trade_index)
        return self._leg_approved(trade.leg1), self._leg_approved(trade.leg2)

    def get_price(self, trade_index: int) -> int:
        """Amount of the second leg due at current ledger time."""
        return self._price(self._store.get(trade_index))

    def trade_executers(self) -> List[str]:
        return self._access.executers

    def token_controllers(self, token: str) -> List[str]:
        return self._access.controllers(normalize_address(token, "token"))

    def price_oracles(self, token: str) -> List[str]:
        return self._access.oracles(normalize_address(token, "token"))

    def price_ownership(self, token1: str, token2: str) -> bool:
        return self._pricing.owns(normalize_address(token1, "token1"), normalize_address(token2, "token2"))

    def token_price(self, token1: str, token2: str, partition1: bytes, partition2: bytes) -> int:
        return self._pricing.price(*self._price_key(token1, token2, partition1, partition2))

    def variable_price_start_date(self, token: str) -> int:
        return self._pricing.start_date(normalize_address(token, "token"))

    def events(self, trade_index: Optional[int] = None) -> List[TradeEvent]:
        if trade_index is None:
            return list(self._events)
        return [e for e in self._events if e.trade_index == trade_index]

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _create_trade(self, request: TradeRequest, preimage: bytes) -> Trade:
        now = self.ledger.now
        holder1 = optional_address(request.holder1, "holder1")
        if holder1 is None:
            raise ValidationError("holder1 is required", ErrorCode.MISSING_HOLDER)
        holder2 = optional_address(request.holder2, "holder2")
        executer = optional_address(request.executer, "executer")
        if not self._access.is_executer_allowed(executer):
            raise ValidationError(
                f"Executer {executer or '(none)'} is not in the allow-list",
                ErrorCode.EXECUTER_NOT_ALLOWED,
                {"executer": executer},
            )

        leg1 = self._make_leg(request.asset1, request.amount1, request.trade_type1, "leg1")
        leg2 = self._make_leg(request.asset2, request.amount2, request.trade_type2, "leg2")
        if leg1.is_offchain and leg2.is_offchain:
            raise ValidationError("Both legs are off-chain", ErrorCode.BOTH_SIDES_OFFCHAIN)

        if request.expiration_date:
            if request.expiration_date <= now:
                raise ValidationError(
                    f"Expiration date {request.expiration_date} is not in the future",
                    ErrorCode.INVALID_DATES,
                    {"expiration_date": request.expiration_date, "now": now},
                )
            expiration = request.expiration_date
        else:
            expiration = default_expiration(now, self.config.default_expiration_days)
        if request.settlement_date and request.settlement_date > expiration:
            raise ValidationError(
                "Settlement date is after the expiration date",
                ErrorCode.INVALID_DATES,
                {"settlement_date": request.settlement_date, "expiration_date": expiration},
            )

        trade = Trade(
            index=self._store.next_index(),
            holder1=holder1,
            holder2=holder2,
            executer=executer,
            expiration_date=expiration,
            settlement_date=request.settlement_date or 0,
            leg1=leg1,
            leg2=leg2,
            created_at=now,
            preimage=self._check_preimage(preimage),
        )
        self._refresh_approvals(trade)
        return self._store.add(trade)

    def _make_leg(self, asset: Asset, amount: int, trade_type: Any, field_name: str) -> TradeLeg:
        try:
            trade_type = TradeType(trade_type)
        except ValueError:
            raise ValidationError(
                f"{field_name}: unknown trade type {trade_type!r}",
                ErrorCode.UNSUPPORTED_TRADE_TYPE,
            ) from None
        if trade_type == TradeType.HOLD:
            raise ValidationError(
                f"{field_name}: HOLD trades are not supported",
                ErrorCode.UNSUPPORTED_TRADE_TYPE,
            )
        require_amount(amount, f"{field_name}.amount")
        if asset.standard == TokenStandard.NATIVE and trade_type != TradeType.ESCROW:
            raise ValidationError(
                f"{field_name}: native currency requires escrow mode",
                ErrorCode.NATIVE_REQUIRES_ESCROW,
            )
        if asset.standard == TokenStandard.NON_FUNGIBLE and amount > 1:
            raise ValidationError(
                f"{field_name}: non-fungible amount must be 0 or 1",
                ErrorCode.INVALID_AMOUNT,
                {"amount": amount},
            )
        if asset.address is not None:
            address = normalize_address(asset.address, f"{field_name}.token")
            if not self.ledger.is_contract(address):
                raise ValidationError(
                    f"{field_name}: no token contract at {address}",
                    ErrorCode.INVALID_ASSET,
                    {"address": address},
                )
            asset = replace(asset, address=address)
        return TradeLeg(asset=asset, amount=amount, trade_type=trade_type)

    @staticmethod
    def _check_preimage(preimage: bytes) -> bytes:
        if not isinstance(preimage, (bytes, bytearray)) or len(preimage) != 32:
            raise ValidationError("Preimage must be 32 bytes", ErrorCode.INVALID_PREIMAGE)
        return bytes(preimage)

    def _pending_trade(self, trade_index: int) -> Trade:
        trade = self._store.get(trade_index)
        require_pending(trade)
        return trade

    def _require_not_expired(self, trade: Trade) -> None:
        if is_expired(self.ledger.now, trade.expiration_date):
            raise TimingError(
                f"Trade {trade.index} expired at {trade.expiration_date}",
                ErrorCode.TRADE_EXPIRED,
                {"expiration_date": trade.expiration_date, "now": self.ledger.now},
            )

    @staticmethod
    def _requester_side(trade: Trade, caller: str) -> Optional[int]:
        if caller == trade.holder1:
            return SIDE_1
        if caller == trade.holder2:
            return SIDE_2
        return None

    @staticmethod
    def _accepting_side(trade: Trade, caller: str) -> int:
        """Leg the caller accepts; an open trade binds the caller as holder2."""
        if caller == trade.holder1 and not trade.leg1.accepted:
            return SIDE_1
        if trade.holder2 is None and caller != trade.holder1:
            trade.holder2 = caller
            return SIDE_2
        if caller == trade.holder2 and not trade.leg2.accepted:
            return SIDE_2
        if trade.is_holder(caller):
            raise StateError(
                f"Caller already accepted trade {trade.index}",
                ErrorCode.ALREADY_ACCEPTED,
                {"caller": caller},
            )
        raise AuthorizationError(
            f"Caller is not a holder of trade {trade.index}",
            ErrorCode.NOT_A_HOLDER,
            {"caller": caller},
        )

    @staticmethod
    def _require_no_value(value: int) -> None:
        if value:
            raise FundsError(
                f"Unexpected native value {value}",
                ErrorCode.VALUE_MISMATCH,
                {"value": value},
            )

    def _accept_leg(self, trade: Trade, side: int, caller: str, value: int) -> None:
        leg = trade.leg(side)
        if leg.standard == TokenStandard.NATIVE:
            if value != leg.amount:
                raise FundsError(
                    f"Native value {value} does not match leg amount {leg.amount}",
                    ErrorCode.VALUE_MISMATCH,
                    {"expected": leg.amount, "received": value},
                )
        else:
            self._require_no_value(value)

        adapter = self._adapters[leg.standard]
        if leg.is_escrow:
            adapter.escrow(caller, leg.asset, leg.amount)
        else:
            adapter.require_sufficient(caller, leg.asset, leg.amount)
        leg.accepted = True
        self._emit(EventType.ACCEPTED, trade, caller, side=side)

    def _leg_approved(self, leg: TradeLeg) -> bool:
        return all(leg.votes.get(c, False) for c in self._access.controllers(leg.token))

    def _refresh_approvals(self, trade: Trade) -> None:
        for leg in (trade.leg1, trade.leg2):
            leg.approved = self._leg_approved(leg)

    def _price(self, trade: Trade) -> int:
        leg1, leg2 = trade.leg1, trade.leg2
        return self._pricing.effective_amount(
            leg1.token or ZERO_ADDRESS,
            leg2.token or ZERO_ADDRESS,
            leg1.asset.token_id_bytes,
            leg2.asset.token_id_bytes,
            leg1.amount,
            leg2.amount,
            self.ledger.now,
        )

    def _settlement_amount(self, trade: Trade) -> int:
        """Amount of leg 2 delivered to holder1 at execution."""
        leg2 = trade.leg2
        if leg2.standard not in DIVISIBLE_STANDARDS:
            return leg2.amount
        price = self._price(trade)
        if price > leg2.amount:
            raise FundsError(
                f"Price {price} exceeds the amount of leg 2 ({leg2.amount})",
                ErrorCode.PRICE_ABOVE_NOMINAL,
                {"price": price, "amount": leg2.amount},
            )
        return price

    def _try_auto_execute(self, trade: Trade, caller: str) -> bool:
        if trade.executer is not None or not trade.both_accepted:
            return False
        self._refresh_approvals(trade)
        if not trade.both_approved:
            return False
        now = self.ledger.now
        if is_expired(now, trade.expiration_date) or now < trade.settlement_date:
            return False

        amounts = {SIDE_1: trade.leg1.amount, SIDE_2: self._settlement_amount(trade)}
        for side in SIDES:
            leg = trade.leg(side)
            if leg.is_escrow:
                continue
            if not self._adapters[leg.standard].is_sufficient(trade.holder(side), leg.asset, amounts[side]):
                self.logger.info(
                    f"Trade {trade.index} | auto-execution deferred",
                    extra={"context": {"trade_index": trade.index, "side": side}},
                )
                return False

        self._execute(trade, caller)
        return True

    def _execute(self, trade: Trade, caller: str) -> None:
        if not trade.both_accepted:
            raise StateError(
                f"Trade {trade.index} is not accepted by both sides",
                ErrorCode.NOT_FULLY_ACCEPTED,
                {"accepted": [trade.leg1.accepted, trade.leg2.accepted]},
            )
        self._refresh_approvals(trade)
        if not trade.both_approved:
            raise StateError(
                f"Trade {trade.index} is missing controller approval",
                ErrorCode.NOT_APPROVED,
                {"approved": [trade.leg1.approved, trade.leg2.approved]},
            )
        now = self.ledger.now
        self._require_not_expired(trade)
        if now < trade.settlement_date:
            raise TimingError(
                f"Trade {trade.index} settles at {trade.settlement_date}",
                ErrorCode.SETTLEMENT_DATE_NOT_REACHED,
                {"settlement_date": trade.settlement_date, "now": now},
            )

        amount2 = self._settlement_amount(trade)
        self._deliver(trade, SIDE_1, trade.leg1.amount)
        self._deliver(trade, SIDE_2, amount2)
        remainder = trade.leg2.amount - amount2
        if remainder and trade.leg2.is_escrow:
            self._adapters[trade.leg2.standard].release(trade.holder2, trade.leg2.asset, remainder)

        transition(trade, TradeState.EXECUTED, now, reason="executed", metadata={"caller": caller})
        self._emit(EventType.EXECUTED, trade, caller, amount1=trade.leg1.amount, amount2=amount2)

    def _deliver(self, trade: Trade, side: int, amount: int) -> None:
        leg = trade.leg(side)
        adapter = self._adapters[leg.standard]
        if leg.is_escrow:
            adapter.release(trade.counterparty(side), leg.asset, amount)
        else:
            adapter.direct_transfer(trade.holder(side), trade.counterparty(side), leg.asset, amount)

    def _refund(self, trade: Trade, side: int) -> None:
        leg = trade.leg(side)
        if leg.is_escrow:
            self._adapters[leg.standard].release(trade.holder(side), leg.asset, leg.amount)

    def _require_force_standing(self, trade: Trade, caller: str) -> None:
        accepted = [s for s in SIDES if trade.leg(s).accepted]
        if not accepted:
            allowed = {trade.executer, trade.holder1, trade.holder2}
        elif trade.executer is not None:
            allowed = {trade.executer}
        else:
            allowed = {trade.holder(accepted[0])}
        allowed.discard(None)
        if caller not in allowed:
            raise AuthorizationError(
                f"Caller has no standing to force trade {trade.index}",
                ErrorCode.NO_STANDING,
                {"caller": caller},
            )

    def _token_owner(self, token: str) -> Optional[str]:
        contract = self.ledger.get_contract(token)
        return getattr(contract, "owner", None)

    @staticmethod
    def _price_key(
        token1: str, token2: str, partition1: bytes, partition2: bytes
    ) -> Tuple[str, str, bytes, bytes]:
        return (
            normalize_address(token1, "token1"),
            normalize_address(token2, "token2"),
            require_bytes32(partition1, "partition1"),
            require_bytes32(partition2, "partition2"),
        )
