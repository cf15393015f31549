"""
settlement/scenario.py - Scenario replay.

Replays a YAML scenario against a fresh in-memory ledger and engine.
Accounts, tokens and partitions are referred to by name.

Scenario format:

    start_time: 1700000000
    engine: {deployer: owner, owned: false}
    accounts: [owner, alice, bob]
    native: {alice: 1000}
    tokens:
      - {name: SEC, type: fungible, owner: owner}
    steps:
      - mint: {token: SEC, to: alice, amount: 100}
      - approve: {token: SEC, holder: alice, amount: 100}
      - request:
          caller: alice
          holder1: alice
          holder2: bob
          leg1: {standard: FUNGIBLE, token: SEC, amount: 100, type: SWAP}
          leg2: {standard: FUNGIBLE, token: CASH, amount: 400, type: SWAP}
      - accept: {caller: bob, trade: 1}
      - advance: {days: 8}
      - cancel: {caller: alice, trade: 1, expect_error: TimingError}

A step may name the error it expects; any other outcome fails the replay.
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from chains.ledger import Ledger
from chains.tokens import FungibleToken, NonFungibleToken, PartitionedToken
from config import SettlementConfig
from core.constants import ALL_PARTITIONS, TradeType
from core.exceptions import ErrorCode, SettlementError, ValidationError
from core.logging import get_logger
from core.models import TradeRequest, make_asset
from core.time import days
from settlement.codec import encode_trade_acceptance, encode_trade_proposal
from settlement.engine import SettlementEngine

logger = get_logger(__name__)

TOKEN_TYPES = {
    "fungible": FungibleToken,
    "non_fungible": NonFungibleToken,
    "partitioned": PartitionedToken,
}

DEFAULT_OPERATOR_DATA = b"\x10" + bytes(31)


def partition_id(name: Any) -> bytes:
    """Partition name -> 32 bytes ('reserved' is left-aligned ASCII, '*' is all partitions)."""
    if isinstance(name, (bytes, bytearray)):
        return bytes(name)
    if name in (None, "*", "ALL"):
        return ALL_PARTITIONS
    text = str(name)
    if text.startswith("0x") and len(text) == 66:
        return bytes.fromhex(text[2:])
    raw = text.encode()
    if len(raw) > 32:
        raise ValidationError(f"Partition name too long: {text}", ErrorCode.INVALID_ASSET)
    return raw.ljust(32, b"\x00")


class ScenarioError(Exception):
    """A step did not behave as the scenario expected."""


class ScenarioRunner:
    """Replays scenario steps and collects the outcome."""

    def __init__(self, scenario: Dict[str, Any], config: Optional[SettlementConfig] = None):
        self.scenario = scenario
        self.ledger = Ledger(timestamp=scenario.get("start_time"))
        self.accounts: Dict[str, str] = {}
        self.tokens: Dict[str, Any] = {}
        self.results: List[Dict[str, Any]] = []

        for name in scenario.get("accounts", []):
            self.accounts[name] = self.ledger.new_address(name)

        engine_spec = scenario.get("engine") or {}
        deployer = self.account(engine_spec.get("deployer", "owner"))
        self.engine = SettlementEngine(
            self.ledger,
            deployer,
            owned=engine_spec.get("owned"),
            config=config,
        )

        for name, amount in (scenario.get("native") or {}).items():
            self.ledger.mint_native(self.account(name), int(amount))

        for token in scenario.get("tokens", []):
            cls = TOKEN_TYPES[token.get("type", "fungible")]
            self.tokens[token["name"]] = cls(
                self.ledger,
                self.account(token.get("owner", "owner")),
                name=token["name"],
                symbol=token.get("symbol", token["name"]),
            )

        self._handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "mint": self._mint,
            "approve": self._approve,
            "request": self._request,
            "accept": self._accept,
            "approve_trade": self._approve_trade,
            "execute": self._execute,
            "force": self._force,
            "cancel": self._cancel,
            "push": self._push,
            "advance": self._advance,
            "set_executers": self._set_executers,
            "set_controllers": self._set_controllers,
            "set_oracles": self._set_oracles,
            "set_price_ownership": self._set_price_ownership,
            "set_price": self._set_price,
            "set_start_date": self._set_start_date,
            "renounce_ownership": self._renounce_ownership,
        }

    # =========================================================================
    # NAMES
    # =========================================================================

    def account(self, name: Optional[str]) -> Optional[str]:
        if name is None:
            return None
        if name == "engine":
            return self.engine.address
        if name in self.tokens:
            return self.tokens[name].address
        if name not in self.accounts:
            self.accounts[name] = self.ledger.new_address(name)
        return self.accounts[name]

    def token(self, name: str) -> Any:
        if name not in self.tokens:
            raise ScenarioError(f"Unknown token: {name}")
        return self.tokens[name]

    def _asset(self, leg: Dict[str, Any]):
        standard = str(leg.get("standard", "OFFCHAIN")).upper()
        address = self.token(leg["token"]).address if leg.get("token") else None
        token_id: Any = None
        if standard == "NON_FUNGIBLE":
            token_id = int(leg.get("token_id", 0))
        elif standard == "PARTITIONED":
            token_id = partition_id(leg.get("partition"))
        return make_asset(standard, address, token_id)

    @staticmethod
    def _trade_type(leg: Dict[str, Any]) -> TradeType:
        return TradeType[str(leg.get("type", "ESCROW")).upper()]

    # =========================================================================
    # RUN
    # =========================================================================

    def run(self) -> Dict[str, Any]:
        for number, step in enumerate(self.scenario.get("steps", []), start=1):
            self._run_step(number, step)
        return self.summary()

    def _run_step(self, number: int, step: Dict[str, Any]) -> None:
        if len(step) != 1:
            raise ScenarioError(f"Step {number}: expected exactly one action, got {list(step)}")
        (action, args), = step.items()
        args = dict(args or {})
        expected = args.pop("expect_error", None)
        handler = self._handlers.get(action)
        if handler is None:
            raise ScenarioError(f"Step {number}: unknown action {action!r}")

        result: Dict[str, Any] = {"step": number, "action": action}
        try:
            outcome = handler(args)
        except SettlementError as e:
            if expected not in (type(e).__name__, e.code.value):
                raise ScenarioError(f"Step {number} ({action}) failed: {e}") from e
            result["error"] = e.to_dict()
        else:
            if expected:
                raise ScenarioError(f"Step {number} ({action}) succeeded, expected {expected}")
            if outcome is not None:
                result["result"] = outcome
        logger.info(
            f"Step {number} | {action}",
            extra={"context": result},
        )
        self.results.append(result)

    def summary(self) -> Dict[str, Any]:
        return {
            "engine": self.engine.address,
            "time": self.ledger.now,
            "accounts": dict(self.accounts),
            "tokens": {name: t.address for name, t in self.tokens.items()},
            "steps": self.results,
            "trades": [t.to_dict() for t in self.engine.get_trades()],
            "events": [e.to_dict() for e in self.engine.events()],
        }

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def _mint(self, args):
        token = self.token(args["token"])
        to = self.account(args["to"])
        if isinstance(token, PartitionedToken):
            token.issue_by_partition(token.owner, partition_id(args.get("partition")), to, int(args["amount"]))
        elif isinstance(token, NonFungibleToken):
            token.mint(token.owner, to, int(args["token_id"]))
        else:
            token.mint(token.owner, to, int(args["amount"]))

    def _approve(self, args):
        token = self.token(args["token"])
        holder = self.account(args["holder"])
        spender = self.account(args.get("spender", "engine"))
        if isinstance(token, PartitionedToken):
            token.approve_by_partition(holder, partition_id(args.get("partition")), spender, int(args["amount"]))
        elif isinstance(token, NonFungibleToken):
            token.approve(holder, spender, int(args["token_id"]))
        else:
            token.approve(holder, spender, int(args["amount"]))

    def _request(self, args):
        leg1, leg2 = args["leg1"], args["leg2"]
        request = TradeRequest(
            holder1=self.account(args.get("holder1")),
            holder2=self.account(args.get("holder2")),
            asset1=self._asset(leg1),
            amount1=int(leg1.get("amount", 0)),
            asset2=self._asset(leg2),
            amount2=int(leg2.get("amount", 0)),
            trade_type1=self._trade_type(leg1),
            trade_type2=self._trade_type(leg2),
            executer=self.account(args.get("executer")),
            expiration_date=self._date(args.get("expiration")),
            settlement_date=self._date(args.get("settlement")),
        )
        return self.engine.request_trade(
            self.account(args["caller"]), request, value=int(args.get("value", 0))
        )

    def _accept(self, args):
        self.engine.accept_trade(
            self.account(args["caller"]), int(args["trade"]), value=int(args.get("value", 0))
        )

    def _approve_trade(self, args):
        self.engine.approve_trade(self.account(args["caller"]), int(args["trade"]), bool(args.get("approved", True)))

    def _execute(self, args):
        self.engine.execute_trade(self.account(args["caller"]), int(args["trade"]))

    def _force(self, args):
        self.engine.force_trade(self.account(args["caller"]), int(args["trade"]))

    def _cancel(self, args):
        self.engine.cancel_trade(self.account(args["caller"]), int(args["trade"]))

    def _push(self, args):
        token = self.token(args["token"])
        if "proposal" in args:
            proposal = args["proposal"]
            data = encode_trade_proposal(
                recipient=self.account(proposal.get("recipient")),
                executer=self.account(proposal.get("executer")),
                expiration_date=self._date(proposal.get("expiration")),
                settlement_date=self._date(proposal.get("settlement")),
                asset=self._asset(proposal),
                amount=int(proposal.get("amount", 0)),
                trade_type=self._trade_type(proposal),
            )
        else:
            data = encode_trade_acceptance(int(args["accept"]))
        holder = self.account(args["caller"])
        operator = self.account(args["operator"]) if args.get("operator") else holder
        token.operator_transfer_by_partition(
            operator,
            partition_id(args.get("partition")),
            holder,
            self.engine.address,
            int(args["amount"]),
            data,
            DEFAULT_OPERATOR_DATA,
        )

    def _advance(self, args):
        seconds = int(args.get("seconds", 0)) + days(int(args.get("days", 0)))
        self.ledger.advance(seconds)

    def _set_executers(self, args):
        self.engine.set_trade_executers(
            self.account(args["caller"]), [self.account(e) for e in args.get("executers", [])]
        )

    def _set_controllers(self, args):
        self.engine.set_token_controllers(
            self.account(args["caller"]),
            self.token(args["token"]).address,
            [self.account(c) for c in args.get("controllers", [])],
        )

    def _set_oracles(self, args):
        self.engine.set_price_oracles(
            self.account(args["caller"]),
            self.token(args["token"]).address,
            [self.account(o) for o in args.get("oracles", [])],
        )

    def _set_price_ownership(self, args):
        self.engine.set_price_ownership(
            self.account(args["caller"]),
            self.token(args["token1"]).address,
            self.token(args["token2"]).address,
            bool(args.get("owned", True)),
        )

    def _set_price(self, args):
        self.engine.set_token_price(
            self.account(args["caller"]),
            self.token(args["token1"]).address,
            self.token(args["token2"]).address,
            partition_id(args.get("partition1")),
            partition_id(args.get("partition2")),
            int(args["price"]),
        )

    def _set_start_date(self, args):
        start = self._date(args.get("date")) if "date" in args else self.ledger.now + days(int(args["days_from_now"]))
        self.engine.set_variable_price_start_date(
            self.account(args["caller"]), self.token(args["token"]).address, start
        )

    def _renounce_ownership(self, args):
        self.engine.renounce_ownership(self.account(args["caller"]))

    def _date(self, value: Any) -> int:
        """Absolute timestamp, or {days: n} / {seconds: n} relative to now."""
        if not value:
            return 0
        if isinstance(value, dict):
            return self.ledger.now + int(value.get("seconds", 0)) + days(int(value.get("days", 0)))
        return int(value)


def load_scenario(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}
