"""
chains/ledger.py - In-memory ledger with atomic call scopes.

Provides:
- Native currency balances
- Contract registry (address -> contract object)
- atomic(): all-or-nothing execution of a call, including nested calls

ATOMICITY CONTRACT:
- Every registered participant declares its mutable attributes in
  __state_fields__. A scope snapshots them on entry and restores them if
  an exception leaves the scope, then re-raises it unchanged.
- Scopes nest as savepoints: an inner failure that the outer code
  handles rolls back only the inner work; an outer failure rolls back
  everything, nested work included.
- Scopes are serialised by a re-entrant lock, so concurrent callers see
  whole calls only.
- The clock is not part of the snapshot.
"""

import copy
import hashlib
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from chains.block import LedgerClock
from core.exceptions import ErrorCode, FundsError, SettlementError, ValidationError
from core.logging import get_logger
from core.validators import normalize_address

logger = get_logger(__name__)


class Stateful:
    """Mixin for objects whose state is rolled back with the ledger."""

    __state_fields__: tuple = ()

    def snapshot(self) -> Dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self.__state_fields__}

    def restore(self, snapshot: Dict[str, Any]) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)


class Ledger(Stateful):
    """
    The chain the settlement engine runs on.

    Holds native balances and the contract registry, owns the clock, and
    provides atomic call scopes.
    """

    __state_fields__ = ("_native",)

    def __init__(self, timestamp: int | None = None):
        self.clock = LedgerClock(timestamp)
        self._native: Dict[str, int] = {}
        self._contracts: Dict[str, Any] = {}
        self._participants: List[Stateful] = [self]
        self._lock = threading.RLock()
        self._depth = 0
        self._nonce = 0

    # =========================================================================
    # CLOCK
    # =========================================================================

    @property
    def now(self) -> int:
        return self.clock.now

    def advance(self, seconds: int) -> None:
        self.clock.advance(seconds)

    def set_time(self, timestamp: int) -> None:
        self.clock.set_time(timestamp)

    # =========================================================================
    # ADDRESSES AND CONTRACTS
    # =========================================================================

    def new_address(self, label: str = "") -> str:
        """Derive a fresh deterministic address."""
        self._nonce += 1
        digest = hashlib.sha256(f"{label}:{self._nonce}".encode()).hexdigest()
        return "0x" + digest[:40]

    def register_contract(self, contract: Any, address: Optional[str] = None) -> str:
        """
        Register a contract and include it in atomic snapshots.

        Sets contract.address and contract.ledger.
        """
        address = normalize_address(address) if address else self.new_address(type(contract).__name__)
        if address in self._contracts:
            raise ValidationError(
                f"Address already holds a contract: {address}",
                ErrorCode.INVALID_ADDRESS,
            )
        contract.address = address
        contract.ledger = self
        self._contracts[address] = contract
        if isinstance(contract, Stateful):
            self._participants.append(contract)
        logger.debug(
            f"Registered {type(contract).__name__}",
            extra={"context": {"address": address}},
        )
        return address

    def get_contract(self, address: str) -> Optional[Any]:
        return self._contracts.get(address)

    def is_contract(self, address: str) -> bool:
        return address in self._contracts

    # =========================================================================
    # ATOMIC SCOPES
    # =========================================================================

    @property
    def in_call(self) -> bool:
        return self._depth > 0

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        Run a block all-or-nothing.

        Example:
            with ledger.atomic():
                token.transfer_from(engine, alice, engine, 100)
                engine_state_change()
        """
        with self._lock:
            if self._depth == 0:
                self.clock.mine()
            snapshot = [(p, p.snapshot()) for p in self._participants]
            self._depth += 1
            try:
                yield
            except BaseException:
                for participant, state in snapshot:
                    participant.restore(state)
                raise
            finally:
                self._depth -= 1

    # =========================================================================
    # NATIVE CURRENCY
    # =========================================================================

    def native_balance(self, address: str) -> int:
        return self._native.get(address, 0)

    def mint_native(self, address: str, amount: int) -> None:
        address = normalize_address(address)
        self._native[address] = self._native.get(address, 0) + amount

    def transfer_native(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move native currency.

        A contract recipient may refuse the payment (accepts_native = False,
        or an on_native_received hook that raises); the refusal fails this
        transfer with TRANSFER_REJECTED.
        """
        if amount == 0:
            return
        balance = self._native.get(sender, 0)
        if balance < amount:
            raise FundsError(
                f"Insufficient native balance: {balance} < {amount}",
                ErrorCode.INSUFFICIENT_BALANCE,
                {"holder": sender, "balance": balance, "required": amount},
            )
        with self.atomic():
            self._native[sender] = balance - amount
            self._native[recipient] = self._native.get(recipient, 0) + amount
            contract = self._contracts.get(recipient)
            if contract is None:
                return
            if not getattr(contract, "accepts_native", True):
                raise FundsError(
                    f"Recipient {recipient} rejects native transfers",
                    ErrorCode.TRANSFER_REJECTED,
                    {"recipient": recipient, "amount": amount},
                )
            hook = getattr(contract, "on_native_received", None)
            if hook is not None:
                try:
                    hook(sender, amount)
                except SettlementError as e:
                    raise FundsError(
                        f"Recipient {recipient} rejected native transfer: {e.message}",
                        ErrorCode.TRANSFER_REJECTED,
                        {"recipient": recipient, "amount": amount},
                    ) from e
