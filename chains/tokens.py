"""
chains/tokens.py - In-memory token contracts.

Reference implementations of the three token capability sets the
settlement engine consumes:

- FungibleToken:    balance / allowance / transfer / transfer_from
- NonFungibleToken: owner_of / approve / transfer_from
- PartitionedToken: per-partition balance / allowance / operator transfer,
                    with a synchronous tokens_received hook on contract
                    recipients

Every method that changes state takes the calling address first and runs
inside ledger.atomic(), so a failing hook rolls the transfer back.
"""

from typing import Any, Dict, Optional

from chains.ledger import Ledger, Stateful
from core.exceptions import AuthorizationError, ErrorCode, FundsError, ValidationError
from core.logging import get_logger
from core.validators import normalize_address, require_bytes32

logger = get_logger(__name__)


class TokenContract(Stateful):
    """Common deployment plumbing for token contracts."""

    def __init__(self, ledger: Ledger, owner: str, name: str = "", symbol: str = ""):
        self.owner = normalize_address(owner, "owner")
        self.name = name or type(self).__name__
        self.symbol = symbol
        self.address: str = ""
        self.ledger: Ledger = ledger
        ledger.register_contract(self)

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise AuthorizationError(
                f"{self.name}: caller is not the token owner",
                ErrorCode.NOT_OWNER,
                {"caller": caller, "token": self.address},
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name}@{self.address})"


class FungibleToken(TokenContract):
    """Balance/allowance token."""

    __state_fields__ = ("_balances", "_allowances")

    def __init__(self, ledger: Ledger, owner: str, name: str = "", symbol: str = ""):
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[str, Dict[str, int]] = {}
        super().__init__(ledger, owner, name, symbol)

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def allowance(self, holder: str, spender: str) -> int:
        return self._allowances.get(holder, {}).get(spender, 0)

    def mint(self, caller: str, to: str, amount: int) -> None:
        with self.ledger.atomic():
            self._only_owner(caller)
            to = normalize_address(to)
            self._balances[to] = self._balances.get(to, 0) + amount

    def approve(self, caller: str, spender: str, amount: int) -> None:
        with self.ledger.atomic():
            spender = normalize_address(spender, "spender")
            self._allowances.setdefault(caller, {})[spender] = amount

    def increase_allowance(self, caller: str, spender: str, added: int) -> None:
        self.approve(caller, spender, self.allowance(caller, spender) + added)

    def decrease_allowance(self, caller: str, spender: str, subtracted: int) -> None:
        current = self.allowance(caller, spender)
        if subtracted > current:
            raise FundsError(
                f"{self.name}: allowance below zero",
                ErrorCode.INSUFFICIENT_ALLOWANCE,
                {"allowance": current, "decrease": subtracted},
            )
        self.approve(caller, spender, current - subtracted)

    def transfer(self, caller: str, to: str, amount: int) -> None:
        with self.ledger.atomic():
            self._move(caller, normalize_address(to), amount)

    def transfer_from(self, caller: str, holder: str, to: str, amount: int) -> None:
        with self.ledger.atomic():
            allowed = self.allowance(holder, caller)
            if allowed < amount:
                raise FundsError(
                    f"{self.name}: insufficient allowance {allowed} < {amount}",
                    ErrorCode.INSUFFICIENT_ALLOWANCE,
                    {"holder": holder, "spender": caller, "allowance": allowed, "required": amount},
                )
            self._allowances.setdefault(holder, {})[caller] = allowed - amount
            self._move(holder, normalize_address(to), amount)

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        balance = self.balance_of(sender)
        if balance < amount:
            raise FundsError(
                f"{self.name}: insufficient balance {balance} < {amount}",
                ErrorCode.INSUFFICIENT_BALANCE,
                {"holder": sender, "balance": balance, "required": amount},
            )
        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount


class NonFungibleToken(TokenContract):
    """Single-owner token ids."""

    __state_fields__ = ("_owners", "_approvals", "_operators")

    def __init__(self, ledger: Ledger, owner: str, name: str = "", symbol: str = ""):
        self._owners: Dict[int, str] = {}
        self._approvals: Dict[int, str] = {}
        self._operators: Dict[str, Dict[str, bool]] = {}
        super().__init__(ledger, owner, name, symbol)

    def owner_of(self, token_id: int) -> Optional[str]:
        return self._owners.get(token_id)

    def get_approved(self, token_id: int) -> Optional[str]:
        return self._approvals.get(token_id)

    def is_approved_for_all(self, holder: str, operator: str) -> bool:
        return self._operators.get(holder, {}).get(operator, False)

    def mint(self, caller: str, to: str, token_id: int) -> None:
        with self.ledger.atomic():
            self._only_owner(caller)
            if token_id in self._owners:
                raise ValidationError(
                    f"{self.name}: token {token_id} already minted",
                    ErrorCode.INVALID_ASSET,
                )
            self._owners[token_id] = normalize_address(to)

    def approve(self, caller: str, spender: Optional[str], token_id: int) -> None:
        with self.ledger.atomic():
            holder = self.owner_of(token_id)
            if caller != holder and not self.is_approved_for_all(holder or "", caller):
                raise AuthorizationError(
                    f"{self.name}: caller cannot approve token {token_id}",
                    ErrorCode.UNAUTHORIZED_OPERATOR,
                    {"caller": caller, "token_id": token_id},
                )
            if spender is None:
                self._approvals.pop(token_id, None)
            else:
                self._approvals[token_id] = normalize_address(spender, "spender")

    def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> None:
        with self.ledger.atomic():
            self._operators.setdefault(caller, {})[normalize_address(operator)] = approved

    def is_approved_or_owner(self, spender: str, token_id: int) -> bool:
        holder = self.owner_of(token_id)
        if holder is None:
            return False
        return (
            spender == holder
            or self.get_approved(token_id) == spender
            or self.is_approved_for_all(holder, spender)
        )

    def transfer_from(self, caller: str, holder: str, to: str, token_id: int) -> None:
        with self.ledger.atomic():
            if self.owner_of(token_id) != holder:
                raise FundsError(
                    f"{self.name}: {holder} does not own token {token_id}",
                    ErrorCode.NOT_TOKEN_OWNER,
                    {"holder": holder, "token_id": token_id},
                )
            if not self.is_approved_or_owner(caller, token_id):
                raise FundsError(
                    f"{self.name}: caller not approved for token {token_id}",
                    ErrorCode.INSUFFICIENT_ALLOWANCE,
                    {"spender": caller, "token_id": token_id},
                )
            self._approvals.pop(token_id, None)
            self._owners[token_id] = normalize_address(to)


class PartitionedToken(TokenContract):
    """
    Fungible balances segregated by 32-byte partition.

    Transfers to a registered contract that implements tokens_received call
    the hook synchronously after balances are updated; if the hook raises,
    the whole transfer is rolled back.
    """

    __state_fields__ = ("_balances", "_allowances", "_operators")

    def __init__(self, ledger: Ledger, owner: str, name: str = "", symbol: str = ""):
        self._balances: Dict[bytes, Dict[str, int]] = {}
        self._allowances: Dict[bytes, Dict[str, Dict[str, int]]] = {}
        self._operators: Dict[str, Dict[str, bool]] = {}
        super().__init__(ledger, owner, name, symbol)

    def balance_of_by_partition(self, partition: bytes, holder: str) -> int:
        return self._balances.get(partition, {}).get(holder, 0)

    def allowance_by_partition(self, partition: bytes, holder: str, spender: str) -> int:
        return self._allowances.get(partition, {}).get(holder, {}).get(spender, 0)

    def is_operator(self, operator: str, holder: str) -> bool:
        return operator == holder or self._operators.get(holder, {}).get(operator, False)

    def issue_by_partition(self, caller: str, partition: bytes, to: str, amount: int) -> None:
        with self.ledger.atomic():
            self._only_owner(caller)
            partition = require_bytes32(partition, "partition")
            holders = self._balances.setdefault(partition, {})
            to = normalize_address(to)
            holders[to] = holders.get(to, 0) + amount

    def approve_by_partition(self, caller: str, partition: bytes, spender: str, amount: int) -> None:
        with self.ledger.atomic():
            partition = require_bytes32(partition, "partition")
            spender = normalize_address(spender, "spender")
            self._allowances.setdefault(partition, {}).setdefault(caller, {})[spender] = amount

    def authorize_operator(self, caller: str, operator: str) -> None:
        with self.ledger.atomic():
            self._operators.setdefault(caller, {})[normalize_address(operator)] = True

    def revoke_operator(self, caller: str, operator: str) -> None:
        with self.ledger.atomic():
            self._operators.setdefault(caller, {})[normalize_address(operator)] = False

    def transfer_by_partition(
        self,
        caller: str,
        partition: bytes,
        to: str,
        value: int,
        data: bytes = b"",
    ) -> None:
        self.operator_transfer_by_partition(caller, partition, caller, to, value, data, b"")

    def operator_transfer_by_partition(
        self,
        caller: str,
        partition: bytes,
        holder: str,
        to: str,
        value: int,
        data: bytes = b"",
        operator_data: bytes = b"",
    ) -> None:
        """
        Move value out of holder's partition.

        The caller must be the holder, an authorized operator, or have a
        sufficient partition allowance (which is consumed).
        """
        with self.ledger.atomic():
            partition = require_bytes32(partition, "partition")
            to = normalize_address(to)
            if not self.is_operator(caller, holder):
                allowed = self.allowance_by_partition(partition, holder, caller)
                if allowed < value:
                    raise FundsError(
                        f"{self.name}: insufficient partition allowance {allowed} < {value}",
                        ErrorCode.INSUFFICIENT_ALLOWANCE,
                        {"holder": holder, "spender": caller, "allowance": allowed, "required": value},
                    )
                self._allowances.setdefault(partition, {}).setdefault(holder, {})[caller] = allowed - value

            balance = self.balance_of_by_partition(partition, holder)
            if balance < value:
                raise FundsError(
                    f"{self.name}: insufficient partition balance {balance} < {value}",
                    ErrorCode.INSUFFICIENT_BALANCE,
                    {"holder": holder, "balance": balance, "required": value},
                )
            holders = self._balances.setdefault(partition, {})
            holders[holder] = balance - value
            holders[to] = holders.get(to, 0) + value

            self._call_recipient_hook(partition, caller, holder, to, value, data, operator_data)

    def _call_recipient_hook(
        self,
        partition: bytes,
        operator: str,
        holder: str,
        to: str,
        value: int,
        data: bytes,
        operator_data: bytes,
    ) -> None:
        recipient: Any = self.ledger.get_contract(to)
        hook = getattr(recipient, "tokens_received", None)
        if hook is None:
            return
        logger.debug(
            f"{self.name}: calling tokens_received on {to}",
            extra={"context": {"partition": partition.hex(), "value": value}},
        )
        hook(self.address, partition, operator, holder, to, value, data, operator_data)
