"""
settlement/adapters.py - Asset transfer adapters.

One adapter per token standard, all with the same operation set:

  escrow(holder, asset, amount)            holder -> engine custody
  release(to, asset, amount)               engine custody -> to
  direct_transfer(holder, to, asset, amount)  holder -> to (SWAP legs)
  require_sufficient(holder, asset, amount, escrowed)  raises FundsError
  is_sufficient(...)                       same check as a bool

Native value is attached to the engine call and moved into custody before
any adapter runs, so native escrow only has to release.
"""

from typing import Any, Dict

from chains.ledger import Ledger
from core.constants import TokenStandard
from core.exceptions import ErrorCode, FundsError, SettlementError, ValidationError
from core.logging import get_logger
from core.models import Asset

logger = get_logger(__name__)


class TransferAdapter:
    """Base adapter bound to one ledger and one engine address."""

    standard: TokenStandard

    def __init__(self, ledger: Ledger, engine: str):
        self.ledger = ledger
        self.engine = engine

    def escrow(self, holder: str, asset: Asset, amount: int) -> None:
        raise NotImplementedError

    def release(self, to: str, asset: Asset, amount: int) -> None:
        raise NotImplementedError

    def direct_transfer(self, holder: str, to: str, asset: Asset, amount: int) -> None:
        raise NotImplementedError

    def require_sufficient(self, holder: str, asset: Asset, amount: int) -> None:
        raise NotImplementedError

    def is_sufficient(self, holder: str, asset: Asset, amount: int) -> bool:
        try:
            self.require_sufficient(holder, asset, amount)
        except SettlementError:
            return False
        return True

    def _token(self, asset: Asset) -> Any:
        token = self.ledger.get_contract(asset.address)
        if token is None:
            raise ValidationError(
                f"No token contract at {asset.address}",
                ErrorCode.INVALID_ASSET,
                {"address": asset.address, "standard": self.standard.name},
            )
        return token


class OffchainAdapter(TransferAdapter):
    """Off-ledger legs: nothing moves, acceptance is the confirmation."""

    standard = TokenStandard.OFFCHAIN

    def escrow(self, holder, asset, amount):
        pass

    def release(self, to, asset, amount):
        pass

    def direct_transfer(self, holder, to, asset, amount):
        pass

    def require_sufficient(self, holder, asset, amount):
        pass


class NativeAdapter(TransferAdapter):
    standard = TokenStandard.NATIVE

    def escrow(self, holder, asset, amount):
        # value already attached to the call
        pass

    def release(self, to, asset, amount):
        self.ledger.transfer_native(self.engine, to, amount)

    def direct_transfer(self, holder, to, asset, amount):
        raise ValidationError(
            "Native currency can only settle in escrow mode",
            ErrorCode.NATIVE_REQUIRES_ESCROW,
        )

    def require_sufficient(self, holder, asset, amount):
        balance = self.ledger.native_balance(holder)
        if balance < amount:
            raise FundsError(
                f"Insufficient native balance: {balance} < {amount}",
                ErrorCode.INSUFFICIENT_BALANCE,
                {"holder": holder, "balance": balance, "required": amount},
            )


class FungibleAdapter(TransferAdapter):
    standard = TokenStandard.FUNGIBLE

    def escrow(self, holder, asset, amount):
        self._token(asset).transfer_from(self.engine, holder, self.engine, amount)

    def release(self, to, asset, amount):
        self._token(asset).transfer(self.engine, to, amount)

    def direct_transfer(self, holder, to, asset, amount):
        self._token(asset).transfer_from(self.engine, holder, to, amount)

    def require_sufficient(self, holder, asset, amount):
        token = self._token(asset)
        balance = token.balance_of(holder)
        if balance < amount:
            raise FundsError(
                f"Insufficient balance: {balance} < {amount}",
                ErrorCode.INSUFFICIENT_BALANCE,
                {"holder": holder, "token": asset.address, "balance": balance, "required": amount},
            )
        allowance = token.allowance(holder, self.engine)
        if allowance < amount:
            raise FundsError(
                f"Insufficient allowance: {allowance} < {amount}",
                ErrorCode.INSUFFICIENT_ALLOWANCE,
                {"holder": holder, "token": asset.address, "allowance": allowance, "required": amount},
            )


class NonFungibleAdapter(TransferAdapter):
    """Amount is a presence flag: 0 moves nothing, 1 moves asset.token_id."""

    standard = TokenStandard.NON_FUNGIBLE

    def escrow(self, holder, asset, amount):
        if amount:
            self._token(asset).transfer_from(self.engine, holder, self.engine, asset.token_id)

    def release(self, to, asset, amount):
        if amount:
            self._token(asset).transfer_from(self.engine, self.engine, to, asset.token_id)

    def direct_transfer(self, holder, to, asset, amount):
        if amount:
            self._token(asset).transfer_from(self.engine, holder, to, asset.token_id)

    def require_sufficient(self, holder, asset, amount):
        if not amount:
            return
        token = self._token(asset)
        if token.owner_of(asset.token_id) != holder:
            raise FundsError(
                f"{holder} does not own token {asset.token_id}",
                ErrorCode.NOT_TOKEN_OWNER,
                {"holder": holder, "token": asset.address, "token_id": asset.token_id},
            )
        if not token.is_approved_or_owner(self.engine, asset.token_id):
            raise FundsError(
                f"Engine not approved for token {asset.token_id}",
                ErrorCode.INSUFFICIENT_ALLOWANCE,
                {"holder": holder, "token": asset.address, "token_id": asset.token_id},
            )


class PartitionedAdapter(TransferAdapter):
    """
    Partition-scoped transfers.

    Pulls use operator_transfer_by_partition with the engine as operator;
    the engine's own tokens_received hook recognises itself as operator
    and leaves those transfers alone.
    """

    standard = TokenStandard.PARTITIONED

    def escrow(self, holder, asset, amount):
        self._token(asset).operator_transfer_by_partition(
            self.engine, asset.partition, holder, self.engine, amount
        )

    def release(self, to, asset, amount):
        self._token(asset).transfer_by_partition(self.engine, asset.partition, to, amount)

    def direct_transfer(self, holder, to, asset, amount):
        self._token(asset).operator_transfer_by_partition(
            self.engine, asset.partition, holder, to, amount
        )

    def require_sufficient(self, holder, asset, amount):
        token = self._token(asset)
        balance = token.balance_of_by_partition(asset.partition, holder)
        if balance < amount:
            raise FundsError(
                f"Insufficient partition balance: {balance} < {amount}",
                ErrorCode.INSUFFICIENT_BALANCE,
                {"holder": holder, "token": asset.address, "balance": balance, "required": amount},
            )
        if token.is_operator(self.engine, holder):
            return
        allowance = token.allowance_by_partition(asset.partition, holder, self.engine)
        if allowance < amount:
            raise FundsError(
                f"Insufficient partition allowance: {allowance} < {amount}",
                ErrorCode.INSUFFICIENT_ALLOWANCE,
                {"holder": holder, "token": asset.address, "allowance": allowance, "required": amount},
            )


ADAPTER_CLASSES = {
    TokenStandard.OFFCHAIN: OffchainAdapter,
    TokenStandard.NATIVE: NativeAdapter,
    TokenStandard.FUNGIBLE: FungibleAdapter,
    TokenStandard.NON_FUNGIBLE: NonFungibleAdapter,
    TokenStandard.PARTITIONED: PartitionedAdapter,
}


def build_adapters(ledger: Ledger, engine: str) -> Dict[TokenStandard, TransferAdapter]:
    """Instantiate one adapter per standard for an engine."""
    return {standard: cls(ledger, engine) for standard, cls in ADAPTER_CLASSES.items()}
