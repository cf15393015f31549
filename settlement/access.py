"""
settlement/access.py - Access control registries.

- Engine owner and the executer allow-list (owned deployments only)
- Token controllers: every controller of a token must approve trades on it
- Price oracles: may claim price ownership and set prices for a token

Controller and oracle lists are self-extending: the token contract's
owner or any current member may replace the list.
"""

from typing import Dict, List, Optional

from core.exceptions import AuthorizationError, ErrorCode, StateError


class AccessControl:
    """Permission state owned by one engine."""

    def __init__(self, owner: str, owned: bool = False):
        self.owner: Optional[str] = owner
        self.owned = owned
        self._executers: List[str] = [owner] if owned else []
        self._controllers: Dict[str, List[str]] = {}
        self._oracles: Dict[str, List[str]] = {}

    # =========================================================================
    # OWNER / EXECUTERS
    # =========================================================================

    def require_owner(self, caller: str) -> None:
        if self.owner is None or caller != self.owner:
            raise AuthorizationError(
                "Caller is not the engine owner",
                ErrorCode.NOT_OWNER,
                {"caller": caller},
            )

    def renounce_ownership(self, caller: str) -> None:
        self.require_owner(caller)
        self.owner = None

    @property
    def executers(self) -> List[str]:
        return list(self._executers)

    def set_executers(self, caller: str, executers: List[str]) -> None:
        if not self.owned:
            raise StateError(
                "Executer list is only managed in owned mode",
                ErrorCode.NOT_OWNED,
            )
        self.require_owner(caller)
        self._executers = list(dict.fromkeys(executers))

    def is_executer_allowed(self, executer: Optional[str]) -> bool:
        """Once the allow-list is in force every trade needs a listed executer."""
        if not self.owned or not self._executers:
            return True
        return executer is not None and executer in self._executers

    # =========================================================================
    # CONTROLLERS / ORACLES
    # =========================================================================

    def controllers(self, token: Optional[str]) -> List[str]:
        if token is None:
            return []
        return list(self._controllers.get(token, []))

    def is_controller(self, token: Optional[str], address: str) -> bool:
        return token is not None and address in self._controllers.get(token, [])

    def set_controllers(
        self, caller: str, token: str, token_owner: Optional[str], controllers: List[str]
    ) -> None:
        self._require_list_admin(caller, token, token_owner, self._controllers, "controller")
        self._controllers[token] = list(dict.fromkeys(controllers))

    def oracles(self, token: Optional[str]) -> List[str]:
        if token is None:
            return []
        return list(self._oracles.get(token, []))

    def is_oracle(self, token: Optional[str], address: str) -> bool:
        return token is not None and address in self._oracles.get(token, [])

    def require_oracle(self, token: str, caller: str) -> None:
        if not self.is_oracle(token, caller):
            raise AuthorizationError(
                f"Caller is not a price oracle of {token}",
                ErrorCode.NOT_ORACLE,
                {"caller": caller, "token": token},
            )

    def set_oracles(
        self, caller: str, token: str, token_owner: Optional[str], oracles: List[str]
    ) -> None:
        self._require_list_admin(caller, token, token_owner, self._oracles, "oracle")
        self._oracles[token] = list(dict.fromkeys(oracles))

    @staticmethod
    def _require_list_admin(
        caller: str,
        token: str,
        token_owner: Optional[str],
        registry: Dict[str, List[str]],
        role: str,
    ) -> None:
        if caller == token_owner or caller in registry.get(token, []):
            return
        raise AuthorizationError(
            f"Caller is neither the owner of {token} nor a current {role}",
            ErrorCode.NOT_TOKEN_OWNER_OR_MEMBER,
            {"caller": caller, "token": token, "role": role},
        )
