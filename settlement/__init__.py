"""
settlement - Delivery-versus-payment settlement engine.

- engine.py: SettlementEngine, the trade lifecycle
- adapters.py: per-standard asset transfer adapters
- store.py: append-only trade store
- state_machine.py: valid trade state transitions
- access.py: owner, executers, controllers, oracles
- pricing.py: price ownership, multipliers, start dates
- codec.py: push payload encoding
- intake.py: push-notification hook validation
- scenario.py / cli.py: YAML scenario replay
"""

from settlement.engine import SettlementEngine

__all__ = ["SettlementEngine"]
