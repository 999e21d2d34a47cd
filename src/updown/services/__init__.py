"""Trading services - ledger, execution, reconciliation, risk."""

from updown.services.execution import OrderExecutor
from updown.services.ledger import DUST_THRESHOLD, PositionLedger
from updown.services.reconciliation import PositionReconciler
from updown.services.risk import RiskPolicy

__all__ = [
    "DUST_THRESHOLD",
    "OrderExecutor",
    "PositionLedger",
    "PositionReconciler",
    "RiskPolicy",
]
