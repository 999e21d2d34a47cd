"""Domain models - pure data structures with no I/O dependencies."""

from updown.domain.market import MarketState, RoundMarket
from updown.domain.order import BalanceAllowance, OrderSide, Outcome, Position, TradeRecord
from updown.domain.signal import FORCED_EXIT_KINDS, SignalKind, TimeWindowCheck, TradeSignal

__all__ = [
    # Market models
    "MarketState",
    "RoundMarket",
    # Order models
    "BalanceAllowance",
    "OrderSide",
    "Outcome",
    "Position",
    "TradeRecord",
    # Signal models
    "FORCED_EXIT_KINDS",
    "SignalKind",
    "TimeWindowCheck",
    "TradeSignal",
]
