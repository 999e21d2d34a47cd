"""Trading signal models."""
from dataclasses import dataclass
from enum import Enum

from updown.domain.order import OrderSide, Outcome


class SignalKind(str, Enum):
    """Which rule produced a signal."""
    ORPHAN_EXIT = "orphan_exit"
    PRE_START_EXIT = "pre_start_exit"
    END_OF_ROUND_EXIT = "end_of_round_exit"
    TAKE_PROFIT = "take_profit"
    ENTRY = "entry"


FORCED_EXIT_KINDS = frozenset(
    {SignalKind.ORPHAN_EXIT, SignalKind.PRE_START_EXIT, SignalKind.END_OF_ROUND_EXIT}
)


@dataclass(frozen=True)
class TradeSignal:
    """A single actionable decision. ``reason`` is diagnostic text only."""
    action: OrderSide
    token_id: str
    outcome: Outcome
    price: float
    size: float
    reason: str
    kind: SignalKind

    @property
    def is_forced_exit(self) -> bool:
        return self.kind in FORCED_EXIT_KINDS


@dataclass(frozen=True)
class TimeWindowCheck:
    """Result of the risk policy's entry time-window check."""
    can_trade: bool
    reason: str
