"""Risk Policy - entry time-window gating and fee breakeven.

Consulted by the strategy before any entry:

- Time window: no new entries inside the forced-exit window before a round
  opens, and (optionally) none too far ahead of it.
- Fee breakeven: how far price must move before a round trip clears the
  profit target after taker fees on both legs.
"""

import math

import structlog

from updown.core.config import Settings
from updown.domain.signal import TimeWindowCheck

log = structlog.get_logger()


class RiskPolicy:
    """Stateless checks driven by settings."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def check_time_window(self, time_to_start_ms: int) -> TimeWindowCheck:
        """Decide whether new entries are allowed given ms until the next open.

        Args:
            time_to_start_ms: Milliseconds until the next round starts.

        Returns:
            TimeWindowCheck with the decision and a short reason.
        """
        sell_window = self._settings.sell_before_start_ms
        if time_to_start_ms <= sell_window:
            return TimeWindowCheck(
                can_trade=False,
                reason=f"inside forced-exit window ({time_to_start_ms}ms <= {sell_window}ms)",
            )

        max_lead = self._settings.max_time_to_start_ms
        if max_lead is not None and time_to_start_ms > max_lead:
            return TimeWindowCheck(
                can_trade=False,
                reason=f"too early ({time_to_start_ms}ms > {max_lead}ms)",
            )

        return TimeWindowCheck(can_trade=True, reason="ok")

    def calculate_min_price_move(
        self,
        price: float,
        profit_target: float,
        size: float,
    ) -> float:
        """Minimum upward move (cents) for a round trip to net ``profit_target`` per share.

        Taker fees are charged on the entry price and on the exit price:

            move - fee * (price + price + move) >= profit_target
            move >= (profit_target + 2 * fee * price) / (1 - fee)
        """
        if size <= 0:
            return math.inf
        fee = self._settings.fee_rate
        return (profit_target + 2 * fee * price) / (1 - fee)
