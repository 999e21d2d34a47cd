"""Pre-round Up/Down strategy.

Evaluates a market snapshot against the held positions and returns the
signals of the first rule that fires, in priority order:

1. Orphan liquidation - holdings in tokens of neither round in play
2. Pre-start forced exit - next round opens within the sell window
3. End-of-round forced exit - current round closes within the sell window
4. Profit-taking - price moved at least the profit target over cost
5. Entry gate - risk policy time-window check
6. Pre-start entry - buy the cheap side of the next round
7. Mid-round entry - buy the cheap side of the current round

At most one BUY is produced per call. Momentum and trend are computed for
the log/reason text only; they never gate a decision.
"""

from collections import deque
from typing import Mapping, Optional

import structlog

from updown.core.config import Settings
from updown.domain.market import MarketState
from updown.domain.order import OrderSide, Outcome, Position
from updown.domain.signal import SignalKind, TradeSignal
from updown.services.ledger import PositionLedger
from updown.services.risk import RiskPolicy

log = structlog.get_logger()

PRICE_HISTORY_SIZE = 60
MOMENTUM_WINDOW = 5

# A side priced above this (cents) in the running round reads as a trend
TREND_THRESHOLD = 55.0


class PreRoundStrategy:
    """Prioritized rule evaluator for recurring Up/Down rounds.

    The only state kept between calls is a bounded price history per token
    of the rounds in play, used for momentum annotation.
    """

    def __init__(self, settings: Settings, risk_policy: RiskPolicy):
        self._settings = settings
        self._risk = risk_policy
        self._price_history: dict[str, deque[float]] = {}
        self._log = log.bind(strategy="preround")

    @property
    def name(self) -> str:
        return "preround"

    # =========================================================================
    # Price history
    # =========================================================================

    def record_price(self, token_id: str, price: float) -> None:
        history = self._price_history.get(token_id)
        if history is None:
            history = deque(maxlen=PRICE_HISTORY_SIZE)
            self._price_history[token_id] = history
        history.append(price)

    def price_history(self, token_id: str) -> list[float]:
        return list(self._price_history.get(token_id, ()))

    def _prune_history(self, active: set[str]) -> None:
        for token_id in [t for t in self._price_history if t not in active]:
            del self._price_history[token_id]

    def calculate_momentum(self, token_id: str, current_price: float) -> float:
        """Current price minus the mean of the last five samples, 0 until five exist."""
        history = self._price_history.get(token_id)
        if history is None or len(history) < MOMENTUM_WINDOW:
            return 0.0
        recent = list(history)[-MOMENTUM_WINDOW:]
        return current_price - sum(recent) / MOMENTUM_WINDOW

    def analyze_current_market_trend(self, state: MarketState) -> Optional[Outcome]:
        """Side of the running round priced above the trend threshold, if any."""
        if state.current_market is None:
            return None
        if state.current_up_price > TREND_THRESHOLD:
            return Outcome.UP
        if state.current_down_price > TREND_THRESHOLD:
            return Outcome.DOWN
        return None

    # =========================================================================
    # Evaluation
    # =========================================================================

    def generate_signals(
        self,
        state: MarketState,
        positions: Mapping[str, Position],
    ) -> list[TradeSignal]:
        """Evaluate the rules in priority order and return the first non-empty result.

        Args:
            state: Snapshot of the next and current rounds.
            positions: Held positions keyed by token id.

        Returns:
            Signals from the highest-priority rule that fired, or [].
        """
        held = [p for p in positions.values() if p.size > 0]
        window = self._settings.sell_before_start_ms

        # 1. Orphans
        valid = state.valid_token_ids()
        if valid:
            self._prune_history(valid)
            orphans = [p for p in held if p.token_id not in valid]
            if orphans:
                return [
                    self._exit(p, SignalKind.ORPHAN_EXIT, "orphaned position from a previous round")
                    for p in orphans
                ]

        # 2. Next round about to open
        if state.next_market is not None and state.time_to_start <= window and held:
            return [
                self._exit(
                    p,
                    SignalKind.PRE_START_EXIT,
                    f"round starts in {state.time_to_start}ms, exiting before open",
                )
                for p in held
            ]

        # 3. Current round about to close
        if state.current_market is not None and 0 < state.time_to_end <= window and held:
            return [
                self._exit(
                    p,
                    SignalKind.END_OF_ROUND_EXIT,
                    f"round ends in {state.time_to_end}ms, exiting before close",
                )
                for p in held
            ]

        # 4. Profit targets
        target = self._settings.profit_target
        winners = [p for p in held if p.current_price - p.avg_buy_price >= target]
        if winners:
            return [
                self._exit(
                    p,
                    SignalKind.TAKE_PROFIT,
                    f"profit target hit ({p.current_price - p.avg_buy_price:+.1f}c >= {target}c)",
                )
                for p in winners
            ]

        # 5. Entry gate
        check = self._risk.check_time_window(state.time_to_start)
        if not check.can_trade:
            self._log.debug("entry_blocked", reason=check.reason)
            return []

        # 6. Next round, before it opens
        if (
            state.next_market is not None
            and state.time_to_start > self._settings.min_time_to_trade_ms
            and not self._holds_any(positions, state.up_token_id, state.down_token_id)
        ):
            signal = self._attempt_entry(
                state,
                up_token_id=state.up_token_id,
                up_price=state.up_price,
                down_token_id=state.down_token_id,
                down_price=state.down_price,
                phase="pre-start",
            )
            if signal is not None:
                return [signal]

        # 7. Current round, with enough runway left
        if (
            state.current_market is not None
            and state.time_to_end > window + self._settings.mid_round_buffer_ms
            and not self._holds_any(
                positions, state.current_up_token_id, state.current_down_token_id
            )
        ):
            signal = self._attempt_entry(
                state,
                up_token_id=state.current_up_token_id,
                up_price=state.current_up_price,
                down_token_id=state.current_down_token_id,
                down_price=state.current_down_price,
                phase="mid-round",
            )
            if signal is not None:
                return [signal]

        return []

    @staticmethod
    def _holds_any(positions: Mapping[str, Position], *token_ids: str) -> bool:
        for token_id in token_ids:
            position = positions.get(token_id)
            if position is not None and position.size > 0:
                return True
        return False

    @staticmethod
    def _exit(position: Position, kind: SignalKind, reason: str) -> TradeSignal:
        return TradeSignal(
            action=OrderSide.SELL,
            token_id=position.token_id,
            outcome=position.outcome,
            price=position.current_price,
            size=position.size,
            reason=reason,
            kind=kind,
        )

    def _attempt_entry(
        self,
        state: MarketState,
        up_token_id: str,
        up_price: float,
        down_token_id: str,
        down_price: float,
        phase: str,
    ) -> Optional[TradeSignal]:
        """Buy Up if it is under the max price, otherwise Down; never both."""
        # Momentum is measured against the samples before this one
        momentum: dict[str, float] = {}
        for token_id, price in ((up_token_id, up_price), (down_token_id, down_price)):
            if token_id:
                momentum[token_id] = self.calculate_momentum(token_id, price)
                self.record_price(token_id, price)

        max_price = self._settings.max_buy_price
        for outcome, token_id, price in (
            (Outcome.UP, up_token_id, up_price),
            (Outcome.DOWN, down_token_id, down_price),
        ):
            if not token_id or not 0 < price < max_price:
                continue

            size = self._settings.max_position_size
            token_momentum = momentum[token_id]
            min_move = self._risk.calculate_min_price_move(
                price, self._settings.profit_target, size
            )
            trend = self.analyze_current_market_trend(state)
            trend_text = f", trend {trend.value}" if trend is not None else ""

            self._log.info(
                "entry_signal",
                phase=phase,
                outcome=outcome.value,
                price=price,
                size=size,
                momentum=round(token_momentum, 2),
                min_move=round(min_move, 2),
                trend=trend.value if trend is not None else None,
            )
            return TradeSignal(
                action=OrderSide.BUY,
                token_id=token_id,
                outcome=outcome,
                price=price,
                size=size,
                reason=(
                    f"{phase} entry {outcome.value} @ {price}c < {max_price}c "
                    f"(momentum {token_momentum:+.2f}c, breakeven move {min_move:.2f}c{trend_text})"
                ),
                kind=SignalKind.ENTRY,
            )

        return None

    # =========================================================================
    # Price refresh
    # =========================================================================

    def update_position_prices(self, ledger: PositionLedger, state: MarketState) -> None:
        """Refresh held positions' current price from the snapshot.

        Tokens in neither round keep their last price.
        """
        prices = state.price_map()
        for token_id in ledger.positions():
            if token_id in prices:
                ledger.update_price(token_id, prices[token_id])
