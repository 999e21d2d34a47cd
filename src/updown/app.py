"""Trading app - wires the ledger, strategy, executor and reconciler together.

One evaluation cycle:
1. Reconcile the ledger from exchange balances (on its own cadence)
2. Refresh position prices from the snapshot
3. Generate signals
4. Dispatch each signal to the executor
5. Back-fill protective sells for positions that lack one

Market discovery and the live price feed are external; ``run`` pulls
snapshots from a ``MarketStateProvider``.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

import structlog

from updown import __version__, metrics
from updown.core.config import Settings
from updown.domain.market import MarketState
from updown.domain.order import OrderSide
from updown.domain.signal import SignalKind, TradeSignal
from updown.integrations.base import ExchangeClient
from updown.services.execution import OrderExecutor
from updown.services.ledger import PositionLedger
from updown.services.reconciliation import PositionReconciler
from updown.services.risk import RiskPolicy
from updown.strategies.preround import PreRoundStrategy

log = structlog.get_logger()


class MarketStateProvider(Protocol):
    """Source of market snapshots (market discovery + price feed)."""

    async def get_market_state(self) -> Optional[MarketState]:
        """Latest snapshot, or None when no round is currently tradable."""
        ...


@dataclass
class CycleResult:
    """Outcome of one evaluation cycle."""
    signals: list[TradeSignal] = field(default_factory=list)
    executed: int = 0
    failed: int = 0


class TradingApp:
    """Runs the pre-round strategy against one account."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[ExchangeClient] = None,
        ledger: Optional[PositionLedger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._clock = clock
        self.ledger = ledger or PositionLedger()
        self.risk = RiskPolicy(settings)
        self.strategy = PreRoundStrategy(settings, self.risk)
        self.executor = OrderExecutor(settings, self.ledger, client)
        self.reconciler = PositionReconciler(settings, self.ledger, client)
        self._last_reconcile: Optional[float] = None
        self._log = log.bind(component="app", paper=settings.paper_trading)

    async def start(self) -> bool:
        """Initialize the executor. Returns False if trading must not start."""
        self._log.info(
            "starting",
            version=__version__,
            profit_target=self._settings.profit_target,
            max_buy_price=self._settings.max_buy_price,
            max_position_size=self._settings.max_position_size,
            sell_before_start_ms=self._settings.sell_before_start_ms,
        )
        metrics.BOT_INFO.info(
            {"version": __version__, "paper": str(self._settings.paper_trading).lower()}
        )

        if not await self.executor.initialize():
            self._log.error("executor_initialization_failed")
            return False

        self.reconciler.attach_client(self.executor.client)
        if self._settings.paper_trading:
            self._log.warning("paper_trading_mode_no_real_orders")
        return True

    async def run_cycle(self, state: MarketState) -> CycleResult:
        """Run one evaluation cycle against ``state``."""
        if self._reconcile_due():
            await self.reconciler.sync(state)
            self._last_reconcile = self._clock()

        self.strategy.update_position_prices(self.ledger, state)
        signals = self.strategy.generate_signals(state, self.ledger.positions())
        result = CycleResult(signals=signals)

        for signal in signals:
            metrics.record_signal(signal.kind.value)
            self._log.info(
                "signal",
                kind=signal.kind.value,
                action=signal.action.value,
                outcome=signal.outcome.value,
                price=signal.price,
                size=signal.size,
                reason=signal.reason,
            )
            if await self._dispatch(signal):
                result.executed += 1
            else:
                result.failed += 1

        await self._backfill_protection()
        self.executor.prune_locks(state.valid_token_ids() | set(self.ledger.positions()))
        metrics.update_ledger_gauges(
            open_positions=len(self.ledger),
            realized_pnl=self.ledger.total_realized_pnl(),
            pending_orders=len(self.ledger.pending_orders()),
        )
        return result

    def _reconcile_due(self) -> bool:
        if self._last_reconcile is None:
            return True
        return self._clock() - self._last_reconcile >= self._settings.reconcile_interval_seconds

    async def _dispatch(self, signal: TradeSignal) -> bool:
        if signal.action == OrderSide.BUY:
            return await self.executor.buy(
                signal.token_id, signal.outcome, signal.price, signal.size
            )

        if signal.is_forced_exit:
            return await self.executor.force_liquidate(
                signal.token_id, signal.outcome, signal.price
            )

        sold = await self.executor.sell(
            signal.token_id, signal.outcome, signal.price, signal.size
        )
        if sold and signal.kind == SignalKind.TAKE_PROFIT:
            await self.executor.market_sell_remainder(
                signal.token_id, signal.outcome, signal.price
            )
        return sold

    async def _backfill_protection(self) -> None:
        for token_id, position in self.ledger.positions().items():
            if self.ledger.has_pending_order(token_id):
                continue
            await self.executor.place_limit_sell_for_position(
                token_id, position.outcome, position.avg_buy_price
            )

    async def run(
        self,
        provider: MarketStateProvider,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Poll the provider and run cycles until ``stop_event`` is set."""
        stop_event = stop_event or asyncio.Event()
        self._log.info("trading_loop_started", poll_interval=self._settings.poll_interval_seconds)

        while not stop_event.is_set():
            try:
                state = await provider.get_market_state()
                if state is not None:
                    await self.run_cycle(state)
            except Exception as e:
                self._log.error("cycle_failed", error=str(e))

            try:
                await asyncio.wait_for(
                    stop_event.wait(), timeout=self._settings.poll_interval_seconds
                )
            except asyncio.TimeoutError:
                pass

        self._log.info("trading_loop_stopped")

    async def shutdown(self) -> None:
        """Cancel resting orders and release the exchange client."""
        await self.executor.cancel_all_orders()
        self._log.info("shutdown", **self.ledger.summary())

        close = getattr(self.executor.client, "close", None)
        if close is not None:
            await close()
