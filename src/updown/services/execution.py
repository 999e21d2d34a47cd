"""Order Executor - turns trade intents into exchange calls and ledger updates.

This service:
- Places marketable buys and attaches a protective take-profit sell
- Sells positions and books realized PnL against the ledger's cost basis
- Cleans up sub-unit dust and force-liquidates ahead of round boundaries
- Simulates every operation in paper mode without contacting the exchange

Operations on the same token are serialized with a per-token lock, so the
buy -> settle -> approve -> protect chain never interleaves with a sell or a
liquidation of that token. Exchange failures are caught here, logged, and
reported as False; nothing is raised to the caller.
"""

import asyncio
import itertools
import time
from collections import defaultdict
from typing import Callable, Mapping, Optional

import structlog

from updown import metrics
from updown.core.config import Settings
from updown.core.retry import retry_fixed
from updown.domain.order import BalanceAllowance, OrderSide, Outcome
from updown.integrations.base import ExchangeClient
from updown.services.ledger import DUST_THRESHOLD, PositionLedger

log = structlog.get_logger()

# Buy limit = hint + slippage, capped below $1 so the order stays valid
BUY_SLIPPAGE = 0.01
PRICE_CEILING = 0.99
PRICE_FLOOR = 0.01

# Aggressive exit discounts in cents below the last seen price
DUST_DISCOUNT_CENTS = 5.0
LIQUIDATION_DISCOUNT_CENTS = 10.0

# Buy is considered settled once this share of the requested size shows up
SETTLED_FILL_RATIO = 0.95

# Protective sell after a buy: one attempt plus one retry
PROTECTIVE_SELL_ATTEMPTS = 2


def sellable_size(allowance: float) -> float:
    """Allowance rounded to the 0.1 share granularity the book accepts."""
    return round(allowance, 1)


def exit_price(current_price: float, discount_cents: float) -> float:
    """Dollar price for an aggressive sell ``discount_cents`` under the market."""
    return max((current_price - discount_cents) / 100, PRICE_FLOOR)


class OrderExecutor:
    """Executes buys, sells and liquidations for one account.

    Args:
        settings: Trading settings (paper mode, profit target, timings).
        ledger: The ledger to update after accepted orders.
        client: Exchange client; built from settings on ``initialize`` when
            omitted and trading live.
    """

    def __init__(
        self,
        settings: Settings,
        ledger: PositionLedger,
        client: Optional[ExchangeClient] = None,
    ):
        self._settings = settings
        self._ledger = ledger
        self._client = client
        self._paper = settings.paper_trading
        self._token_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._paper_ids = itertools.count(1)
        self._log = log.bind(component="executor", paper=self._paper)

    @property
    def paper(self) -> bool:
        return self._paper

    @property
    def ledger(self) -> PositionLedger:
        return self._ledger

    @property
    def client(self) -> Optional[ExchangeClient]:
        return self._client

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> bool:
        """Prepare the exchange client.

        Returns:
            True when trading can proceed. False means credentials are missing
            or could not be derived; callers must not trade.
        """
        if self._paper:
            self._log.info("paper_trading_enabled")
            return True

        if not self._settings.private_key:
            self._log.error("private_key_not_configured")
            return False

        if self._client is None:
            from updown.integrations.polymarket.clob import CLOBClient
            self._client = CLOBClient(self._settings)

        try:
            await self._client.connect()
        except Exception as e:
            self._log.error("client_initialization_failed", error=str(e))
            return False

        self._log.info(
            "trading_client_initialized",
            proxy_mode=self._settings.proxy_mode,
        )
        return True

    def _live_client(self) -> Optional[ExchangeClient]:
        if self._client is None or not self._client.is_connected:
            self._log.error("trading_client_not_initialized")
            return None
        return self._client

    def _lock(self, token_id: str) -> asyncio.Lock:
        return self._token_locks[token_id]

    def prune_locks(self, keep: set[str]) -> int:
        """Drop idle locks for tokens outside ``keep``. Returns how many went."""
        stale = [
            token_id
            for token_id, lock in self._token_locks.items()
            if token_id not in keep and not lock.locked()
        ]
        for token_id in stale:
            del self._token_locks[token_id]
        return len(stale)

    def _paper_order_id(self) -> str:
        return f"paper-{int(time.time() * 1000)}-{next(self._paper_ids)}"

    # =========================================================================
    # Buy + protect
    # =========================================================================

    async def buy(
        self,
        token_id: str,
        outcome: Outcome,
        price_hint: float,
        size: float,
    ) -> bool:
        """Buy ``size`` shares and attach a protective take-profit sell.

        The buy is priced one cent above the hint to cross the spread. The
        ledger records the hint price, not the (unknown) fill price. The
        protective leg is best effort: its failure does not fail the buy.

        Returns:
            False only if the buy order itself was not accepted.
        """
        async with self._lock(token_id):
            if self._paper:
                self._paper_buy(token_id, outcome, price_hint, size)
                return True

            client = self._live_client()
            if client is None:
                return False

            limit_price = min(price_hint / 100 + BUY_SLIPPAGE, PRICE_CEILING)
            try:
                order_id = await client.place_order(token_id, OrderSide.BUY, limit_price, size)
            except Exception as e:
                self._log.error(
                    "buy_failed",
                    token_id=token_id[:16],
                    outcome=outcome.value,
                    price=limit_price,
                    size=size,
                    error=str(e),
                )
                metrics.record_failure("buy")
                return False

            self._log.info(
                "buy_placed",
                order_id=order_id,
                outcome=outcome.value,
                price=limit_price,
                size=size,
            )
            metrics.record_order("BUY", "entry", paper=False)
            self._ledger.apply(token_id, outcome, size, price_hint)
            self._ledger.record_trade(token_id, outcome, OrderSide.BUY, price_hint, size)

            await self._protect_after_buy(client, token_id, outcome, price_hint, size)
            return True

    def _paper_buy(self, token_id: str, outcome: Outcome, price: float, size: float) -> None:
        target = price + self._settings.profit_target
        self._log.info("paper_buy", outcome=outcome.value, price=price / 100, size=size)
        self._log.info("paper_protective_sell", outcome=outcome.value, price=target / 100, size=size)
        self._ledger.apply(token_id, outcome, size, price)
        self._ledger.record_trade(token_id, outcome, OrderSide.BUY, price, size)
        self._ledger.set_pending_order(token_id, self._paper_order_id())
        metrics.record_order("BUY", "entry", paper=True)

    async def _protect_after_buy(
        self,
        client: ExchangeClient,
        token_id: str,
        outcome: Outcome,
        buy_price: float,
        size: float,
    ) -> None:
        """Wait for the buy to settle, size the protective sell from allowance, place it."""
        sellable = float(size)
        try:
            balances = await self._wait_for_balances(
                client,
                token_id,
                lambda b: b.balance >= size * SETTLED_FILL_RATIO,
                reason="buy_settlement",
            )
            if balances is not None:
                sellable = await self._ensure_sellable(client, token_id, balances)
        except Exception as e:
            self._log.warning(
                "balance_check_failed_using_requested_size",
                token_id=token_id[:16],
                size=size,
                error=str(e),
            )

        if sellable <= 0:
            self._log.warning("no_allowance_skipping_protective_sell", token_id=token_id[:16])
            return

        await self._place_protective(
            client, token_id, outcome, buy_price, sellable, attempts=PROTECTIVE_SELL_ATTEMPTS
        )

    async def _wait_for_balances(
        self,
        client: ExchangeClient,
        token_id: str,
        settled: Callable[[BalanceAllowance], bool],
        reason: str,
    ) -> Optional[BalanceAllowance]:
        """Poll balance/allowance until ``settled`` holds or the timeout elapses.

        Returns:
            The last successful reading (settled or not), or None if every
            query failed.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.settlement_timeout_seconds
        interval = self._settings.settlement_poll_interval_seconds
        last: Optional[BalanceAllowance] = None

        while True:
            try:
                last = await client.get_balance_allowance(token_id)
            except Exception as e:
                self._log.warning("balance_poll_failed", token_id=token_id[:16], error=str(e))
            else:
                if settled(last):
                    return last

            if loop.time() >= deadline:
                self._log.warning(
                    "settlement_wait_timed_out",
                    reason=reason,
                    token_id=token_id[:16],
                    balance=last.balance if last else None,
                    allowance=last.allowance if last else None,
                )
                return last
            await asyncio.sleep(interval)

    async def _ensure_sellable(
        self,
        client: ExchangeClient,
        token_id: str,
        balances: Optional[BalanceAllowance] = None,
    ) -> float:
        """Sellable share count, approving the token first if needed.

        Returns 0 when nothing can be sold even after approval.
        """
        if balances is None:
            balances = await client.get_balance_allowance(token_id)

        self._log.debug(
            "balances",
            token_id=token_id[:16],
            balance=balances.balance,
            allowance=balances.allowance,
        )

        if balances.allowance >= DUST_THRESHOLD:
            return sellable_size(balances.allowance)
        if balances.balance < DUST_THRESHOLD:
            return 0.0

        self._log.info("approving_token_for_sell", token_id=token_id[:16], balance=balances.balance)
        await client.grant_allowance(token_id)
        balances = await client.get_balance_allowance(token_id)
        if balances.allowance < DUST_THRESHOLD:
            self._log.warning("allowance_still_empty_after_approve", token_id=token_id[:16])
            return 0.0
        return sellable_size(balances.allowance)

    async def _place_protective(
        self,
        client: ExchangeClient,
        token_id: str,
        outcome: Outcome,
        buy_price: float,
        size: float,
        attempts: int,
    ) -> Optional[str]:
        """Place the take-profit limit sell and remember its id."""
        target_price = (buy_price + self._settings.profit_target) / 100

        async def submit() -> str:
            return await client.place_order(token_id, OrderSide.SELL, target_price, size)

        try:
            order_id = await retry_fixed(
                submit,
                attempts=attempts,
                backoff_seconds=self._settings.protective_retry_backoff_seconds,
                log_context={"call": "protective_sell", "token_id": token_id[:16]},
            )
        except Exception as e:
            self._log.error(
                "protective_sell_failed",
                token_id=token_id[:16],
                outcome=outcome.value,
                price=target_price,
                size=size,
                attempts=attempts,
                error=str(e),
            )
            metrics.record_failure("protective_sell")
            return None

        self._ledger.set_pending_order(token_id, order_id)
        self._log.info(
            "protective_sell_placed",
            order_id=order_id,
            outcome=outcome.value,
            price=target_price,
            size=size,
            profit_target=self._settings.profit_target,
        )
        metrics.record_order("SELL", "protective", paper=False)
        return order_id

    async def place_limit_sell_for_position(
        self,
        token_id: str,
        outcome: Outcome,
        buy_price: float,
    ) -> bool:
        """Back-fill a protective sell for a held position.

        Idempotent: if a protective order id is already recorded for the
        token, returns True without contacting the exchange.
        """
        async with self._lock(token_id):
            existing = self._ledger.pending_order(token_id)
            if existing:
                self._log.debug("protective_sell_exists", token_id=token_id[:16], order_id=existing)
                return True

            if self._paper:
                order_id = self._paper_order_id()
                self._ledger.set_pending_order(token_id, order_id)
                self._log.info(
                    "paper_protective_sell",
                    outcome=outcome.value,
                    price=(buy_price + self._settings.profit_target) / 100,
                    order_id=order_id,
                )
                metrics.record_order("SELL", "protective", paper=True)
                return True

            client = self._live_client()
            if client is None:
                return False

            try:
                sellable = await self._ensure_sellable(client, token_id)
            except Exception as e:
                self._log.error("sellable_query_failed", token_id=token_id[:16], error=str(e))
                metrics.record_failure("protective_sell")
                return False

            if sellable <= 0:
                self._log.info("no_sellable_shares", token_id=token_id[:16])
                return False

            order_id = await self._place_protective(
                client, token_id, outcome, buy_price, sellable, attempts=1
            )
            return order_id is not None

    # =========================================================================
    # Sells
    # =========================================================================

    async def sell(
        self,
        token_id: str,
        outcome: Outcome,
        price: float,
        size: float,
    ) -> bool:
        """Sell ``size`` shares at ``price`` cents.

        PnL is computed against the cost basis before the ledger is mutated.
        On failure the ledger is left untouched.
        """
        async with self._lock(token_id):
            if self._paper:
                pnl = self._book_sell(token_id, outcome, price, size)
                self._log.info(
                    "paper_sell",
                    outcome=outcome.value,
                    price=price / 100,
                    size=size,
                    pnl=round(pnl, 2),
                )
                metrics.record_order("SELL", "exit", paper=True)
                return True

            client = self._live_client()
            if client is None:
                return False

            try:
                order_id = await client.place_order(token_id, OrderSide.SELL, price / 100, size)
            except Exception as e:
                self._log.error(
                    "sell_failed",
                    token_id=token_id[:16],
                    outcome=outcome.value,
                    price=price / 100,
                    size=size,
                    error=str(e),
                )
                metrics.record_failure("sell")
                return False

            pnl = self._book_sell(token_id, outcome, price, size)
            self._log.info(
                "sell_placed",
                order_id=order_id,
                outcome=outcome.value,
                price=price / 100,
                size=size,
                pnl=round(pnl, 2),
            )
            metrics.record_order("SELL", "exit", paper=False)
            return True

    def _book_sell(self, token_id: str, outcome: Outcome, price: float, size: float) -> float:
        position = self._ledger.get(token_id)
        pnl = (price - position.avg_buy_price) * size if position else 0.0
        remaining = self._ledger.apply(token_id, outcome, -size, price)
        self._ledger.record_trade(token_id, outcome, OrderSide.SELL, price, size, pnl)
        if remaining is None:
            self._ledger.clear_pending_order(token_id)
        return pnl

    async def market_sell_remainder(
        self,
        token_id: str,
        outcome: Outcome,
        current_price: float,
    ) -> bool:
        """Sell sub-unit leftovers (0 < allowance < 1 share) five cents under market.

        Returns:
            True if a dust sell was placed, False if there was nothing to do
            or the sell failed.
        """
        async with self._lock(token_id):
            if self._paper:
                return False

            client = self._live_client()
            if client is None:
                return False

            try:
                balances = await client.get_balance_allowance(token_id)
                if balances.allowance <= 0 or balances.allowance >= 1:
                    return False

                size = sellable_size(balances.allowance)
                if size <= 0:
                    return False

                price = exit_price(current_price, DUST_DISCOUNT_CENTS)
                self._log.info("dust_sell", outcome=outcome.value, size=size, price=price)
                order_id = await client.place_order(token_id, OrderSide.SELL, price, size)
            except Exception as e:
                self._log.error("dust_sell_failed", token_id=token_id[:16], error=str(e))
                metrics.record_failure("dust_sell")
                return False

            self._log.info("dust_sell_placed", order_id=order_id)
            metrics.record_order("SELL", "dust", paper=False)
            return True

    async def force_liquidate(
        self,
        token_id: str,
        outcome: Outcome,
        current_price: float,
    ) -> bool:
        """Cancel resting orders and dump the whole token ten cents under market.

        Local tracking for the token (position and protective order) is
        discarded afterwards whether or not the sell went through.

        Returns:
            True if the shares were sold or there was nothing to sell.
        """
        async with self._lock(token_id):
            exit_cents = exit_price(current_price, LIQUIDATION_DISCOUNT_CENTS) * 100
            try:
                if self._paper:
                    position = self._ledger.get(token_id)
                    if position is not None:
                        pnl = (exit_cents - position.avg_buy_price) * position.size
                        self._ledger.record_trade(
                            token_id, outcome, OrderSide.SELL, exit_cents, position.size, pnl
                        )
                        metrics.record_order("SELL", "liquidation", paper=True)
                    self._log.info("paper_force_liquidate", outcome=outcome.value, price=exit_cents / 100)
                    return True

                client = self._live_client()
                if client is None:
                    return False
                return await self._liquidate_live(client, token_id, outcome, exit_cents)
            finally:
                self._ledger.discard(token_id)

    async def _liquidate_live(
        self,
        client: ExchangeClient,
        token_id: str,
        outcome: Outcome,
        exit_cents: float,
    ) -> bool:
        self._log.warning("force_liquidating", token_id=token_id[:16], outcome=outcome.value)
        try:
            await client.cancel_all()
            # Every resting order on the account is gone, not just this token's
            self._ledger.clear_all_pending_orders()
        except Exception as e:
            self._log.warning("cancel_before_liquidation_failed", error=str(e))

        balances = await self._wait_for_balances(
            client,
            token_id,
            lambda b: b.allowance >= b.balance - DUST_THRESHOLD,
            reason="cancel_release",
        )
        if balances is None:
            self._log.error("force_liquidation_failed", token_id=token_id[:16], error="balance unavailable")
            metrics.record_failure("liquidation")
            return False

        size = sellable_size(balances.allowance)
        if size <= 0:
            self._log.info("nothing_to_liquidate", token_id=token_id[:16])
            return True

        try:
            order_id = await client.place_order(token_id, OrderSide.SELL, exit_cents / 100, size)
        except Exception as e:
            self._log.error("force_liquidation_failed", token_id=token_id[:16], size=size, error=str(e))
            metrics.record_failure("liquidation")
            return False

        position = self._ledger.get(token_id)
        pnl = (exit_cents - position.avg_buy_price) * size if position else None
        self._ledger.record_trade(token_id, outcome, OrderSide.SELL, exit_cents, size, pnl)
        self._log.info(
            "force_liquidation_complete",
            order_id=order_id,
            outcome=outcome.value,
            size=size,
            price=exit_cents / 100,
        )
        metrics.record_order("SELL", "liquidation", paper=False)
        return True

    # =========================================================================
    # Bulk operations
    # =========================================================================

    async def cancel_all_orders(self) -> bool:
        """Cancel every open order and forget all protective order ids."""
        if self._paper:
            self._ledger.clear_all_pending_orders()
            self._log.info("paper_cancel_all")
            return True

        client = self._live_client()
        if client is None:
            return False

        try:
            await client.cancel_all()
        except Exception as e:
            self._log.error("cancel_all_failed", error=str(e))
            metrics.record_failure("cancel_all")
            return False

        self._ledger.clear_all_pending_orders()
        self._log.info("all_orders_cancelled")
        return True

    async def liquidate_all(self, prices: Mapping[str, float]) -> int:
        """Sell every held position at the freshest known price.

        Falls back to the position's last recorded price when ``prices`` has
        no entry for the token.

        Returns:
            Number of positions sold.
        """
        sold = 0
        for token_id, position in self._ledger.positions().items():
            if position.size <= 0:
                continue
            price = prices.get(token_id) or position.current_price
            if await self.sell(token_id, position.outcome, price, position.size):
                sold += 1
        return sold
