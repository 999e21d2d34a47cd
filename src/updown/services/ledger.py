"""Position Ledger - local record of holdings, cost basis and protective orders.

The ledger is the bot's working view of the account. It is updated
optimistically by the executor after every accepted order and corrected by
``reconcile`` from exchange balances, which is the only mechanism that
detects drift. Nothing here talks to the network.

One ledger instance is owned by the app and passed to the executor, the
reconciler and the strategy; there is no module-level state.
"""

import math
from typing import Optional

import structlog

from updown.domain.order import OrderSide, Outcome, Position, TradeRecord

log = structlog.get_logger()

# Balances below this are treated as empty (sub-unit settlement residue)
DUST_THRESHOLD = 0.1


class PositionLedger:
    """Holdings keyed by token id, append-only trade log, pending protective sells."""

    def __init__(self) -> None:
        self._positions: dict[str, Position] = {}
        self._pending_orders: dict[str, str] = {}
        self._trades: list[TradeRecord] = []
        self._log = log.bind(component="ledger")

    # =========================================================================
    # Positions
    # =========================================================================

    def apply(
        self,
        token_id: str,
        outcome: Outcome,
        size_delta: float,
        price: float,
    ) -> Optional[Position]:
        """Apply a fill to the ledger.

        Buys (positive delta) update the size-weighted average cost. Sells only
        reduce size; the average cost stays put so PnL of later sells is
        measured against the same basis. A position whose size drops to zero
        or below is removed.

        Returns:
            The updated position, or None if no position remains.
        """
        existing = self._positions.get(token_id)

        if existing is None:
            if size_delta <= 0:
                return None
            position = Position(
                token_id=token_id,
                outcome=outcome,
                size=size_delta,
                avg_buy_price=price,
                current_price=price,
            )
            self._positions[token_id] = position
            return position

        new_size = existing.size + size_delta
        if new_size <= 0:
            del self._positions[token_id]
            return None

        if size_delta > 0:
            existing.avg_buy_price = (
                existing.avg_buy_price * existing.size + price * size_delta
            ) / new_size
        existing.size = new_size
        existing.current_price = price
        return existing

    def reconcile(
        self,
        token_id: str,
        outcome: Outcome,
        observed_balance: float,
        reference_price: float,
    ) -> Optional[Position]:
        """Overwrite local state for a token with the exchange's balance.

        Balances under the dust threshold clear the token (position and any
        pending protective order). Otherwise the size is set to the whole-share
        balance (under one share, position and pending order are dropped); a position
        discovered out-of-band gets the reference price as its cost basis.
        """
        if observed_balance < DUST_THRESHOLD:
            if token_id in self._positions or token_id in self._pending_orders:
                self._log.info(
                    "reconcile_cleared",
                    token_id=token_id[:16],
                    outcome=outcome.value,
                    observed_balance=observed_balance,
                )
            self.discard(token_id)
            return None

        size = math.floor(observed_balance)
        existing = self._positions.get(token_id)
        if size <= 0:
            # Sub-share residue is left to the dust sell; no zero-size positions
            if existing is not None or token_id in self._pending_orders:
                self._log.info(
                    "reconcile_below_one_share",
                    token_id=token_id[:16],
                    observed_balance=observed_balance,
                )
            self.discard(token_id)
            return None

        if existing is None:
            position = Position(
                token_id=token_id,
                outcome=outcome,
                size=size,
                avg_buy_price=reference_price,
                current_price=reference_price,
            )
            self._positions[token_id] = position
            self._log.info(
                "reconcile_discovered",
                token_id=token_id[:16],
                outcome=outcome.value,
                size=size,
                price=reference_price,
            )
            return position

        if existing.size != size:
            self._log.info(
                "reconcile_size_corrected",
                token_id=token_id[:16],
                local_size=existing.size,
                exchange_size=size,
            )
        existing.size = size
        existing.current_price = reference_price
        return existing

    def get(self, token_id: str) -> Optional[Position]:
        return self._positions.get(token_id)

    def holds(self, token_id: str) -> bool:
        return token_id in self._positions

    def positions(self) -> dict[str, Position]:
        """Shallow copy of the position map, safe to iterate while mutating."""
        return dict(self._positions)

    def update_price(self, token_id: str, price: float) -> None:
        position = self._positions.get(token_id)
        if position is not None:
            position.current_price = price

    def remove(self, token_id: str) -> Optional[Position]:
        return self._positions.pop(token_id, None)

    def discard(self, token_id: str) -> None:
        """Forget a token entirely: position and pending protective order."""
        self._positions.pop(token_id, None)
        self._pending_orders.pop(token_id, None)

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, token_id: object) -> bool:
        return token_id in self._positions

    # =========================================================================
    # Pending protective orders
    # =========================================================================

    def pending_order(self, token_id: str) -> Optional[str]:
        return self._pending_orders.get(token_id)

    def has_pending_order(self, token_id: str) -> bool:
        """True when a non-empty protective order id is recorded."""
        return bool(self._pending_orders.get(token_id))

    def set_pending_order(self, token_id: str, order_id: str) -> None:
        self._pending_orders[token_id] = order_id

    def clear_pending_order(self, token_id: str) -> Optional[str]:
        return self._pending_orders.pop(token_id, None)

    def clear_all_pending_orders(self) -> None:
        self._pending_orders.clear()

    def pending_orders(self) -> dict[str, str]:
        return dict(self._pending_orders)

    # =========================================================================
    # Trade log
    # =========================================================================

    def record_trade(
        self,
        token_id: str,
        outcome: Outcome,
        side: OrderSide,
        price: float,
        size: float,
        pnl: Optional[float] = None,
    ) -> TradeRecord:
        record = TradeRecord(
            token_id=token_id,
            outcome=outcome,
            side=side,
            price=price,
            size=size,
            pnl=pnl,
        )
        self._trades.append(record)
        return record

    def trade_history(self) -> tuple[TradeRecord, ...]:
        return tuple(self._trades)

    def total_realized_pnl(self) -> float:
        """Sum of realized PnL (cents) across sell records."""
        return sum(t.pnl for t in self._trades if t.pnl is not None)

    def summary(self) -> dict:
        return {
            "positions": [p.to_dict() for p in self._positions.values()],
            "open_cost": round(sum(p.cost_basis for p in self._positions.values()), 4),
            "pending_orders": dict(self._pending_orders),
            "trades": len(self._trades),
            "realized_pnl": round(self.total_realized_pnl(), 4),
        }
