"""Mock exchange client for testing.

Provides a controllable test double for the ExchangeClient protocol that:
- Returns configurable balance/allowance per token
- Plays back queued balance readings (settlement polling)
- Injects failures into order placement, cancels and queries
- Tracks all method calls for assertions
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from updown.domain.order import BalanceAllowance, OrderSide


@dataclass
class MethodCall:
    """Record of a method call for assertions."""
    method: str
    args: Tuple
    kwargs: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PlacedOrder:
    """An order accepted by the mock exchange."""
    order_id: str
    token_id: str
    side: OrderSide
    price: float
    size: float


class MockExchangeClient:
    """Controllable test double for CLOBClient.

    Usage:
        client = MockExchangeClient()
        client.set_balance("up-token", balance=10.0, allowance=10.0)
        client.fail_next_orders(NetworkError("boom"))

        executor = OrderExecutor(settings, ledger, client)
        await executor.buy("up-token", Outcome.UP, 45.0, 10)

        assert client.order_count(OrderSide.SELL) == 1

    By default a BUY is filled instantly: the token's balance grows by the
    order size, and so does its allowance unless ``auto_approve`` is False.
    """

    def __init__(self, connected: bool = True, auto_fill: bool = True, auto_approve: bool = True):
        self.is_connected = connected
        self.auto_fill = auto_fill
        self.auto_approve = auto_approve
        self.closed = False
        self.orders: List[PlacedOrder] = []

        self._balances: Dict[str, List[float]] = {}
        self._queued_readings: Dict[str, List[BalanceAllowance]] = {}
        self._order_failures: List[Tuple[Optional[OrderSide], Exception]] = []
        self._side_failures: Dict[OrderSide, Exception] = {}
        self._query_failure: Optional[Exception] = None
        self._cancel_failure: Optional[Exception] = None
        self._connect_failure: Optional[Exception] = None
        self._call_history: List[MethodCall] = []
        self._order_seq = 0

    # =========================================================================
    # Configuration Methods (for test setup)
    # =========================================================================

    def set_balance(self, token_id: str, balance: float, allowance: Optional[float] = None) -> None:
        """Set a token's balance; allowance defaults to the balance."""
        self._balances[token_id] = [balance, balance if allowance is None else allowance]

    def queue_balances(self, token_id: str, *readings: Tuple[float, float]) -> None:
        """Queue (balance, allowance) readings returned before the stored balance."""
        queue = self._queued_readings.setdefault(token_id, [])
        queue.extend(BalanceAllowance(balance=b, allowance=a) for b, a in readings)

    def fail_next_orders(self, *errors: Exception, side: Optional[OrderSide] = None) -> None:
        """Fail the next len(errors) order placements (on ``side`` if given), in order."""
        self._order_failures.extend((side, error) for error in errors)

    def fail_orders(self, side: OrderSide, error: Exception) -> None:
        """Fail every order on one side."""
        self._side_failures[side] = error

    def fail_balance_queries(self, error: Optional[Exception]) -> None:
        self._query_failure = error

    def fail_cancel(self, error: Optional[Exception]) -> None:
        self._cancel_failure = error

    def fail_connect(self, error: Optional[Exception]) -> None:
        self._connect_failure = error

    # =========================================================================
    # ExchangeClient interface
    # =========================================================================

    async def connect(self) -> None:
        self._record_call("connect", (), {})
        if self._connect_failure is not None:
            raise self._connect_failure
        self.is_connected = True

    async def close(self) -> None:
        self._record_call("close", (), {})
        self.closed = True

    async def place_order(self, token_id: str, side: OrderSide, price: float, size: float) -> str:
        self._record_call("place_order", (token_id, side, price, size), {})

        for i, (failing_side, error) in enumerate(self._order_failures):
            if failing_side is None or failing_side == side:
                del self._order_failures[i]
                raise error
        if side in self._side_failures:
            raise self._side_failures[side]

        self._order_seq += 1
        order_id = f"order-{self._order_seq:03d}"
        self.orders.append(PlacedOrder(order_id, token_id, side, price, size))

        if self.auto_fill and side == OrderSide.BUY:
            balance, allowance = self._balances.get(token_id, [0.0, 0.0])
            self._balances[token_id] = [
                balance + size,
                allowance + size if self.auto_approve else allowance,
            ]
        return order_id

    async def cancel_all(self) -> None:
        self._record_call("cancel_all", (), {})
        if self._cancel_failure is not None:
            raise self._cancel_failure

    async def get_balance_allowance(self, token_id: str) -> BalanceAllowance:
        self._record_call("get_balance_allowance", (token_id,), {})
        if self._query_failure is not None:
            raise self._query_failure

        queue = self._queued_readings.get(token_id)
        if queue:
            return queue.pop(0)

        balance, allowance = self._balances.get(token_id, [0.0, 0.0])
        return BalanceAllowance(balance=balance, allowance=allowance)

    async def grant_allowance(self, token_id: str) -> None:
        self._record_call("grant_allowance", (token_id,), {})
        balance, _ = self._balances.get(token_id, [0.0, 0.0])
        self._balances[token_id] = [balance, balance]

    # =========================================================================
    # Assertion Helpers
    # =========================================================================

    def _record_call(self, method: str, args: Tuple, kwargs: Dict[str, Any]) -> None:
        self._call_history.append(MethodCall(method=method, args=args, kwargs=kwargs))

    def calls(self, method: Optional[str] = None) -> List[MethodCall]:
        if method is None:
            return list(self._call_history)
        return [c for c in self._call_history if c.method == method]

    def call_count(self, method: str) -> int:
        return len(self.calls(method))

    def order_calls(self, side: Optional[OrderSide] = None) -> List[MethodCall]:
        """Every place_order call, including failed ones."""
        return [c for c in self.calls("place_order") if side is None or c.args[1] == side]

    def order_count(self, side: Optional[OrderSide] = None) -> int:
        """Accepted orders, optionally filtered by side."""
        return len([o for o in self.orders if side is None or o.side == side])

    def last_order(self, side: Optional[OrderSide] = None) -> PlacedOrder:
        matching = [o for o in self.orders if side is None or o.side == side]
        assert matching, f"no {side.value if side else ''} orders placed"
        return matching[-1]

    def reset(self) -> None:
        """Reset all state (between tests)."""
        self.orders.clear()
        self._balances.clear()
        self._queued_readings.clear()
        self._order_failures.clear()
        self._side_failures.clear()
        self._query_failure = None
        self._cancel_failure = None
        self._call_history.clear()
        self._order_seq = 0
