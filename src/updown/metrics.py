"""Prometheus metrics for the Up/Down round trader."""

from prometheus_client import Counter, Gauge, Info

# Bot info
BOT_INFO = Info("updown_bot", "Up/Down round trader information")

# Trading metrics
ORDERS_TOTAL = Counter(
    "updown_orders_total",
    "Total number of orders placed (or simulated)",
    ["side", "purpose", "paper"],
)

ORDER_FAILURES_TOTAL = Counter(
    "updown_order_failures_total",
    "Total number of failed exchange operations",
    ["operation"],
)

SIGNALS_TOTAL = Counter(
    "updown_signals_total",
    "Signals produced by the strategy",
    ["kind"],
)

# Ledger metrics
OPEN_POSITIONS = Gauge(
    "updown_open_positions",
    "Number of positions held in the ledger",
)

REALIZED_PNL_CENTS = Gauge(
    "updown_realized_pnl_cents",
    "Realized profit/loss in cents since start",
)

PENDING_PROTECTIVE_ORDERS = Gauge(
    "updown_pending_protective_orders",
    "Protective limit sells believed to be resting on the book",
)


def record_order(side: str, purpose: str, paper: bool) -> None:
    ORDERS_TOTAL.labels(side=side, purpose=purpose, paper=str(paper).lower()).inc()


def record_failure(operation: str) -> None:
    ORDER_FAILURES_TOTAL.labels(operation=operation).inc()


def record_signal(kind: str) -> None:
    SIGNALS_TOTAL.labels(kind=kind).inc()


def update_ledger_gauges(open_positions: int, realized_pnl: float, pending_orders: int) -> None:
    OPEN_POSITIONS.set(open_positions)
    REALIZED_PNL_CENTS.set(realized_pnl)
    PENDING_PROTECTIVE_ORDERS.set(pending_orders)
