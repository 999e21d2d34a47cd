"""
Order and position domain models.

Prices are in cents (0-100) on the ledger side; the exchange client converts
to dollar prices when submitting orders.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Outcome(str, Enum):
    """One of the two complementary shares in a round."""
    UP = "Up"
    DOWN = "Down"


class OrderSide(str, Enum):
    """Order side (buy or sell)."""
    BUY = "BUY"
    SELL = "SELL"


@dataclass
class Position:
    """Holdings in a single outcome token.

    A position only exists while size > 0. ``avg_buy_price`` is the
    size-weighted mean of buy fills and is never touched by sells.
    """
    token_id: str
    outcome: Outcome
    size: float
    avg_buy_price: float
    current_price: float

    @property
    def cost_basis(self) -> float:
        """Total cost in cents."""
        return self.avg_buy_price * self.size

    @property
    def unrealized_pnl(self) -> float:
        """Mark-to-market profit in cents."""
        return (self.current_price - self.avg_buy_price) * self.size

    def to_dict(self) -> dict:
        return {
            "token_id": self.token_id,
            "outcome": self.outcome.value,
            "size": self.size,
            "avg_buy_price": round(self.avg_buy_price, 4),
            "current_price": self.current_price,
            "unrealized_pnl": round(self.unrealized_pnl, 4),
        }


@dataclass(frozen=True)
class TradeRecord:
    """One executed leg. Append-only."""
    token_id: str
    outcome: Outcome
    side: OrderSide
    price: float
    size: float
    pnl: Optional[float] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class BalanceAllowance:
    """Conditional token balance and sellable allowance, in shares."""
    balance: float
    allowance: float

    @classmethod
    def from_raw(cls, raw: dict) -> "BalanceAllowance":
        """Build from an API response (fixed-point, 6 decimals)."""
        raw = raw or {}
        return cls(
            balance=float(raw.get("balance") or 0) / 1e6,
            allowance=float(raw.get("allowance") or 0) / 1e6,
        )
