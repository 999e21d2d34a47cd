"""
Market domain models.

A ``MarketState`` is the snapshot the strategy evaluates: the upcoming
("next") round that has not started yet and the round currently in play,
each with its Up/Down token ids and prices in cents.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class RoundMarket:
    """One Up/Down round."""
    slug: str
    up_token_id: str
    down_token_id: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    condition_id: Optional[str] = None


@dataclass
class MarketState:
    """Snapshot of the next and current rounds.

    ``time_to_start`` is ms until the next round opens; ``time_to_end`` is ms
    until the current round closes. Token id slots are empty strings when the
    corresponding round is unknown.
    """
    current_market: Optional[RoundMarket] = None
    next_market: Optional[RoundMarket] = None

    up_token_id: str = ""
    down_token_id: str = ""
    up_price: float = 0.0
    down_price: float = 0.0

    current_up_token_id: str = ""
    current_down_token_id: str = ""
    current_up_price: float = 0.0
    current_down_price: float = 0.0

    time_to_start: int = 0
    time_to_end: int = 0

    def valid_token_ids(self) -> set[str]:
        """Token ids of the next and current rounds."""
        return {
            token_id
            for token_id in (
                self.up_token_id,
                self.down_token_id,
                self.current_up_token_id,
                self.current_down_token_id,
            )
            if token_id
        }

    def price_for(self, token_id: str) -> Optional[float]:
        """Latest price for a token, or None if it is in neither round."""
        slots = (
            (self.up_token_id, self.up_price),
            (self.down_token_id, self.down_price),
            (self.current_up_token_id, self.current_up_price),
            (self.current_down_token_id, self.current_down_price),
        )
        for slot_token, price in slots:
            if slot_token and slot_token == token_id:
                return price
        return None

    def price_map(self) -> dict[str, float]:
        """Token id -> price for every known slot."""
        return {token_id: self.price_for(token_id) for token_id in self.valid_token_ids()}
