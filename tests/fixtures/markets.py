"""Market state builders for tests."""

from updown.domain.market import MarketState, RoundMarket

NEXT_UP = "next-up-token"
NEXT_DOWN = "next-down-token"
CURRENT_UP = "current-up-token"
CURRENT_DOWN = "current-down-token"

NEXT_ROUND = RoundMarket(slug="btc-updown-15m-next", up_token_id=NEXT_UP, down_token_id=NEXT_DOWN)
CURRENT_ROUND = RoundMarket(
    slug="btc-updown-15m-current", up_token_id=CURRENT_UP, down_token_id=CURRENT_DOWN
)


def make_state(
    next_round: bool = True,
    current_round: bool = False,
    time_to_start: int = 120_000,
    time_to_end: int = 0,
    up_price: float = 45.0,
    down_price: float = 60.0,
    current_up_price: float = 50.0,
    current_down_price: float = 50.0,
) -> MarketState:
    """Snapshot with the next round and, optionally, a running current round."""
    state = MarketState(time_to_start=time_to_start, time_to_end=time_to_end)
    if next_round:
        state.next_market = NEXT_ROUND
        state.up_token_id = NEXT_UP
        state.down_token_id = NEXT_DOWN
        state.up_price = up_price
        state.down_price = down_price
    if current_round:
        state.current_market = CURRENT_ROUND
        state.current_up_token_id = CURRENT_UP
        state.current_down_token_id = CURRENT_DOWN
        state.current_up_price = current_up_price
        state.current_down_price = current_down_price
    return state
