"""Position Reconciler - syncs the ledger from exchange balances.

Runs on a cadence driven by the app. For each token of the rounds in play it
reads the exchange balance and hands it to ``PositionLedger.reconcile``,
which discovers out-of-band holdings, corrects drifted sizes and clears
positions that are gone. Query failures are logged per token; one bad token
never stops the rest.
"""

from typing import Optional

import structlog

from updown.core.config import Settings
from updown.domain.market import MarketState
from updown.domain.order import Outcome
from updown.integrations.base import ExchangeClient
from updown.services.ledger import PositionLedger

log = structlog.get_logger()


class PositionReconciler:
    """Brings the ledger in line with exchange truth for the current markets."""

    def __init__(
        self,
        settings: Settings,
        ledger: PositionLedger,
        client: Optional[ExchangeClient] = None,
    ):
        self._settings = settings
        self._ledger = ledger
        self._client = client
        self._log = log.bind(component="reconciler")

    def attach_client(self, client: Optional[ExchangeClient]) -> None:
        self._client = client

    async def sync(self, state: MarketState) -> int:
        """Reconcile every token of the next and current rounds.

        Returns:
            Number of tokens successfully reconciled. Zero in paper mode or
            without a connected client.
        """
        if self._settings.paper_trading:
            return 0
        if self._client is None or not self._client.is_connected:
            self._log.debug("reconcile_skipped_no_client")
            return 0

        synced = 0
        for token_id, outcome, price in self._tokens(state):
            try:
                balances = await self._client.get_balance_allowance(token_id)
            except Exception as e:
                self._log.warning(
                    "reconcile_query_failed",
                    token_id=token_id[:16],
                    outcome=outcome.value,
                    error=str(e),
                )
                continue

            self._ledger.reconcile(token_id, outcome, balances.balance, price)
            synced += 1

        self._log.debug("reconcile_complete", tokens=synced, positions=len(self._ledger))
        return synced

    @staticmethod
    def _tokens(state: MarketState) -> list[tuple[str, Outcome, float]]:
        slots = [
            (state.up_token_id, Outcome.UP, state.up_price),
            (state.down_token_id, Outcome.DOWN, state.down_price),
        ]
        if state.current_market is not None:
            slots += [
                (state.current_up_token_id, Outcome.UP, state.current_up_price),
                (state.current_down_token_id, Outcome.DOWN, state.current_down_price),
            ]

        seen: set[str] = set()
        tokens = []
        for token_id, outcome, price in slots:
            if token_id and token_id not in seen:
                seen.add(token_id)
                tokens.append((token_id, outcome, price))
        return tokens
