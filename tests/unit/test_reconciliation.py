"""
Unit tests for PositionReconciler.

Tests verify:
- Out-of-band positions are discovered with the market price as cost basis
- Vanished positions are cleared along with their protective order
- Dust balances never create positions
- Per-token query failures are isolated
- Paper mode and missing clients are no-ops
"""

import pytest

from updown.core.errors import NetworkError
from updown.domain.order import Outcome
from updown.services.ledger import PositionLedger
from updown.services.reconciliation import PositionReconciler
from tests.fixtures.config import make_settings
from tests.fixtures.markets import CURRENT_DOWN, CURRENT_UP, NEXT_DOWN, NEXT_UP, make_state
from tests.fixtures.mock_exchange import MockExchangeClient


@pytest.fixture
def reconciler(settings, ledger, mock_exchange) -> PositionReconciler:
    return PositionReconciler(settings, ledger, mock_exchange)


class TestSync:
    """Tests for sync()."""

    @pytest.mark.asyncio
    async def test_discovers_position(self, reconciler, ledger, mock_exchange):
        mock_exchange.set_balance(NEXT_UP, 6.4)

        await reconciler.sync(make_state(up_price=44.0))

        position = ledger.get(NEXT_UP)
        assert position.size == 6
        assert position.avg_buy_price == 44.0
        assert position.outcome == Outcome.UP

    @pytest.mark.asyncio
    async def test_dust_balance_creates_no_position(self, reconciler, ledger, mock_exchange):
        """Verify a 0.05 balance leaves the ledger empty."""
        mock_exchange.set_balance(NEXT_UP, 0.05)

        await reconciler.sync(make_state())

        assert len(ledger) == 0

    @pytest.mark.asyncio
    async def test_clears_vanished_position_and_pending_order(self, reconciler, ledger):
        """Verify a filled protective sell is noticed once the balance is gone."""
        ledger.apply(NEXT_DOWN, Outcome.DOWN, 5, 40.0)
        ledger.set_pending_order(NEXT_DOWN, "order-1")

        await reconciler.sync(make_state())

        assert not ledger.holds(NEXT_DOWN)
        assert not ledger.has_pending_order(NEXT_DOWN)

    @pytest.mark.asyncio
    async def test_queries_current_round_tokens(self, reconciler, mock_exchange):
        synced = await reconciler.sync(make_state(current_round=True))

        queried = {c.args[0] for c in mock_exchange.calls("get_balance_allowance")}
        assert queried == {NEXT_UP, NEXT_DOWN, CURRENT_UP, CURRENT_DOWN}
        assert synced == 4

    @pytest.mark.asyncio
    async def test_query_failure_is_logged_not_raised(self, reconciler, ledger, mock_exchange):
        ledger.apply(NEXT_UP, Outcome.UP, 5, 40.0)
        mock_exchange.fail_balance_queries(NetworkError("timeout"))

        synced = await reconciler.sync(make_state())

        assert synced == 0
        assert ledger.get(NEXT_UP).size == 5

    @pytest.mark.asyncio
    async def test_paper_mode_is_a_no_op(self, ledger, mock_exchange):
        reconciler = PositionReconciler(make_settings(paper_trading=True), ledger, mock_exchange)

        assert await reconciler.sync(make_state()) == 0
        assert mock_exchange.calls() == []

    @pytest.mark.asyncio
    async def test_disconnected_client_is_a_no_op(self, settings, ledger):
        client = MockExchangeClient(connected=False)
        reconciler = PositionReconciler(settings, ledger, client)

        assert await reconciler.sync(make_state()) == 0
        assert client.calls() == []

    @pytest.mark.asyncio
    async def test_without_client(self, settings, ledger):
        reconciler = PositionReconciler(settings, ledger)
        assert await reconciler.sync(make_state()) == 0
