"""Shared pytest fixtures for updown tests.

This file provides common fixtures used across all test modules:
- Settings fixtures (live and paper)
- Mock exchange client
- Ledger, executor and strategy wiring
"""

import pytest

from updown.core.config import Settings
from updown.services.execution import OrderExecutor
from updown.services.ledger import PositionLedger
from updown.services.risk import RiskPolicy
from updown.strategies.preround import PreRoundStrategy
from tests.fixtures.config import make_settings
from tests.fixtures.mock_exchange import MockExchangeClient


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    """Live-mode settings with fast timings."""
    return make_settings()


@pytest.fixture
def paper_settings() -> Settings:
    """Paper-mode settings."""
    return make_settings(paper_trading=True)


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def mock_exchange() -> MockExchangeClient:
    """Connected mock exchange with instant fills."""
    return MockExchangeClient()


@pytest.fixture
def ledger() -> PositionLedger:
    return PositionLedger()


@pytest.fixture
def executor(settings, ledger, mock_exchange) -> OrderExecutor:
    """Live executor wired to the mock exchange."""
    return OrderExecutor(settings, ledger, mock_exchange)


@pytest.fixture
def paper_executor(paper_settings, ledger, mock_exchange) -> OrderExecutor:
    """Paper executor; the mock exchange must never be called."""
    return OrderExecutor(paper_settings, ledger, mock_exchange)


@pytest.fixture
def risk_policy(settings) -> RiskPolicy:
    return RiskPolicy(settings)


@pytest.fixture
def strategy(settings, risk_policy) -> PreRoundStrategy:
    return PreRoundStrategy(settings, risk_policy)
