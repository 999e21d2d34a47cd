"""Test fixtures for updown tests.

This package provides:
- MockExchangeClient, a recording ExchangeClient double
- Market state builders
- A settings builder with fast timings
"""

from .config import TEST_PRIVATE_KEY, make_settings
from .mock_exchange import MethodCall, MockExchangeClient, PlacedOrder
from .markets import (
    CURRENT_DOWN,
    CURRENT_UP,
    NEXT_DOWN,
    NEXT_UP,
    make_state,
)

__all__ = [
    # Config
    "TEST_PRIVATE_KEY",
    "make_settings",
    # Mocks
    "MethodCall",
    "MockExchangeClient",
    "PlacedOrder",
    # Markets
    "CURRENT_DOWN",
    "CURRENT_UP",
    "NEXT_DOWN",
    "NEXT_UP",
    "make_state",
]
