"""External integrations."""

from updown.integrations.base import ExchangeClient

__all__ = ["ExchangeClient"]
