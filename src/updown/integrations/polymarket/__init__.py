"""Polymarket integration."""

from updown.integrations.polymarket.clob import CLOBClient, clamp_price

__all__ = ["CLOBClient", "clamp_price"]
