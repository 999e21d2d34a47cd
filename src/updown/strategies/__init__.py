"""Trading strategies."""

from updown.strategies.preround import PreRoundStrategy

__all__ = ["PreRoundStrategy"]
