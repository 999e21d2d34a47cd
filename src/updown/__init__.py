"""Up/Down round trader for Polymarket recurring crypto markets."""

__version__ = "0.1.0"
