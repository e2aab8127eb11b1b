"""Watch a copy-trading positions page and announce opened/closed positions to a webhook."""

__version__ = "0.1.0"
