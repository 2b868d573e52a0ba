"""Goose Tap: authoritative game-state ledger for a Telegram tap-to-earn game."""

__version__ = "0.1.0"
