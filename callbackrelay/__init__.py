"""Callback relay: WebSocket push with HTTP polling fallback for wallet callbacks."""

__version__ = "0.1.0"
