"""Relay runtime -- gateway, dispatcher, assistant client and per-chat state."""

__version__ = "0.1.0"
