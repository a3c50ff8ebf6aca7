"""Messaging -- Telegram gateway, command classification and dispatch."""

from .commands import classify
from .dispatcher import FAILURE_NOTICE, Dispatcher
from .telegram import IncomingMessage, TelegramGateway, split_message

__all__ = [
    "FAILURE_NOTICE",
    "Dispatcher",
    "IncomingMessage",
    "TelegramGateway",
    "classify",
    "split_message",
]
