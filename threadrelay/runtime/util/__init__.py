"""Shared utilities."""

from .chat_locks import ChatLocks
from .env_file import EnvFile

__all__ = [
    "ChatLocks",
    "EnvFile",
]
