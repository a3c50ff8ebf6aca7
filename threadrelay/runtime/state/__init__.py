"""In-memory per-chat state."""

from .thread_store import ThreadStore
from .typing_throttle import TypingThrottle

__all__ = ["ThreadStore", "TypingThrottle"]
