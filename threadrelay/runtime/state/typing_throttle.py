"""Rate limit for Telegram "typing" chat actions."""

from __future__ import annotations

import time

DEFAULT_INTERVAL_MS = 5000


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class TypingThrottle:
    """Allows one typing signal per chat every *interval_ms* milliseconds.

    The first call for a chat always signals.  A later call signals only when
    strictly more than the interval has passed since the last signal.
    """

    def __init__(self, interval_ms: int = DEFAULT_INTERVAL_MS) -> None:
        self.interval_ms = interval_ms
        self._last: dict[int, int] = {}

    def should_signal(self, chat_id: int, now_ms: int | None = None) -> bool:
        now = _monotonic_ms() if now_ms is None else now_ms
        last = self._last.get(chat_id)
        if last is not None and last + self.interval_ms >= now:
            return False
        self._last[chat_id] = now
        return True

    def forget(self, chat_id: int) -> None:
        self._last.pop(chat_id, None)
