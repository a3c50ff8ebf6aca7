"""Per-chat mutual exclusion for the message pipeline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class ChatLocks:
    """One ``asyncio.Lock`` per chat id, created on demand.

    A lock is dropped again once nobody holds or waits for it, so the map only
    grows with the number of chats that currently have work in flight.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, chat_id: int) -> bool:
        lock = self._locks.get(chat_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, chat_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = self._locks[chat_id] = asyncio.Lock()
        self._users[chat_id] = self._users.get(chat_id, 0) + 1
        if lock.locked():
            logger.debug("[chat_locks] chat=%s busy, waiting", chat_id)
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[chat_id] - 1
            if remaining:
                self._users[chat_id] = remaining
            else:
                del self._users[chat_id]
                del self._locks[chat_id]
