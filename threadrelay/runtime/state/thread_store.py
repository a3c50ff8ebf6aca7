"""Chat -> assistant thread mapping, held in memory for the process lifetime."""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class ThreadFactory(Protocol):
    async def create_thread(self) -> str: ...


class ThreadStore:
    """Maps each chat id to exactly one assistant thread id.

    Threads are created through *factory* (normally the ``AssistantClient``).
    The store does no locking of its own: two concurrent ``get_or_create_thread``
    calls for a chat without a thread can both create one, and the last write
    wins.  The dispatcher serializes per chat to avoid that.
    """

    def __init__(self, factory: ThreadFactory) -> None:
        self._factory = factory
        self._threads: dict[int, str] = {}

    @property
    def count(self) -> int:
        return len(self._threads)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._threads

    def get(self, chat_id: int) -> str | None:
        return self._threads.get(chat_id)

    async def get_or_create_thread(self, chat_id: int) -> str:
        thread_id = self._threads.get(chat_id)
        if thread_id is not None:
            return thread_id
        thread_id = await self._factory.create_thread()
        self._threads[chat_id] = thread_id
        logger.info("[thread_store] chat=%s -> new thread %s", chat_id, thread_id)
        return thread_id

    async def reset_thread(self, chat_id: int) -> str:
        thread_id = await self._factory.create_thread()
        previous = self._threads.get(chat_id)
        self._threads[chat_id] = thread_id
        logger.info("[thread_store] chat=%s reset %s -> %s", chat_id, previous, thread_id)
        return thread_id
