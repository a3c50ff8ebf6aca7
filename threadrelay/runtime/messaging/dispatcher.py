"""Dispatcher -- routes inbound chat messages to the assistant and back."""

from __future__ import annotations

import logging
from typing import Protocol

from ..agent.assistant import AssistantClient
from ..errors import RelayError
from ..state.thread_store import ThreadStore
from ..state.typing_throttle import TypingThrottle
from ..util.chat_locks import ChatLocks
from .commands import (
    NEW_CONVERSATION_PROMPT,
    NewCommand,
    StartCommand,
    TextMessage,
    classify,
    welcome_message,
)
from .telegram import IncomingMessage

logger = logging.getLogger(__name__)

FAILURE_NOTICE = "Something went wrong. Please try again."


class ChatGateway(Protocol):
    async def send_message(self, chat_id: int, text: str) -> None: ...

    async def send_typing(self, chat_id: int) -> None: ...


class Dispatcher:
    """Handles one inbound message end to end.

    ``/start`` answers with the welcome text, ``/new`` replaces the chat's
    thread and opens it with a fixed prompt, and any other text is posted to
    the chat's thread.  The assistant's reply is sent back to the same chat.
    Work for one chat is serialized; different chats run concurrently.
    """

    def __init__(
        self,
        assistant: AssistantClient,
        threads: ThreadStore,
        gateway: ChatGateway,
        throttle: TypingThrottle | None = None,
        locks: ChatLocks | None = None,
    ) -> None:
        self._assistant = assistant
        self._threads = threads
        self._gateway = gateway
        self._throttle = throttle or TypingThrottle()
        self._locks = locks or ChatLocks()

    async def handle(self, message: IncomingMessage) -> None:
        chat_id = message.chat_id
        command = classify(message.text)
        if command is None:
            logger.debug("[dispatcher.handle] chat=%s update=%s has no text, ignoring", chat_id, message.update_id)
            return

        try:
            async with self._locks.hold(chat_id):
                match command:
                    case StartCommand():
                        logger.info("[dispatcher.handle] chat=%s /start from %s", chat_id, message.sender_name)
                        await self._gateway.send_message(chat_id, welcome_message(message.sender_name))
                    case NewCommand():
                        thread_id = await self._threads.reset_thread(chat_id)
                        await self._converse(chat_id, thread_id, NEW_CONVERSATION_PROMPT)
                    case TextMessage(body=body):
                        thread_id = await self._threads.get_or_create_thread(chat_id)
                        await self._converse(chat_id, thread_id, body)
        except Exception:
            logger.exception("[dispatcher.handle] chat=%s update=%s failed", chat_id, message.update_id)
            await self._notify_failure(chat_id)

    async def _converse(self, chat_id: int, thread_id: str, text: str) -> None:
        logger.info("[dispatcher.converse] chat=%s thread=%s text=%r", chat_id, thread_id, text[:80])
        await self._signal_typing(chat_id)
        await self._assistant.post_message(thread_id, text)

        async def on_delta(_delta: str) -> None:
            await self._signal_typing(chat_id)

        reply = await self._assistant.complete(thread_id, on_delta=on_delta)
        if not reply:
            logger.warning("[dispatcher.converse] chat=%s thread=%s empty reply, nothing sent", chat_id, thread_id)
            return
        await self._gateway.send_message(chat_id, reply)

    async def _signal_typing(self, chat_id: int) -> None:
        if not self._throttle.should_signal(chat_id):
            return
        try:
            await self._gateway.send_typing(chat_id)
        except RelayError:
            logger.warning("[dispatcher.typing] chat=%s typing indicator failed", chat_id, exc_info=True)

    async def _notify_failure(self, chat_id: int) -> None:
        try:
            await self._gateway.send_message(chat_id, FAILURE_NOTICE)
        except Exception:
            logger.warning("[dispatcher.handle] chat=%s could not deliver failure notice", chat_id, exc_info=True)
