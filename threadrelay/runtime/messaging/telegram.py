"""Telegram Bot API gateway -- long polling in, messages and chat actions out."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import aiohttp

from ..errors import AuthError, RelayError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.telegram.org"
TELEGRAM_MAX_LEN = 4096
SEND_TIMEOUT = 30


@dataclass(frozen=True)
class IncomingMessage:
    chat_id: int
    text: str | None
    sender_name: str | None = None
    update_id: int = 0
    message_id: int | None = None


MessageHandler = Callable[[IncomingMessage], Awaitable[None]]


def split_message(text: str, max_len: int = TELEGRAM_MAX_LEN) -> list[str]:
    """Split *text* into chunks Telegram accepts, preferring line then word breaks."""
    chunks: list[str] = []
    remaining = text
    while len(remaining) > max_len:
        cut = remaining.rfind("\n", 0, max_len + 1)
        if cut <= 0:
            cut = remaining.rfind(" ", 0, max_len + 1)
        if cut <= 0:
            chunks.append(remaining[:max_len])
            remaining = remaining[max_len:]
            continue
        chunks.append(remaining[:cut])
        remaining = remaining[cut + 1:]
    if remaining or not chunks:
        chunks.append(remaining)
    return chunks


def parse_update(update: dict[str, Any]) -> IncomingMessage | None:
    """Turn a ``getUpdates`` entry into an ``IncomingMessage``.

    Returns ``None`` for updates that are not new messages (edits, callback
    queries, channel posts) or that lack a chat id.  Non-text messages are
    returned with ``text=None``.
    """
    message = update.get("message")
    if not isinstance(message, dict):
        return None
    chat = message.get("chat") or {}
    chat_id = chat.get("id")
    if not isinstance(chat_id, int):
        return None
    sender = chat.get("username") or (message.get("from") or {}).get("username")
    text = message.get("text")
    return IncomingMessage(
        chat_id=chat_id,
        text=text if isinstance(text, str) else None,
        sender_name=sender,
        update_id=update.get("update_id", 0),
        message_id=message.get("message_id"),
    )


class TelegramGateway:
    """Chat gateway over the Telegram Bot API.

    Each inbound message is handed to the registered handler in its own task,
    so a slow assistant run for one chat does not hold up polling.
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        poll_timeout: int = 30,
        retry_delay: float = 3.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base = f"{api_base.rstrip('/')}/bot{token}"
        self.poll_timeout = poll_timeout
        self.retry_delay = retry_delay
        self._session = session
        self._owns_session = session is None
        self._handler: MessageHandler | None = None
        self._offset = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._poll_task: asyncio.Task[int] | None = None
        self._stopping = False
        self.polling = False

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def on_message(self, handler: MessageHandler) -> None:
        self._handler = handler

    # -- outbound ----------------------------------------------------------

    async def send_message(self, chat_id: int, text: str) -> None:
        for chunk in split_message(text):
            await self._call("sendMessage", {"chat_id": chat_id, "text": chunk}, timeout=SEND_TIMEOUT)

    async def send_typing(self, chat_id: int) -> None:
        await self._call("sendChatAction", {"chat_id": chat_id, "action": "typing"}, timeout=SEND_TIMEOUT)

    # -- inbound -----------------------------------------------------------

    async def poll_once(self) -> int:
        updates = await self._call(
            "getUpdates",
            {
                "offset": self._offset,
                "timeout": self.poll_timeout,
                "allowed_updates": ["message"],
            },
            timeout=self.poll_timeout + 10,
        )
        if not isinstance(updates, list):
            raise TransportError("Invalid getUpdates response: result is not a list")

        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self._offset = max(self._offset, update_id + 1)
            message = parse_update(update)
            if message is None:
                logger.debug("[telegram.poll] skipping update %s (not a message)", update_id)
                continue
            self._dispatch(message)
        return len(updates)

    async def run(self) -> None:
        """Long-poll until ``stop()``; transport errors back off and retry."""
        self._stopping = False
        self.polling = True
        logger.info("[telegram.run] polling started (timeout=%ss)", self.poll_timeout)
        try:
            while not self._stopping:
                self._poll_task = asyncio.create_task(self.poll_once())
                try:
                    await self._poll_task
                except asyncio.CancelledError:
                    current = asyncio.current_task()
                    if self._stopping and not (current and current.cancelling()):
                        break
                    raise
                except AuthError:
                    logger.error("[telegram.run] bot token rejected, stopping")
                    raise
                except RelayError as exc:
                    logger.warning("[telegram.run] poll failed: %s (retrying in %ss)", exc, self.retry_delay)
                    await asyncio.sleep(self.retry_delay)
        finally:
            self._poll_task = None
            self.polling = False
            logger.info("[telegram.run] polling stopped")

    async def stop(self) -> None:
        self._stopping = True
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()

    async def wait_idle(self) -> None:
        """Wait for every in-flight message handler to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.stop()
        if self._session and self._owns_session:
            try:
                await self._session.close()
            except Exception:
                logger.debug("Error closing Telegram session", exc_info=True)
            self._session = None

    # -- internals ---------------------------------------------------------

    def _dispatch(self, message: IncomingMessage) -> None:
        if self._handler is None:
            logger.warning("[telegram.dispatch] no handler registered, dropping update %s", message.update_id)
            return
        task = asyncio.create_task(self._run_handler(self._handler, message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _run_handler(handler: MessageHandler, message: IncomingMessage) -> None:
        try:
            await handler(message)
        except Exception:
            logger.exception("[telegram.dispatch] handler failed for chat=%s update=%s", message.chat_id, message.update_id)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _call(self, method: str, payload: dict[str, Any], *, timeout: float) -> Any:
        session = self._get_session()
        try:
            async with session.post(
                f"{self._base}/{method}",
                json=payload,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                status = resp.status
                try:
                    body = await resp.json(content_type=None)
                except ValueError as exc:
                    raise TransportError(f"Telegram {method}: HTTP {status} with non-JSON body") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"Telegram {method} failed: {exc}") from exc
        except TimeoutError as exc:
            raise TransportError(f"Telegram {method} timed out after {timeout}s") from exc

        if not isinstance(body, dict):
            raise TransportError(f"Telegram {method}: unexpected response {body!r:.200}")
        if body.get("ok"):
            return body.get("result")

        code = body.get("error_code", status)
        description = body.get("description", "unknown Telegram error")
        if code == 401:
            raise AuthError(f"Telegram {method} rejected the bot token: {description}")
        if code == 429 or (isinstance(code, int) and code >= 500):
            raise TransportError(f"Telegram {method} failed ({code}): {description}")
        raise RelayError(f"Telegram {method} failed ({code}): {description}")
