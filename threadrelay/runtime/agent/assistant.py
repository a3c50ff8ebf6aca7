"""Assistant client -- wraps the OpenAI Assistants threads API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from contextlib import aclosing, contextmanager

import openai
from openai import AsyncOpenAI

from ..errors import AuthError, BackendUnavailable, InvalidThread, RelayError, RunFailed
from .event_handler import RunEventHandler

logger = logging.getLogger(__name__)

DeltaFn = Callable[[str], Awaitable[None]]


def translate_error(exc: openai.OpenAIError, thread_id: str | None = None) -> RelayError:
    """Map an OpenAI SDK exception onto the relay error hierarchy."""
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AuthError(str(exc))
    if isinstance(exc, openai.NotFoundError) and thread_id:
        return InvalidThread(thread_id, str(exc))
    if isinstance(exc, openai.APIConnectionError):
        return BackendUnavailable(str(exc))
    if isinstance(exc, openai.APIStatusError) and exc.status_code >= 500:
        return BackendUnavailable(str(exc))
    return RelayError(str(exc))


@contextmanager
def _backend_errors(thread_id: str | None = None) -> Iterator[None]:
    try:
        yield
    except openai.OpenAIError as exc:
        raise translate_error(exc, thread_id) from exc


class AssistantClient:
    """Creates threads, posts messages and streams assistant runs."""

    def __init__(
        self,
        api_key: str,
        assistant_id: str,
        *,
        base_url: str | None = None,
        response_timeout: float = 0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.assistant_id = assistant_id
        self.response_timeout = response_timeout
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url or None)

    async def create_thread(self) -> str:
        with _backend_errors():
            thread = await self._client.beta.threads.create()
        logger.debug("[assistant.create_thread] %s", thread.id)
        return thread.id

    async def post_message(self, thread_id: str, text: str, role: str = "user") -> None:
        logger.info("[assistant.post_message] thread=%s text=%r (len=%d)", thread_id, text[:80], len(text))
        with _backend_errors(thread_id):
            await self._client.beta.threads.messages.create(thread_id, role=role, content=text)

    async def run_and_stream(
        self,
        thread_id: str,
        assistant_id: str | None = None,
        *,
        handler: RunEventHandler | None = None,
    ) -> AsyncIterator[str]:
        """Start a run on *thread_id* and yield its text deltas as they arrive.

        The iterator ends when the backend closes the run stream.  A run that
        ends failed, cancelled or expired raises ``RunFailed`` after the last
        delta.
        """
        handler = handler or RunEventHandler()
        assistant = assistant_id or self.assistant_id
        logger.info("[assistant.run] thread=%s assistant=%s", thread_id, assistant)
        with _backend_errors(thread_id):
            async with self._client.beta.threads.runs.stream(
                thread_id=thread_id,
                assistant_id=assistant,
            ) as stream:
                async for event in stream:
                    delta = handler(event)
                    if delta:
                        yield delta
        if handler.error:
            raise RunFailed(thread_id, handler.error)

    async def complete(self, thread_id: str, on_delta: DeltaFn | None = None) -> str:
        """Run the assistant on *thread_id* and return its aggregated reply.

        An active run blocks new messages on its thread, so a run left before
        it reaches a terminal state (timeout, or an error raised by
        *on_delta*) is cancelled on the backend.
        """
        handler = RunEventHandler()

        async def _consume() -> None:
            async with aclosing(self.run_and_stream(thread_id, handler=handler)) as deltas:
                async for delta in deltas:
                    if on_delta is not None:
                        await on_delta(delta)

        try:
            if self.response_timeout > 0:
                await asyncio.wait_for(_consume(), timeout=self.response_timeout)
            else:
                await _consume()
        except TimeoutError as exc:
            await self._cancel_abandoned_run(thread_id, handler)
            partial = handler.final_text
            logger.warning(
                "[assistant.complete] thread=%s timed out after %ss, partial_len=%d",
                thread_id, self.response_timeout, len(partial),
            )
            if not partial:
                raise BackendUnavailable(
                    f"No reply on thread {thread_id} within {self.response_timeout}s"
                ) from exc
            return partial
        except Exception:
            await self._cancel_abandoned_run(thread_id, handler)
            raise

        text = handler.final_text
        logger.info("[assistant.complete] thread=%s run=%s text_len=%d", thread_id, handler.run_id, len(text))
        return text

    async def _cancel_abandoned_run(self, thread_id: str, handler: RunEventHandler) -> None:
        if not handler.run_id or handler.finished:
            return
        logger.info("[assistant.cancel] thread=%s run=%s", thread_id, handler.run_id)
        try:
            with _backend_errors(thread_id):
                await self._client.beta.threads.runs.cancel(handler.run_id, thread_id=thread_id)
        except RelayError:
            logger.warning(
                "[assistant.cancel] thread=%s run=%s could not be cancelled",
                thread_id, handler.run_id, exc_info=True,
            )

    async def close(self) -> None:
        try:
            await self._client.close()
        except Exception:
            logger.debug("Error closing OpenAI client", exc_info=True)
