"""Assistant run stream event handler."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

_TERMINAL_EVENTS = frozenset({
    "thread.run.completed",
    "thread.run.failed",
    "thread.run.cancelled",
    "thread.run.expired",
    "thread.run.incomplete",
    "thread.run.requires_action",
    "error",
})


def _text_parts(blocks: Any) -> list[str]:
    """Pull the text values out of message content (or content delta) blocks."""
    parts: list[str] = []
    for block in blocks or []:
        if getattr(block, "type", None) != "text":
            continue
        text = getattr(block, "text", None)
        value = getattr(text, "value", None)
        if value:
            parts.append(value)
    return parts


def _error_message(data: Any, fallback: str) -> str:
    last_error = getattr(data, "last_error", None)
    if last_error is not None and getattr(last_error, "message", None):
        return last_error.message
    if getattr(data, "message", None):
        return data.message
    return fallback


class RunEventHandler:
    """Consumes ``AssistantStreamEvent`` objects from one run.

    Calling the handler with an event returns the text delta it carries (or
    ``None``) and keeps track of completed text blocks, errors and whether the
    run reached a terminal state.
    """

    def __init__(self) -> None:
        self.completed: list[str] = []
        self.deltas: list[str] = []
        self.error: str | None = None
        self.run_id: str | None = None
        self.finished = False

    @property
    def final_text(self) -> str:
        if self.completed:
            return "\n\n".join(self.completed)
        return "".join(self.deltas)

    def __call__(self, event: Any) -> str | None:
        kind = getattr(event, "event", "")
        data = getattr(event, "data", None)

        if kind == "thread.message.delta":
            delta = "".join(_text_parts(getattr(getattr(data, "delta", None), "content", None)))
            if delta:
                self.deltas.append(delta)
                return delta
            return None

        if kind == "thread.message.completed":
            text = "".join(_text_parts(getattr(data, "content", None)))
            if text:
                self.completed.append(text)
            return None

        if kind == "thread.run.created":
            self.run_id = getattr(data, "id", None)
            logger.debug("[run_events] run %s created", self.run_id)
        elif kind == "thread.run.failed":
            self.error = _error_message(data, "run failed")
        elif kind in ("thread.run.cancelled", "thread.run.expired"):
            self.error = f"run {kind.rsplit('.', 1)[-1]}"
        elif kind == "thread.run.requires_action":
            self.error = "run requires tool output, which this relay does not provide"
        elif kind == "error":
            self.error = _error_message(data, "stream error")

        if kind in _TERMINAL_EVENTS:
            if self.error:
                logger.warning("[run_events] run %s ended with %s: %s", self.run_id, kind, self.error)
            self.finished = True
        return None
