"""Inbound message classification.

Text is matched literally: ``/start`` and ``/new`` are commands only when the
whole message is exactly that string (case-sensitive, no trimming).  Every
other text, including the empty string, is forwarded to the assistant.
"""

from __future__ import annotations

from dataclasses import dataclass

START_COMMAND = "/start"
NEW_COMMAND = "/new"

NEW_CONVERSATION_PROMPT = "Let's start a new conversation."

WELCOME_BODY = (
    "Я создан чтобы генерировать ответы на переживания и впоросы людей. "
    "По поводу гэмблинга. Просто перешлите мне сообщение и я попробую помочь вам в ответе."
)


@dataclass(frozen=True)
class StartCommand:
    pass


@dataclass(frozen=True)
class NewCommand:
    pass


@dataclass(frozen=True)
class TextMessage:
    body: str


Command = StartCommand | NewCommand | TextMessage


def classify(text: str | None) -> Command | None:
    """Classify *text*; ``None`` means the update carried no text at all."""
    if text is None:
        return None
    if text == START_COMMAND:
        return StartCommand()
    if text == NEW_COMMAND:
        return NewCommand()
    return TextMessage(text)


def welcome_message(sender_name: str | None) -> str:
    greeting = f"Hello @{sender_name}!" if sender_name else "Hello!"
    return f"{greeting}\n{WELCOME_BODY}"
