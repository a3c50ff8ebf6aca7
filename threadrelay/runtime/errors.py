"""Error hierarchy shared by the gateway, the assistant client and the dispatcher.

Adapters translate SDK and transport exceptions into these types at their
boundary so the dispatcher only has to know about ``RelayError``.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base relay error."""


class TransportError(RelayError):
    """Network failure or unreachable service."""


class BackendUnavailable(TransportError):
    """The assistant backend could not be reached or timed out."""


class AuthError(RelayError):
    """Credentials were rejected by Telegram or the assistant backend."""


class InvalidThread(RelayError):
    """The assistant backend does not know the thread id."""

    def __init__(self, thread_id: str, message: str = "") -> None:
        super().__init__(message or f"Unknown thread: {thread_id}")
        self.thread_id = thread_id


class RunFailed(RelayError):
    """An assistant run ended in a failed state."""

    def __init__(self, thread_id: str, message: str = "") -> None:
        super().__init__(message or f"Run failed on thread {thread_id}")
        self.thread_id = thread_id
