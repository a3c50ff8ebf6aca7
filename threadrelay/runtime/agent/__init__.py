"""Assistant backend adapter."""

from .assistant import AssistantClient
from .event_handler import RunEventHandler

__all__ = ["AssistantClient", "RunEventHandler"]
