"""Application settings -- reads from environment and ``.env`` file.

All configuration is consolidated here.  Values are read once at startup and
stay fixed for the lifetime of the relay; ``reload()`` exists for tests.
"""

from __future__ import annotations

import logging
import os
from typing import ClassVar

from ..util.env_file import EnvFile

REQUIRED_ENV_KEYS: tuple[str, ...] = (
    "TELEGRAM_TOKEN",
    "OPENAI_API_KEY",
    "OPENAI_ASSISTANT_ID",
)

DEFAULT_TELEGRAM_API_BASE = "https://api.telegram.org"


class Settings:
    """Runtime configuration sourced from environment variables and ``.env``."""

    _DOTENV_ENV: ClassVar[str] = "DOTENV_PATH"

    def __init__(self) -> None:
        self.env = EnvFile(os.getenv(self._DOTENV_ENV) or ".env")
        self.reload()

    def reload(self) -> None:
        """Re-read the ``.env`` file and environment variables."""
        e = self._read

        self.telegram_token: str = e("TELEGRAM_TOKEN")
        self.telegram_api_base: str = (e("TELEGRAM_API_BASE") or DEFAULT_TELEGRAM_API_BASE).rstrip("/")
        self.telegram_poll_timeout: int = int(e("TELEGRAM_POLL_TIMEOUT") or "30")
        self.telegram_retry_delay: float = float(e("TELEGRAM_RETRY_DELAY") or "3")

        self.openai_api_key: str = e("OPENAI_API_KEY")
        self.openai_assistant_id: str = e("OPENAI_ASSISTANT_ID")
        self.openai_base_url: str = e("OPENAI_BASE_URL")
        self.response_timeout: float = float(e("RESPONSE_TIMEOUT") or "0")

        self.typing_interval_ms: int = int(e("TYPING_INTERVAL_MS") or "5000")
        self.health_port: int = int(e("HEALTH_PORT") or "0")

        level = (e("LOG_LEVEL") or "INFO").upper()
        self.log_level: int = logging.getLevelNamesMapping().get(level, logging.INFO)

    def missing(self) -> list[str]:
        """Return the required keys that have no value."""
        return [key for key in REQUIRED_ENV_KEYS if not self._read(key)]

    # -- helpers -----------------------------------------------------------

    def _read(self, key: str) -> str:
        return self.env.read(key) or os.getenv(key, "")


# Module-level singleton
cfg = Settings()


def reset_cfg() -> None:
    """Rebuild ``cfg`` from the current environment -- used by tests."""
    global cfg
    cfg = Settings()
