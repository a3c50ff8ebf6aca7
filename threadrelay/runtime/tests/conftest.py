"""Shared pytest fixtures for threadrelay.runtime tests."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

_ENV_KEYS = (
    "TELEGRAM_TOKEN",
    "TELEGRAM_API_BASE",
    "TELEGRAM_POLL_TIMEOUT",
    "TELEGRAM_RETRY_DELAY",
    "OPENAI_API_KEY",
    "OPENAI_ASSISTANT_ID",
    "OPENAI_BASE_URL",
    "RESPONSE_TIMEOUT",
    "TYPING_INTERVAL_MS",
    "HEALTH_PORT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    env_path = tmp_path / ".env"
    monkeypatch.setenv("DOTENV_PATH", str(env_path))
    return env_path


@pytest.fixture(autouse=True)
def _reset_cfg(_isolate_env: Path):
    from threadrelay.runtime.config.settings import reset_cfg

    reset_cfg()
    yield
    reset_cfg()


@pytest.fixture()
def env_path(_isolate_env: Path) -> Path:
    return _isolate_env


@pytest.fixture()
def mock_assistant() -> AsyncMock:
    assistant = AsyncMock()
    assistant.create_thread.side_effect = ["T1", "T2", "T3"]
    assistant.complete.return_value = "hi there"
    return assistant


@pytest.fixture()
def mock_gateway() -> AsyncMock:
    return AsyncMock()


class RunEvents:
    """Builds stand-ins for the SDK's ``AssistantStreamEvent`` objects."""

    @staticmethod
    def event(kind: str, **data_attrs) -> SimpleNamespace:
        return SimpleNamespace(event=kind, data=SimpleNamespace(**data_attrs))

    @staticmethod
    def text_block(value: str) -> SimpleNamespace:
        return SimpleNamespace(type="text", text=SimpleNamespace(value=value))

    def delta(self, value: str) -> SimpleNamespace:
        return self.event("thread.message.delta", delta=SimpleNamespace(content=[self.text_block(value)]))

    def completed(self, value: str) -> SimpleNamespace:
        return self.event("thread.message.completed", content=[self.text_block(value)])

    def created(self, run_id: str = "run_1") -> SimpleNamespace:
        return self.event("thread.run.created", id=run_id)


@pytest.fixture()
def run_events() -> RunEvents:
    return RunEvents()
