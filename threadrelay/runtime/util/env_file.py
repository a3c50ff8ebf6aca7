"""Read-only ``.env`` file access.

Lines are ``KEY=value``; blank lines and ``#`` comments are skipped and a
single layer of matching quotes around the value is removed.  The file is
re-read on every call so edits are picked up by ``Settings.reload()``.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class EnvFile:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self, key: str) -> str:
        return self.read_all().get(key, "")

    def read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            lines = self.path.read_text().splitlines()
        except OSError as exc:
            logger.warning("Failed to read %s: %s", self.path, exc)
            return {}

        values: dict[str, str] = {}
        for raw in lines:
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export "):]
            key, _, value = line.partition("=")
            values[key.strip()] = _unquote(value.strip())
        return values


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value
