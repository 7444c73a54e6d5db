"""
Durable key-value store for unsynced work.

The transport persists the snapshot it failed to deliver so it can be replayed
after a restart. `JsonFileStore` keeps every slot in one JSON object file under
the platform data directory; writes go to a sibling temp file that replaces the
original atomically.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from platformdirs import user_data_dir

logger = logging.getLogger(__name__)

__all__ = [
    "APP_NAME",
    "DEFAULT_STORE_PATH",
    "DurableStore",
    "JsonFileStore",
    "MemoryStore",
    "store_create",
]

APP_NAME = "canvascore"
STORE_FILENAME = "store.json"
DEFAULT_STORE_PATH = Path(user_data_dir(APP_NAME, appauthor=False)) / STORE_FILENAME


class DurableStore(Protocol):
    """String slots that survive a restart"""

    def value_get(self, key: str) -> str | None:
        ...

    def value_set(self, key: str, value: str) -> None:
        ...

    def value_remove(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process store; used by tests and when persistence is not wanted"""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    def value_get(self, key: str) -> str | None:
        return self.values.get(key)

    def value_set(self, key: str, value: str) -> None:
        self.values[key] = value

    def value_remove(self, key: str) -> None:
        self.values.pop(key, None)


class JsonFileStore:
    """Store backed by a single JSON object file"""

    def __init__(self, path: Path | None = None) -> None:
        """
        Initialize store

        Args:
            path: Backing file; defaults to the platform user data directory
        """
        self.path: Path = Path(path).expanduser() if path is not None else DEFAULT_STORE_PATH

    def _data_read(self) -> dict[str, str]:
        """Read all slots; a missing or malformed file reads as empty"""
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("[STORE] Ignoring unreadable store %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("[STORE] Ignoring store %s: top level is not an object", self.path)
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def _data_write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path: Path = self.path.with_name(self.path.name + ".tmp")
        temp_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        os.replace(temp_path, self.path)

    def value_get(self, key: str) -> str | None:
        return self._data_read().get(key)

    def value_set(self, key: str, value: str) -> None:
        data = self._data_read()
        data[key] = value
        self._data_write(data)
        logger.debug("[STORE] Wrote slot '%s' (%d bytes)", key, len(value))

    def value_remove(self, key: str) -> None:
        data = self._data_read()
        if key not in data:
            return
        del data[key]
        self._data_write(data)
        logger.debug("[STORE] Cleared slot '%s'", key)


def store_create(path: str | None) -> JsonFileStore:
    """Build the file store for a configured path (None selects the default)"""
    return JsonFileStore(Path(path) if path else None)
