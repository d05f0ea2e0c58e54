# src/learning_companion/tasks/task_cache.py

from __future__ import annotations

import contextlib
import json
import logging
import os
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


def snapshot_key(owner_id: str) -> str:
    return f"lc-tasks:{owner_id}"


def queue_key(owner_id: str) -> str:
    return f"lc-queue:{owner_id}"


class JsonFileCache:
    """
    Flat key-value blob persisted as one JSON object on disk.

    Values are opaque strings. Every write rewrites the whole file atomically
    (tmp file + os.replace). A missing or corrupt file reads as empty.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._data = self._read()
        logger.info("JsonFileCache ready path=%s keys=%d", self._path, len(self._data))

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read cache %s; starting empty.", self._path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Cache %s is not a JSON object; starting empty.", self._path)
            return {}
        return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False), "utf-8")
        os.replace(tmp, self._path)
        with contextlib.suppress(OSError):
            # Task titles and notes are personal; keep the file private on disk.
            os.chmod(self._path, 0o600)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()


class MemoryCache:
    """In-process cache; nothing survives a restart."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)
