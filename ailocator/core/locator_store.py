from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from ailocator.core.contracts import LocatorResult

logger = logging.getLogger("ailocator.store")

DEFAULT_CACHE_FILE = ".ai-locator-cache.json"


class LocatorStore:
    """JSON-file backed cache-key → LocatorResult map.

    The whole map is rewritten on every ``set``; there is no eviction and no
    cross-process locking (last writer wins).
    """

    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self._path = Path(path) if path else Path.cwd() / DEFAULT_CACHE_FILE
        self._lock = threading.RLock()
        self._entries: dict[str, LocatorResult] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, LocatorResult]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("cache root must be a JSON object")
            return {key: LocatorResult.from_dict(value) for key, value in raw.items()}
        except (OSError, ValueError, AttributeError, TypeError) as exc:
            logger.error("Locator cache at %s unreadable, starting empty: %s", self._path, exc)
            return {}

    def get(self, key: str) -> LocatorResult | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: LocatorResult) -> None:
        with self._lock:
            self._entries[key] = value
            self._flush()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _flush(self) -> None:
        payload = {key: value.to_dict() for key, value in self._entries.items()}
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".ai-locator-", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as file_handle:
                json.dump(payload, file_handle, indent=2, sort_keys=True)
                file_handle.flush()
                os.fsync(file_handle.fileno())
            os.replace(tmp_name, self._path)
        except OSError:
            logger.exception("Locator cache write to %s failed", self._path)
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
