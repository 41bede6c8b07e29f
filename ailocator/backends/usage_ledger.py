from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger("ailocator.usage")

DEFAULT_USAGE_FILE = ".ai-locator-usage.json"


@dataclass(frozen=True)
class UsageEntry:
    ai_client: str
    model: str
    description: str
    url: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    success: bool = True
    selector: str | None = None
    error: str | None = None
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        return {
            "timestamp": payload["timestamp"] or datetime.now(tz=timezone.utc).isoformat(),
            "aiClient": payload["ai_client"],
            "model": payload["model"],
            "description": payload["description"],
            "url": payload["url"],
            "promptTokens": payload["prompt_tokens"],
            "completionTokens": payload["completion_tokens"],
            "totalTokens": payload["total_tokens"],
            "success": payload["success"],
            "selector": payload["selector"],
            "error": payload["error"],
        }


class UsageLedger:
    """Token accounting per backend call, kept apart from the locator cache."""

    def __init__(
        self,
        client_name: str = "Unknown",
        enabled: bool = False,
        path: str | os.PathLike[str] | None = None,
    ) -> None:
        self._client_name = client_name
        self._enabled = enabled
        self._path = Path(path) if path else Path.cwd() / DEFAULT_USAGE_FILE
        if enabled:
            logger.info("Usage tracking enabled at %s (client=%s)", self._path, client_name)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def path(self) -> Path:
        return self._path

    def _empty(self) -> dict[str, Any]:
        return {
            "aiClient": self._client_name,
            "totalCalls": 0,
            "totalTokens": 0,
            "totalPromptTokens": 0,
            "totalCompletionTokens": 0,
            "successfulCalls": 0,
            "failedCalls": 0,
            "entries": [],
        }

    def summary(self) -> dict[str, Any]:
        if not self._path.exists():
            return self._empty()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Usage ledger unreadable, starting fresh: %s", exc)
            return self._empty()
        data["aiClient"] = self._client_name
        return data

    def add(self, entry: UsageEntry) -> None:
        if not self._enabled:
            return

        data = self.summary()
        data["entries"].append(entry.to_dict())
        data["totalCalls"] += 1
        data["totalTokens"] += entry.total_tokens
        data["totalPromptTokens"] += entry.prompt_tokens
        data["totalCompletionTokens"] += entry.completion_tokens
        if entry.success:
            data["successfulCalls"] += 1
        else:
            data["failedCalls"] += 1

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError:
            logger.exception("Usage ledger write to %s failed", self._path)
            return

        logger.debug(
            "Usage logged: model=%s tokens=%d success=%s description=%r",
            entry.model,
            entry.total_tokens,
            entry.success,
            entry.description,
        )
