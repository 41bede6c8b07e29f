from __future__ import annotations

from typing import Optional

import aiohttp

from ailocator.backends.base import ChatCompletion, ChatLocatorBackend
from ailocator.backends.usage_ledger import UsageLedger
from ailocator.core.contracts import TokenUsage
from ailocator.core.errors import BackendFailure


class OllamaBackend(ChatLocatorBackend):
    """Local models served by Ollama's ``/api/chat`` endpoint."""

    client_name = "Ollama"

    def __init__(
        self,
        model: str = "llama3",
        base_url: str = "http://localhost:11434",
        usage_ledger: Optional[UsageLedger] = None,
        temperature: float = 0.3,
        timeout_seconds: float = 120.0,
    ) -> None:
        super().__init__(model=model, usage_ledger=usage_ledger)
        self._endpoint = base_url.rstrip("/") + "/api/chat"
        self._temperature = temperature
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def _complete(self, system_prompt: str, user_prompt: str) -> ChatCompletion:
        payload = {
            "model": self._model,
            "stream": False,
            "format": "json",
            "options": {"temperature": self._temperature},
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            async with session.post(self._endpoint, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    raise BackendFailure(f"Ollama returned HTTP {response.status}: {body[:200]}")
                data = await response.json()

        prompt_tokens = int(data.get("prompt_eval_count") or 0)
        completion_tokens = int(data.get("eval_count") or 0)
        return ChatCompletion(
            content=(data.get("message") or {}).get("content", ""),
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )
