from __future__ import annotations

from typing import Optional

from openai import AsyncOpenAI

from ailocator.backends.base import ChatCompletion, ChatLocatorBackend
from ailocator.backends.usage_ledger import UsageLedger
from ailocator.core.contracts import TokenUsage


OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenAIBackend(ChatLocatorBackend):
    """Chat Completions backend for OpenAI and OpenAI-compatible routers."""

    client_name = "OpenAI"

    def __init__(
        self,
        openai_client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        usage_ledger: Optional[UsageLedger] = None,
        temperature: float = 0.3,
        max_tokens: int = 500,
        client_name: Optional[str] = None,
    ) -> None:
        """
        Initialize the backend.

        Args:
            openai_client: AsyncOpenAI client (its base_url selects the provider)
            model: Chat model used for locator generation
            usage_ledger: Optional token accounting sink
            temperature: Sampling temperature
            max_tokens: Completion token cap
            client_name: Label recorded in usage entries
        """
        if client_name:
            self.client_name = client_name
        super().__init__(model=model, usage_ledger=usage_ledger)
        self._openai = openai_client
        self._temperature = temperature
        self._max_tokens = max_tokens

    @classmethod
    def for_router(
        cls,
        api_key: str,
        model: str = "openai/gpt-4o-mini",
        base_url: str = OPENROUTER_BASE_URL,
        usage_ledger: Optional[UsageLedger] = None,
    ) -> "OpenAIBackend":
        client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        return cls(client, model=model, usage_ledger=usage_ledger, client_name="OpenAI-Router")

    async def _complete(self, system_prompt: str, user_prompt: str) -> ChatCompletion:
        response = await self._openai.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

        content = response.choices[0].message.content or ""
        usage = response.usage
        return ChatCompletion(
            content=content,
            usage=TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(usage, "total_tokens", 0) or 0,
            ),
        )
