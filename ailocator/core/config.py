from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from openai import AsyncOpenAI

from ailocator.backends.base import SynthesisBackend
from ailocator.backends.ollama_backend import OllamaBackend
from ailocator.backends.openai_backend import OPENROUTER_BASE_URL, OpenAIBackend
from ailocator.backends.usage_ledger import UsageLedger
from ailocator.core.coordinator import DEFAULT_MAX_RETRIES, ResolutionCoordinator
from ailocator.core.locator_provider import LocatorProvider
from ailocator.core.locator_store import LocatorStore
from ailocator.core.page_document import DEFAULT_SNAPSHOT_MAX_CHARS

PROVIDERS = ("openai", "openai-router", "ollama")

_DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "openai-router": "openai/gpt-4o-mini",
    "ollama": "llama3",
}
_DEFAULT_BASE_URLS = {
    "openai-router": OPENROUTER_BASE_URL,
    "ollama": "http://localhost:11434",
}
_CLIENT_NAMES = {
    "openai": "OpenAI",
    "openai-router": "OpenAI-Router",
    "ollama": "Ollama",
}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class LocatorConfig:
    provider: str = "openai"
    api_key: Optional[str] = None
    model: Optional[str] = None
    base_url: Optional[str] = None
    cache_path: Optional[str] = None
    max_retries: int = DEFAULT_MAX_RETRIES
    enable_usage_tracking: bool = False
    usage_path: Optional[str] = None
    snapshot_max_chars: int = DEFAULT_SNAPSHOT_MAX_CHARS
    headless: bool = True

    @classmethod
    def from_env(cls) -> "LocatorConfig":
        return cls(
            provider=os.getenv("AI_LOCATOR_PROVIDER", "openai").strip().lower(),
            api_key=os.getenv("AI_LOCATOR_API_KEY") or os.getenv("OPENAI_API_KEY"),
            model=os.getenv("AI_LOCATOR_MODEL") or None,
            base_url=os.getenv("AI_LOCATOR_BASE_URL") or None,
            cache_path=os.getenv("AI_LOCATOR_CACHE_PATH") or None,
            max_retries=int(os.getenv("AI_LOCATOR_MAX_RETRIES", str(DEFAULT_MAX_RETRIES))),
            enable_usage_tracking=_env_flag("AI_LOCATOR_USAGE_TRACKING", False),
            usage_path=os.getenv("AI_LOCATOR_USAGE_PATH") or None,
            snapshot_max_chars=int(os.getenv("AI_LOCATOR_SNAPSHOT_MAX_CHARS", str(DEFAULT_SNAPSHOT_MAX_CHARS))),
            headless=_env_flag("AI_LOCATOR_HEADLESS", True),
        )

    @property
    def resolved_model(self) -> str:
        return self.model or _DEFAULT_MODELS[self.provider]

    def validate(self) -> None:
        if self.provider not in PROVIDERS:
            raise ValueError(f"Unknown provider '{self.provider}', expected one of {', '.join(PROVIDERS)}")
        if self.provider != "ollama" and not self.api_key:
            raise ValueError(f"Provider '{self.provider}' requires an API key (OPENAI_API_KEY or AI_LOCATOR_API_KEY)")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.snapshot_max_chars <= 0:
            raise ValueError("snapshot_max_chars must be > 0")

    def build_usage_ledger(self) -> UsageLedger:
        return UsageLedger(
            client_name=_CLIENT_NAMES.get(self.provider, "Unknown"),
            enabled=self.enable_usage_tracking,
            path=self.usage_path,
        )

    def build_backend(self, usage_ledger: Optional[UsageLedger] = None) -> SynthesisBackend:
        self.validate()
        ledger = usage_ledger or self.build_usage_ledger()
        model = self.resolved_model

        if self.provider == "ollama":
            return OllamaBackend(
                model=model,
                base_url=self.base_url or _DEFAULT_BASE_URLS["ollama"],
                usage_ledger=ledger,
            )
        if self.provider == "openai-router":
            return OpenAIBackend.for_router(
                api_key=self.api_key,
                model=model,
                base_url=self.base_url or _DEFAULT_BASE_URLS["openai-router"],
                usage_ledger=ledger,
            )
        client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url) if self.base_url else AsyncOpenAI(api_key=self.api_key)
        return OpenAIBackend(client, model=model, usage_ledger=ledger)

    def build_coordinator(self, backend: Optional[SynthesisBackend] = None) -> ResolutionCoordinator:
        return ResolutionCoordinator(
            provider=LocatorProvider(backend or self.build_backend()),
            store=LocatorStore(self.cache_path),
            max_retries=self.max_retries,
        )
