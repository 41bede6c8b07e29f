"""Synthesis backends: one ``synthesize`` capability, one adapter per provider."""

from ailocator.backends.base import (
    SELECTOR_DELIMITER,
    BackendResponse,
    ChatLocatorBackend,
    SynthesisBackend,
    fallback_selectors,
    parse_selector_payload,
)
from ailocator.backends.ollama_backend import OllamaBackend
from ailocator.backends.openai_backend import OpenAIBackend
from ailocator.backends.usage_ledger import UsageEntry, UsageLedger

__all__ = [
    "SELECTOR_DELIMITER",
    "BackendResponse",
    "ChatLocatorBackend",
    "OllamaBackend",
    "OpenAIBackend",
    "SynthesisBackend",
    "UsageEntry",
    "UsageLedger",
    "fallback_selectors",
    "parse_selector_payload",
]
