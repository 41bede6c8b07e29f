"""AI Locator - natural-language element descriptions resolved to verified, cached selectors."""

from ailocator.core.ai_locator import AILocator
from ailocator.core.config import LocatorConfig
from ailocator.core.contracts import CacheStrategy, LocatorResult
from ailocator.core.coordinator import ResolutionCoordinator
from ailocator.core.errors import LocatorError, ResolutionExhausted
from ailocator.core.locator_provider import LocatorProvider
from ailocator.core.locator_store import LocatorStore
from ailocator.core.page_document import PageDocument

__all__ = [
    "AILocator",
    "CacheStrategy",
    "LocatorConfig",
    "LocatorError",
    "LocatorProvider",
    "LocatorResult",
    "LocatorStore",
    "PageDocument",
    "ResolutionCoordinator",
    "ResolutionExhausted",
]

__version__ = "0.1.0"
