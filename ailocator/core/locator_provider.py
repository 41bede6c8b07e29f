from __future__ import annotations

import logging

from ailocator.backends.base import SELECTOR_DELIMITER, SynthesisBackend
from ailocator.core import xpath_heuristics
from ailocator.core.contracts import LocatorResult
from ailocator.core.templating import has_placeholders

logger = logging.getLogger("ailocator.provider")


class LocatorProvider:
    """Asks a synthesis backend for selectors and shapes the reply into a LocatorResult.

    Backend exceptions are not caught here; backends are expected to degrade
    to fallback selectors on their own.
    """

    def __init__(self, backend: SynthesisBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> SynthesisBackend:
        return self._backend

    async def find(
        self,
        document_snippet: str,
        intent: str,
        origin_id: str = "unknown-url",
        wants_template: bool = False,
    ) -> LocatorResult:
        logger.info("[Provider] Requesting locator for %r (template=%s)", intent, wants_template)
        response = await self._backend.synthesize(document_snippet, intent, origin_id, wants_template)

        primary, *alternates = response.selector.split(SELECTOR_DELIMITER)
        best = self.process_selector(primary)
        processed_alternates = [processed for processed in map(self.process_selector, alternates) if processed]

        if xpath_heuristics.is_path_expression(best):
            suggestions = xpath_heuristics.suggest_improvements(best)
            logger.debug("[Provider] XPath score %d for %s", xpath_heuristics.score(best), best)
            if suggestions:
                logger.debug("[Provider] XPath suggestions: %s", suggestions)

        result = LocatorResult(
            best=best,
            alternates=tuple(processed_alternates),
            is_template=has_placeholders(best),
            metadata={"usage": response.usage.to_dict()} if response.usage else None,
        )
        logger.info(
            "[Provider] Backend returned %s (template=%s, %d alternates)",
            result.best,
            result.is_template,
            len(result.alternates),
        )
        return result

    @staticmethod
    def process_selector(selector: str) -> str:
        """normalize → validate → optimize path expressions; everything else passes through."""
        if not selector or not selector.strip():
            return selector
        if not xpath_heuristics.is_path_expression(selector):
            return selector
        if not xpath_heuristics.is_valid_xpath(selector):
            logger.warning("[Provider] Invalid XPath, returning as-is: %s", selector)
            return selector

        normalized = xpath_heuristics.normalize(selector)
        optimized = xpath_heuristics.optimize(normalized)
        logger.debug("[Provider] XPath processing: %r -> %r -> %r", selector, normalized, optimized)
        return optimized
