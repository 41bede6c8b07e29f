from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Mapping, Optional

from ailocator.core.contracts import CacheStrategy, ResolveOptions, ResolveRequest, VariableValue, VariablesInput
from ailocator.core.coordinator import ResolutionCoordinator
from ailocator.core.page_document import LiveDocument, PageDocument
from ailocator.core.templating import resolve_variables

if TYPE_CHECKING:
    from playwright.async_api import Locator, Page

logger = logging.getLogger("ailocator.locator")

UNKNOWN_CONTEXT = "unknown-url"


class AILocator:
    """
    Page-bound entry point: natural-language description in, verified selector out.

    Context variables set here are shared by every ``locate`` call on this
    instance; per-call variables override them key by key.

    Usage:
        ai = AILocator(page, coordinator)
        ai.set_context({"userName": "alice"})
        selector = await ai.locate("Edit button for {userName}")
        await (await ai.locator("Save button")).click()
    """

    def __init__(
        self,
        page: "Page",
        coordinator: ResolutionCoordinator,
        *,
        document: Optional[LiveDocument] = None,
    ) -> None:
        self._page = page
        self._coordinator = coordinator
        self._document = document or PageDocument(page)
        self._context: dict[str, VariableValue] = {}

    @property
    def coordinator(self) -> ResolutionCoordinator:
        return self._coordinator

    @property
    def context(self) -> dict[str, VariableValue]:
        return dict(self._context)

    # ── Context variables ──────────────────────

    def set_context(self, variables: Mapping[str, VariableValue]) -> None:
        self._context = dict(variables)
        logger.debug(f"[AILocator] Context set: {sorted(self._context)}")

    def merge_context(self, variables: Mapping[str, VariableValue]) -> None:
        self._context.update(variables)
        logger.debug(f"[AILocator] Context merged: {sorted(self._context)}")

    def clear_context(self) -> None:
        self._context = {}
        logger.debug("[AILocator] Context cleared")

    @asynccontextmanager
    async def scoped_context(self, variables: Mapping[str, VariableValue]) -> AsyncIterator["AILocator"]:
        previous = dict(self._context)
        self._context = {**previous, **variables}
        try:
            yield self
        finally:
            self._context = previous

    # ── Resolution ─────────────────────────────

    def _context_id(self) -> str:
        return self._page.url or UNKNOWN_CONTEXT

    async def locate(
        self,
        description: str,
        *,
        variables: VariablesInput = None,
        always_ai: bool = False,
        auto_heal: bool = True,
        cache_by: CacheStrategy | str = CacheStrategy.SMART,
    ) -> str:
        merged = {**self._context, **resolve_variables(variables)}
        request = ResolveRequest(
            context=self._context_id(),
            description=description,
            options=ResolveOptions(
                always_ai=always_ai,
                auto_heal=auto_heal,
                cache_strategy=CacheStrategy(cache_by),
                variables=merged,
            ),
        )
        resolution = await self._coordinator.resolve(self._document, request)
        return resolution.selector

    async def locator(self, description: str, **kwargs) -> "Locator":
        selector = await self.locate(description, **kwargs)
        return self._page.locator(selector)
