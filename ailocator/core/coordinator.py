"""
Resolution Coordinator - the cache / verify / heal state machine.

Flow for one request:
    CacheCheck  → in-memory layer, then the persistent store (skipped with always_ai)
    Verify      → oracle check against the substituted selector
    Heal        → up to max_retries + 1 backend round-trips, each on a fresh snapshot
    Alternates  → score-ranked XPath alternate first, then alternates in backend order
    Exhausted   → ResolutionExhausted

Concurrent requests for the same cache key share a single pending resolution.
Persisted results keep their {placeholder} form; only the string handed back
to the caller is substituted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional

from ailocator.core import xpath_heuristics
from ailocator.core.contracts import LocatorResult, Resolution, ResolveRequest, VariableValue
from ailocator.core.errors import MissingInputError, ResolutionExhausted, VerificationFailure
from ailocator.core.locator_provider import LocatorProvider
from ailocator.core.locator_store import LocatorStore
from ailocator.core.page_document import LiveDocument
from ailocator.core.templating import TemplatePlan, has_placeholders, plan_request, resolve_variables, substitute_for_selector

logger = logging.getLogger("ailocator.coordinator")

DEFAULT_MAX_RETRIES = 2


def build_cache_key(context: str, text: str) -> str:
    return f"{context}::{text}"


def materialize(selector: str, variables: Mapping[str, VariableValue]) -> str:
    """Substitute variables into *selector* when it is a pattern."""
    if variables and has_placeholders(selector):
        return substitute_for_selector(selector, variables)
    return selector


class ResolutionCoordinator:
    """
    Owns the in-memory cache and the in-flight map for one engine instance.

    Nothing outside this object writes to either map.
    """

    def __init__(
        self,
        provider: LocatorProvider,
        store: LocatorStore,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            provider: Adapter in front of the synthesis backend
            store: Persistent cache-key → result map
            max_retries: Extra backend attempts after the first one
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._provider = provider
        self._store = store
        self._max_retries = max_retries
        self._memory: dict[str, LocatorResult] = {}
        self._inflight: dict[str, asyncio.Task[Resolution]] = {}

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def store(self) -> LocatorStore:
        return self._store

    def pending_keys(self) -> list[str]:
        return list(self._inflight)

    def cached(self, key: str) -> Optional[LocatorResult]:
        return self._memory.get(key)

    async def resolve(self, document: LiveDocument, request: ResolveRequest) -> Resolution:
        options = request.options
        variables = resolve_variables(options.variables)
        plan = plan_request(request.description, variables, options.cache_strategy)
        key = build_cache_key(request.context, plan.cache_text)

        logger.info(
            f"[Coordinator] Resolving '{request.description}' "
            f"(key={key}, strategy={plan.strategy.value}, always_ai={options.always_ai}, auto_heal={options.auto_heal})"
        )

        pending = self._inflight.get(key)
        if pending is not None:
            logger.info(f"[Coordinator] Request already in flight for {key}, waiting for it")
            shared = await asyncio.shield(pending)
            return Resolution(
                selector=materialize(shared.result.best, variables),
                result=shared.result,
                cache_key=key,
                source=shared.source,
            )

        task = asyncio.create_task(self._run(document, request, plan, key, variables))
        self._inflight[key] = task
        task.add_done_callback(lambda done: self._release(key, done))
        # Cancelling the caller that started the resolution must not cancel it for waiters.
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"[Coordinator] In-flight resolution for {key} failed: {task.exception()}")

    # ── State machine ──────────────────────────

    async def _run(
        self,
        document: LiveDocument,
        request: ResolveRequest,
        plan: TemplatePlan,
        key: str,
        variables: Mapping[str, VariableValue],
    ) -> Resolution:
        options = request.options

        if options.always_ai:
            logger.info("[Coordinator] Cache check skipped (always_ai)")
        else:
            cached, source = self._lookup(key)
            if cached is not None:
                try:
                    selector = await self._check(document, cached.best, variables)
                except (MissingInputError, VerificationFailure) as exc:
                    logger.info(f"[Coordinator] Cached selector failed verification: {exc}")
                    if not options.auto_heal:
                        logger.warning(f"[Coordinator] auto_heal disabled, returning stale selector {cached.best}")
                        return Resolution(
                            selector=materialize(cached.best, variables),
                            result=cached,
                            cache_key=key,
                            source=source,
                        )
                    logger.info("[Coordinator] auto_heal enabled, regenerating locator")
                else:
                    logger.info(f"[Coordinator] ✓ Cache hit ({source}) verified: {selector}")
                    self._memory[key] = cached
                    return Resolution(selector=selector, result=cached, cache_key=key, source=source)
            else:
                logger.info(f"[Coordinator] No cache entry for {key}")

        return await self._heal(document, request, plan, key, variables)

    def _lookup(self, key: str) -> tuple[Optional[LocatorResult], str]:
        cached = self._memory.get(key)
        if cached is not None:
            return cached, "memory"
        return self._store.get(key), "store"

    async def _heal(
        self,
        document: LiveDocument,
        request: ResolveRequest,
        plan: TemplatePlan,
        key: str,
        variables: Mapping[str, VariableValue],
    ) -> Resolution:
        attempts = self._max_retries + 1

        for attempt in range(attempts):
            if attempt:
                logger.info(f"[Coordinator] Retry {attempt}/{self._max_retries} with a fresh snapshot")

            snapshot = await document.snapshot()
            logger.debug(f"[Coordinator] Snapshot captured ({len(snapshot)} chars)")

            result = await self._provider.find(snapshot, plan.backend_text, request.context, plan.wants_template)
            chosen = await self._choose_candidate(document, result, variables)
            if chosen is None:
                logger.info(f"[Coordinator] ✗ Attempt {attempt + 1}/{attempts} produced no matching selector")
                continue

            winner, selector = chosen
            self._store.set(key, winner)
            if not request.options.always_ai:
                self._memory[key] = winner
            logger.info(f"[Coordinator] ✓ Resolved '{request.description}' → {selector} (attempt {attempt + 1})")
            return Resolution(selector=selector, result=winner, cache_key=key, source="backend")

        logger.error(f"[Coordinator] All {attempts} attempts exhausted for '{plan.backend_text}'")
        raise ResolutionExhausted(plan.backend_text, attempts)

    async def _choose_candidate(
        self,
        document: LiveDocument,
        result: LocatorResult,
        variables: Mapping[str, VariableValue],
    ) -> Optional[tuple[LocatorResult, str]]:
        try:
            return result, await self._check(document, result.best, variables)
        except (MissingInputError, VerificationFailure) as exc:
            logger.debug(f"[Coordinator] Primary rejected: {exc}")

        alternates = result.alternates
        if not alternates:
            return None

        # Score-ranked shortcut applies only when every alternate is an XPath.
        if all(xpath_heuristics.is_path_expression(alt) for alt in alternates):
            top = xpath_heuristics.select_best(alternates)
            if top:
                try:
                    selector = await self._check(document, top, variables)
                except (MissingInputError, VerificationFailure) as exc:
                    logger.debug(f"[Coordinator] Top-ranked alternate rejected: {exc}")
                else:
                    logger.info(f"[Coordinator] Top-ranked alternate verified (score {xpath_heuristics.score(top)})")
                    return (
                        LocatorResult(
                            best=top,
                            alternates=tuple(alt for alt in alternates if alt != top),
                            is_template=has_placeholders(top),
                            metadata=result.metadata,
                        ),
                        selector,
                    )

        for index, alternate in enumerate(alternates, start=1):
            try:
                selector = await self._check(document, alternate, variables)
            except (MissingInputError, VerificationFailure) as exc:
                logger.debug(f"[Coordinator] Alternate {index}/{len(alternates)} rejected: {exc}")
                continue
            return (
                LocatorResult(
                    best=alternate,
                    alternates=tuple(alternates),
                    is_template=has_placeholders(alternate),
                    metadata=result.metadata,
                ),
                selector,
            )
        return None

    async def _check(
        self,
        document: LiveDocument,
        candidate: str,
        variables: Mapping[str, VariableValue],
    ) -> str:
        """Return the concrete selector for *candidate* if it matches the live document."""
        if not candidate or not candidate.strip():
            raise MissingInputError("empty selector candidate")
        selector = materialize(candidate, variables)
        if not await document.exists(selector):
            raise VerificationFailure(selector)
        logger.debug(f"[Coordinator] Verified {selector}")
        return selector
