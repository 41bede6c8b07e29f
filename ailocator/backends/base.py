"""Synthesis backend contract and the shared chat-model plumbing.

A backend turns ``(document snippet, intent, origin, wants_template)`` into a
``|||``-delimited selector list.  It never raises: transport and parsing
failures are absorbed into a fallback list built from the intent text, so the
resolution loop always has candidates to verify.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass

from ailocator.backends.prompts import build_system_prompt, build_user_prompt
from ailocator.backends.usage_ledger import UsageEntry, UsageLedger
from ailocator.core import strategies
from ailocator.core.contracts import TokenUsage
from ailocator.core.errors import BackendFailure

logger = logging.getLogger("ailocator.backend")

SELECTOR_DELIMITER = "|||"

_CODE_FENCE_RE = re.compile(r"```(?:json)?\n?")
_QUOTED_TEXT_RE = re.compile(r'"([^"]+)"')
_IDENTIFIER_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


@dataclass(frozen=True)
class BackendResponse:
    selector: str
    usage: TokenUsage | None = None


@dataclass(frozen=True)
class ChatCompletion:
    content: str
    usage: TokenUsage


class SynthesisBackend:
    async def synthesize(
        self,
        document_snippet: str,
        intent: str,
        origin_id: str = "unknown-url",
        wants_template: bool = False,
    ) -> BackendResponse:
        raise NotImplementedError


def parse_selector_payload(content: str) -> str:
    """Turn a model reply into ``best|||alt1|||alt2``.

    JSON replies with a ``best`` key are flattened; anything else is taken
    verbatim as a single selector.
    """
    raw = (content or "").strip()
    if not raw:
        raise BackendFailure("backend returned an empty reply")

    cleaned = _CODE_FENCE_RE.sub("", raw).strip()
    try:
        parsed = json.loads(cleaned)
    except ValueError:
        logger.debug("Reply is not JSON, using it as the selector")
        return raw

    if not isinstance(parsed, dict) or not parsed.get("best"):
        logger.debug("Reply JSON has no 'best' key, using it as the selector")
        return raw

    alternates = [str(alt) for alt in parsed.get("alternates") or [] if alt]
    return SELECTOR_DELIMITER.join([str(parsed["best"]), *alternates])


def fallback_selectors(description: str) -> list[str]:
    """Model-free candidates derived from the intent, most generic first."""
    lowered = description.lower()
    quoted = _QUOTED_TEXT_RE.search(description)
    search_text = quoted.group(1) if quoted else description
    literal = strategies.escape_xpath_literal(search_text)

    selectors = [
        strategies.text_contains_selector(search_text),
        f"//*[normalize-space(.)={literal}]",
    ]

    if "button" in lowered or "btn" in lowered:
        selectors.append(f"//button[contains(normalize-space(.), {literal})]")
        selectors.append(f"//*[@role='button'][contains(normalize-space(.), {literal})]")
        selectors.append(strategies.button_by_text_selector(search_text))

    if "link" in lowered:
        selectors.append(f"//a[contains(normalize-space(.), {literal})]")
        selectors.append(strategies.link_by_text_selector(search_text))

    if "input" in lowered or "field" in lowered:
        selectors.append(f"//input[@placeholder={literal}]")
        selectors.append(f"//label[contains(., {literal})]//following-sibling::input")
        selectors.append(strategies.input_by_label_selector(search_text))

    if "heading" in lowered or "title" in lowered:
        selectors.append(strategies.heading_selector(search_text))

    if _IDENTIFIER_RE.match(search_text):
        selectors.append(f"#{search_text}")
        selectors.append(f'[data-testid="{search_text}"]')
        selectors.append(f"//*[@id='{search_text}']")
        selectors.append(strategies.data_test_id_selector(search_text))
        selectors.append(strategies.id_class_selector(search_text))

    selectors.append(strategies.aria_role_selector(search_text))
    selectors.append(strategies.text_exact_selector(search_text))
    return list(dict.fromkeys(selectors))


class ChatLocatorBackend(SynthesisBackend):
    """Prompting, reply parsing, fallback and usage accounting for chat models.

    Subclasses only implement :meth:`_complete`.
    """

    client_name = "Unknown"

    def __init__(self, model: str, usage_ledger: UsageLedger | None = None) -> None:
        self._model = model
        self._usage = usage_ledger or UsageLedger(self.client_name, enabled=False)

    @property
    def model(self) -> str:
        return self._model

    @property
    def usage_ledger(self) -> UsageLedger:
        return self._usage

    async def _complete(self, system_prompt: str, user_prompt: str) -> ChatCompletion:
        raise NotImplementedError

    async def synthesize(
        self,
        document_snippet: str,
        intent: str,
        origin_id: str = "unknown-url",
        wants_template: bool = False,
    ) -> BackendResponse:
        logger.info(
            "[%s] Generating locator for %r (model=%s, dom=%d chars, template=%s)",
            self.client_name,
            intent,
            self._model,
            len(document_snippet),
            wants_template,
        )
        system_prompt = build_system_prompt(wants_template)
        user_prompt = build_user_prompt(document_snippet, intent, origin_id)
        started = time.perf_counter()

        try:
            completion = await self._complete(system_prompt, user_prompt)
            selector = parse_selector_payload(completion.content)
        except Exception as exc:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.error("[%s] Locator generation failed after %dms: %s", self.client_name, elapsed_ms, exc)
            self._usage.add(
                UsageEntry(
                    ai_client=self.client_name,
                    model=self._model,
                    description=intent,
                    url=origin_id,
                    success=False,
                    error=str(exc),
                )
            )
            fallbacks = fallback_selectors(intent)
            logger.info("[%s] Using %d fallback selectors", self.client_name, len(fallbacks))
            return BackendResponse(selector=SELECTOR_DELIMITER.join(fallbacks))

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        usage = completion.usage
        logger.info(
            "[%s] Reply in %dms, tokens=%d: %s",
            self.client_name,
            elapsed_ms,
            usage.total_tokens,
            selector,
        )
        self._usage.add(
            UsageEntry(
                ai_client=self.client_name,
                model=self._model,
                description=intent,
                url=origin_id,
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
                success=True,
                selector=selector.split(SELECTOR_DELIMITER, 1)[0],
            )
        )
        return BackendResponse(
            selector=selector,
            usage=usage if self._usage.enabled else None,
        )
