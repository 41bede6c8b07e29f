"""Template placeholders: detection, substitution and cache-key strategy.

A template is any text containing ``{identifier}`` tokens, e.g.
``"Edit button for {userName}"``.  Missing values never raise; the
placeholder is left in place and a warning is logged.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Mapping

from ailocator.core.contracts import CacheStrategy, VariableValue, Variables, VariablesInput

logger = logging.getLogger("ailocator.templating")

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class TemplatePlan:
    """How one description is keyed in the cache and phrased to the backend."""
    strategy: CacheStrategy
    cache_text: str
    backend_text: str
    wants_template: bool


@dataclass(frozen=True)
class TemplateValidation:
    valid: bool
    missing: tuple[str, ...]


def resolve_variables(variables: VariablesInput) -> dict[str, VariableValue]:
    """Materialize a mapping or zero-argument supplier. Suppliers run on every call."""
    if variables is None:
        return {}
    if callable(variables):
        variables = variables()
    return dict(variables or {})


def has_placeholders(text: str | None) -> bool:
    return bool(text) and _PLACEHOLDER_RE.search(text) is not None


def extract_placeholders(text: str) -> list[str]:
    """Placeholder names, de-duplicated, in order of first occurrence."""
    return list(dict.fromkeys(_PLACEHOLDER_RE.findall(text or "")))


def _replace(text: str, variables: Mapping[str, VariableValue], escape_quotes: bool) -> str:
    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        value = variables.get(name)
        if value is None:
            logger.warning("Variable '%s' not found, keeping placeholder", name)
            return match.group(0)
        rendered = str(value)
        if escape_quotes:
            rendered = rendered.replace("'", "\\'").replace('"', '\\"')
        return rendered

    return _PLACEHOLDER_RE.sub(_sub, text)


def substitute(text: str, variables: VariablesInput) -> str:
    resolved = resolve_variables(variables)
    if not resolved:
        return text
    result = _replace(text, resolved, escape_quotes=False)
    logger.debug("Template interpolation: %r -> %r", text, result)
    return result


def substitute_for_selector(selector: str, variables: VariablesInput) -> str:
    """Like :func:`substitute` but escapes quotes in values for use inside quoted literals."""
    resolved = resolve_variables(variables)
    if not resolved:
        return selector
    result = _replace(selector, resolved, escape_quotes=True)
    logger.debug("Locator interpolation: %r -> %r", selector, result)
    return result


def validate(text: str, variables: Variables | None) -> TemplateValidation:
    required = extract_placeholders(text)
    if not required:
        return TemplateValidation(valid=True, missing=())
    if not variables:
        return TemplateValidation(valid=False, missing=tuple(required))
    missing = tuple(name for name in required if variables.get(name) is None)
    return TemplateValidation(valid=not missing, missing=missing)


def derive_strategy(requested: CacheStrategy | str, placeholders: bool) -> CacheStrategy:
    requested = CacheStrategy(requested)
    if requested is CacheStrategy.SMART:
        return CacheStrategy.TEMPLATE if placeholders else CacheStrategy.RESOLVED
    return requested


def plan_request(
    description: str,
    variables: Variables | None,
    requested: CacheStrategy | str = CacheStrategy.SMART,
) -> TemplatePlan:
    placeholders = has_placeholders(description)
    strategy = derive_strategy(requested, placeholders)
    resolved_text = substitute(description, variables)

    # Template keying sends the raw pattern so the backend answers with a pattern too.
    text = description if strategy is CacheStrategy.TEMPLATE else resolved_text
    return TemplatePlan(
        strategy=strategy,
        cache_text=text,
        backend_text=text,
        wants_template=strategy is CacheStrategy.TEMPLATE and placeholders,
    )
