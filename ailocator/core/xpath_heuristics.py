"""Selector heuristics - classification, clean-up and stability scoring.

Pure functions over selector strings.  No page access, no randomness:
the same candidate always yields the same score (replay-safe).

Scoring (base 50, clamped to 0..100):
    +15  normalize-space() calls
    +30  data-testid / data-test attributes
    +25  aria-label / role attributes
    +20  @id that does not look generated
    +15  @name
    +10  @placeholder
    +10  translate()-based case-insensitive comparison
    +10  leading //element[ shape
    +5   sibling axis navigation
    -20  positional predicates like [1]
    -15  more than 10 path separators
    -25  absolute /html/body/div[n] anchoring
    -15  four chained div segments
    -20  @id with 5+ consecutive digits
    -15  @class with an 8+ hex character hash
    -10  more than 5 predicates
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

logger = logging.getLogger("ailocator.heuristics")

XPATH_PREFIX = "xpath="

# ──────────────────────────────────────────────
# Pre-compiled patterns
# ──────────────────────────────────────────────

_VALID_XPATH_RE = (
    re.compile(r"^//"),
    re.compile(r"^/[^/]"),
    re.compile(r"^\("),
)
_SURROUNDING_QUOTES_RE = re.compile(r"^[`'\"]+|[`'\"]+$")
_WHITESPACE_RE = re.compile(r"\s+")
_OPERATOR_SPACING_RE = re.compile(r"\s*(!=|=|<|>|\|)\s*")

_POSITIONAL_RE = re.compile(r"\[\d+\]")
_LEADING_ELEMENT_PREDICATE_RE = re.compile(r"^//[a-z]+\[")
_ABSOLUTE_ROOT_RE = re.compile(r"/html/body/div\[\d+\]")
_SHORT_NUMERIC_ID_RE = re.compile(r"@id=[\"'][^\"']*\d{3,}")
_GENERATED_ID_RE = re.compile(r"@id=[\"'][^\"']*\d{5,}")
_HASH_CLASS_RE = re.compile(r"@class=[\"'][^\"']*[a-f0-9]{8,}")
_ELEMENT_TYPE_RE = re.compile(r"^//([a-z]+)[\[/\s]", re.IGNORECASE)
_ROLE_VALUE_RE = re.compile(r"@role=['\"]([^'\"]+)['\"]")

_UPPERCASE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_MAX_SEPARATORS = 10
_MAX_PREDICATES = 5


def _strip_prefix(candidate: str) -> str:
    if candidate.startswith(XPATH_PREFIX):
        return candidate[len(XPATH_PREFIX):]
    return candidate


# ──────────────────────────────────────────────
# Classification
# ──────────────────────────────────────────────

def is_path_expression(candidate: str | None) -> bool:
    """True for ``xpath=…``, ``//…`` and ``/…`` (but not ``/*…``) candidates."""
    if not candidate:
        return False
    trimmed = candidate.strip()
    return (
        trimmed.startswith(XPATH_PREFIX)
        or trimmed.startswith("//")
        or (trimmed.startswith("/") and not trimmed.startswith("/*"))
    )


def is_valid_xpath(candidate: str | None) -> bool:
    if not candidate or not isinstance(candidate, str):
        return False
    clean = _strip_prefix(candidate).strip()
    return any(pattern.search(clean) for pattern in _VALID_XPATH_RE)


def uses_positional_predicates(candidate: str) -> bool:
    return bool(_POSITIONAL_RE.search(_strip_prefix(candidate)))


def is_relative_xpath(candidate: str) -> bool:
    return _strip_prefix(candidate).strip().startswith("//")


def extract_element_type(candidate: str) -> str | None:
    """Tag name of a ``//tag[...]`` expression, else the ``@role`` value if any."""
    clean = _strip_prefix(candidate)
    match = _ELEMENT_TYPE_RE.match(clean)
    if match:
        return match.group(1)
    role = _ROLE_VALUE_RE.search(clean)
    if role:
        return role.group(1)
    return None


# ──────────────────────────────────────────────
# Rewriting
# ──────────────────────────────────────────────

def normalize(candidate: str) -> str:
    if not candidate:
        return candidate
    normalized = _strip_prefix(candidate.strip())
    normalized = _SURROUNDING_QUOTES_RE.sub("", normalized)
    return _WHITESPACE_RE.sub(" ", normalized)


def _optimize_once(candidate: str) -> str:
    optimized = _strip_prefix(candidate)
    optimized = optimized.replace("/descendant-or-self::node()/", "//")
    optimized = optimized.replace("//*/", "//")
    return _OPERATOR_SPACING_RE.sub(r"\1", optimized)


def optimize(candidate: str) -> str:
    if not candidate:
        return candidate
    # Every rewrite shortens the string, so iterating to a fixed point terminates.
    current = candidate
    while True:
        rewritten = _optimize_once(current)
        if rewritten == current:
            return current
        current = rewritten


# ──────────────────────────────────────────────
# Scoring
# ──────────────────────────────────────────────

def _has_chained_divs(clean: str) -> bool:
    return "div/div/div/div" in clean


def score(candidate: str | None) -> int:
    if not candidate:
        return 0

    clean = _strip_prefix(candidate)
    value = 50

    if "normalize-space" in clean:
        value += 15
    if "@data-testid" in clean or "@data-test" in clean:
        value += 30
    if "@aria-label" in clean or "@role" in clean:
        value += 25
    if "@id" in clean and not _SHORT_NUMERIC_ID_RE.search(clean):
        value += 20
    if "@name" in clean:
        value += 15
    if "@placeholder" in clean:
        value += 10
    if "translate(" in clean and _UPPERCASE_ALPHABET in clean:
        value += 10
    if _LEADING_ELEMENT_PREDICATE_RE.search(clean):
        value += 10
    if "following-sibling" in clean or "preceding-sibling" in clean:
        value += 5

    if _POSITIONAL_RE.search(clean):
        value -= 20
    if clean.count("/") > _MAX_SEPARATORS:
        value -= 15
    if _ABSOLUTE_ROOT_RE.search(clean):
        value -= 25
    if _has_chained_divs(clean):
        value -= 15
    if _GENERATED_ID_RE.search(clean):
        value -= 20
    if _HASH_CLASS_RE.search(clean):
        value -= 15
    if clean.count("[") > _MAX_PREDICATES:
        value -= 10

    return max(0, min(100, value))


def suggest_improvements(candidate: str) -> list[str]:
    suggestions: list[str] = []
    clean = _strip_prefix(candidate)

    if uses_positional_predicates(candidate):
        suggestions.append("Avoid positional predicates like [1], [2] - they are brittle")
    if not is_relative_xpath(candidate):
        suggestions.append("Use relative XPath (//element) instead of absolute (/html/body/...)")
    if "normalize-space" not in clean and "text()" in clean:
        suggestions.append("Consider using normalize-space() to handle whitespace better")
    if clean.count("/") > _MAX_SEPARATORS:
        suggestions.append("XPath is too deep - consider using // or more specific attributes")
    if _has_chained_divs(clean):
        suggestions.append("Long chains of div segments break on layout changes - anchor on an attribute")
    if _GENERATED_ID_RE.search(clean):
        suggestions.append("ID appears to be generated - may not be stable")
    if _HASH_CLASS_RE.search(clean):
        suggestions.append("Class contains a build hash - may change between deployments")
    if clean.count("[") > _MAX_PREDICATES:
        suggestions.append("Too many predicates - simplify the expression")
    if "@data-testid" not in clean and "@data-test" not in clean:
        suggestions.append("Consider using data-testid attributes for more reliable selectors")

    return suggestions


# ──────────────────────────────────────────────
# Ranking
# ──────────────────────────────────────────────

def choose_better(first: str, second: str) -> str:
    """Higher-scoring candidate; ties go to *first*."""
    first_score = score(first)
    second_score = score(second)
    logger.debug("XPath comparison: %r=%d vs %r=%d", first, first_score, second, second_score)
    return first if first_score >= second_score else second


def select_best(candidates: Sequence[str] | None) -> str | None:
    """Top-scoring valid path expression, or ``None``.

    ``sorted`` is stable, so among equal scores the first-listed wins.
    """
    if not candidates:
        return None

    valid = [candidate for candidate in candidates if is_valid_xpath(candidate)]
    if not valid:
        return None

    ranked = sorted(valid, key=score, reverse=True)
    best = ranked[0]
    logger.debug(
        "Best XPath selected: %s (score=%d, suggestions=%s)",
        best,
        score(best),
        suggest_improvements(best),
    )
    return best
