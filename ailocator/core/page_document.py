"""
Live document access through Playwright.

PageDocument answers two questions for the coordinator:
    exists(selector)  → does the selector match at least one node right now?
    snapshot()        → compact markup of the current page for the backend
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger("ailocator.page")

DEFAULT_SNAPSHOT_MAX_CHARS = 10000
_CLEAN_CUT_RATIO = 0.8

_WHITESPACE_RE = re.compile(r"\s+")
_BETWEEN_TAGS_RE = re.compile(r">\s+<")
_EMPTY_ATTRIBUTE_RE = re.compile(r'\s[\w:-]+=""')

# Runs in the page. The browser parses; Python only compacts the serialized result.
_SNAPSHOT_SCRIPT = """
() => {
    const DROP = ['script', 'style', 'noscript', 'svg', 'template', 'link', 'meta'];
    const KEEP = new Set([
        'id', 'class', 'name', 'type', 'role', 'for', 'placeholder', 'value', 'alt',
        'title', 'href', 'src', 'action', 'method', 'disabled', 'readonly', 'checked',
        'selected', 'required'
    ]);
    const root = document.documentElement.cloneNode(true);

    root.querySelectorAll(DROP.join(',')).forEach(el => el.remove());

    const walker = document.createTreeWalker(root, NodeFilter.SHOW_COMMENT);
    const comments = [];
    while (walker.nextNode()) comments.push(walker.currentNode);
    comments.forEach(node => node.remove());

    [root, ...root.querySelectorAll('*')].forEach(el => {
        for (const attr of Array.from(el.attributes)) {
            const name = attr.name.toLowerCase();
            if (KEEP.has(name) || name.startsWith('aria-') || name.startsWith('data-')) continue;
            el.removeAttribute(attr.name);
        }
    });

    return root.outerHTML;
}
"""


def compact_markup(html: str, max_chars: int = DEFAULT_SNAPSHOT_MAX_CHARS) -> str:
    """Collapse whitespace, drop empty attributes and cut to *max_chars* on a tag boundary when possible."""
    compact = _WHITESPACE_RE.sub(" ", html)
    compact = _BETWEEN_TAGS_RE.sub("><", compact)
    compact = _EMPTY_ATTRIBUTE_RE.sub("", compact).strip()

    if len(compact) <= max_chars:
        return compact

    window = compact[:max_chars]
    last_close = window.rfind("</")
    if last_close > max_chars * _CLEAN_CUT_RATIO:
        tag_end = window.find(">", last_close)
        if tag_end != -1:
            return window[: tag_end + 1]
    return window


class LiveDocument:
    """What the coordinator needs from a page: a match check and a snapshot."""

    async def exists(self, selector: str) -> bool:
        raise NotImplementedError

    async def snapshot(self) -> str:
        raise NotImplementedError


class PageDocument(LiveDocument):
    """
    LiveDocument over a Playwright page.

    Args:
        page: Playwright Page
        max_chars: Snapshot size cap handed to the backend
    """

    def __init__(self, page: "Page", max_chars: int = DEFAULT_SNAPSHOT_MAX_CHARS) -> None:
        self._page = page
        self._max_chars = max_chars

    @property
    def page(self) -> "Page":
        return self._page

    @property
    def url(self) -> str:
        return self._page.url or ""

    async def exists(self, selector: str) -> bool:
        if not selector or not selector.strip():
            return False
        try:
            count = await self._page.locator(selector).count()
        except Exception as exc:
            logger.debug(f"[PageDocument] Selector check failed for {selector}: {exc}")
            return False
        logger.debug(f"[PageDocument] {selector} → {count} match(es)")
        return count > 0

    async def snapshot(self) -> str:
        html = await self._page.evaluate(_SNAPSHOT_SCRIPT)
        compact = compact_markup(html or "", self._max_chars)
        logger.debug(f"[PageDocument] Snapshot {len(html or '')} → {len(compact)} chars")
        return compact
