"""
AI Locator MCP Server - natural-language element lookup for LLM-driven browsing.

Exposes navigation, locator resolution and context variables over MCP stdio.
Start with: python -m ailocator.server
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool
from playwright.async_api import Browser, Page, Playwright, async_playwright

from ailocator.backends.usage_ledger import UsageLedger
from ailocator.core.ai_locator import AILocator
from ailocator.core.config import LocatorConfig
from ailocator.core.page_document import PageDocument

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO")),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger("ailocator.server")


class LocatorSession:
    """One browser page plus the locator bound to it."""

    def __init__(self, config: LocatorConfig) -> None:
        self.config = config
        self.usage: UsageLedger = config.build_usage_ledger()
        self._pw: Playwright | None = None
        self._browser: Browser | None = None
        self.page: Page | None = None
        self.locator: AILocator | None = None

    async def initialize(self) -> None:
        coordinator = self.config.build_coordinator(self.config.build_backend(self.usage))
        self._pw = await async_playwright().start()
        self._browser = await self._pw.chromium.launch(headless=self.config.headless)
        context = await self._browser.new_context()
        self.page = await context.new_page()
        self.locator = AILocator(
            self.page,
            coordinator,
            document=PageDocument(self.page, max_chars=self.config.snapshot_max_chars),
        )
        logger.info(f"Session ready (provider={self.config.provider}, headless={self.config.headless})")

    async def close(self) -> None:
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._pw:
            await self._pw.stop()
            self._pw = None


_session: LocatorSession | None = None


async def get_session() -> LocatorSession:
    global _session
    if _session is None:
        session = LocatorSession(LocatorConfig.from_env())
        await session.initialize()
        _session = session
    return _session


async def cleanup() -> None:
    global _session
    if _session:
        await _session.close()
        _session = None


server = Server("ai-locator")


def _text(data: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(data, indent=2, default=str))]


# ─── Tool Definitions ───────────────────────

_VARIABLES_SCHEMA = {
    "type": "object",
    "description": "Values for {placeholder} tokens in the description",
    "additionalProperties": {"type": ["string", "number"]},
}

TOOLS = [
    Tool(
        name="navigate",
        description="Navigate to a URL. Returns page info (url, title).",
        inputSchema={
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "URL to navigate to"},
            },
            "required": ["url"],
        },
    ),
    Tool(
        name="find_locator",
        description="Find a verified selector for an element described in plain language, e.g. 'Login button' or 'Edit button for {userName}'. Cached selectors are re-verified and regenerated when the page changed.",
        inputSchema={
            "type": "object",
            "properties": {
                "description": {"type": "string", "description": "What the element is"},
                "variables": _VARIABLES_SCHEMA,
                "always_ai": {"type": "boolean", "description": "Skip the cache and ask the model (default: false)", "default": False},
                "auto_heal": {"type": "boolean", "description": "Regenerate when the cached selector no longer matches (default: true)", "default": True},
                "cache_by": {"type": "string", "enum": ["template", "resolved", "smart"], "description": "Cache key strategy (default: smart)", "default": "smart"},
            },
            "required": ["description"],
        },
    ),
    Tool(
        name="set_context",
        description="Replace the shared context variables used by every find_locator call.",
        inputSchema={
            "type": "object",
            "properties": {"variables": _VARIABLES_SCHEMA},
            "required": ["variables"],
        },
    ),
    Tool(
        name="merge_context",
        description="Add or overwrite shared context variables, keeping the others.",
        inputSchema={
            "type": "object",
            "properties": {"variables": _VARIABLES_SCHEMA},
            "required": ["variables"],
        },
    ),
    Tool(
        name="clear_context",
        description="Remove all shared context variables.",
        inputSchema={"type": "object", "properties": {}},
    ),
    Tool(
        name="usage_summary",
        description="Token usage summary for model calls (requires AI_LOCATOR_USAGE_TRACKING=true).",
        inputSchema={"type": "object", "properties": {}},
    ),
]


@server.list_tools()
async def list_tools() -> list[Tool]:
    return TOOLS


async def dispatch(session: LocatorSession, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    ai = session.locator

    if name == "navigate":
        await session.page.goto(arguments["url"], wait_until="domcontentloaded")
        return {"url": session.page.url, "title": await session.page.title()}

    elif name == "find_locator":
        selector = await ai.locate(
            arguments["description"],
            variables=arguments.get("variables"),
            always_ai=arguments.get("always_ai", False),
            auto_heal=arguments.get("auto_heal", True),
            cache_by=arguments.get("cache_by", "smart"),
        )
        return {"description": arguments["description"], "selector": selector, "url": session.page.url}

    elif name == "set_context":
        ai.set_context(arguments.get("variables") or {})
        return {"context": ai.context}

    elif name == "merge_context":
        ai.merge_context(arguments.get("variables") or {})
        return {"context": ai.context}

    elif name == "clear_context":
        ai.clear_context()
        return {"context": ai.context}

    elif name == "usage_summary":
        if not session.usage.enabled:
            return {"enabled": False, "message": "Set AI_LOCATOR_USAGE_TRACKING=true to record usage"}
        return session.usage.summary()

    return {"error": f"Unknown tool: {name}"}


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    try:
        session = await get_session()
        return _text(await dispatch(session, name, arguments or {}))
    except Exception as e:
        logger.exception(f"Tool {name} failed")
        return _text({"error": str(e)})


async def main() -> None:
    async with stdio_server() as (read_stream, write_stream):
        logger.info("AI Locator MCP Server starting...")
        try:
            await server.run(read_stream, write_stream, server.create_initialization_options())
        finally:
            await cleanup()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
