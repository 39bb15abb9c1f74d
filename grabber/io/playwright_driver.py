"""
Chromium lifecycle for grabber runs.

One browser is launched per process (a CLI invocation or the service lifespan).
Every run gets its own incognito BrowserContext, so cookies and storage never
leak between recipes; pages are opened inside that context by the runner.
"""

from __future__ import annotations

from typing import Any

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from ..core.errors import GrabberError

log = structlog.get_logger(__name__)


class PlaywrightDriver:
    """BrowserDriver over Playwright; the opaque `ctx` handle is a BrowserContext."""

    def __init__(
        self,
        *,
        headless: bool = True,
        slow_mo_ms: int = 0,
        default_timeout_ms: int = 30_000,
    ) -> None:
        self.headless = headless
        self.slow_mo_ms = slow_mo_ms
        self.default_timeout_ms = default_timeout_ms

        self._playwright: Playwright | None = None
        self._chromium: Browser | None = None
        self._open: list[BrowserContext] = []

    @property
    def running(self) -> bool:
        return self._chromium is not None

    async def start(self) -> None:
        if self.running:
            return
        self._playwright = await async_playwright().start()
        self._chromium = await self._playwright.chromium.launch(
            headless=self.headless, slow_mo=self.slow_mo_ms
        )
        log.info("browser.started", headless=self.headless, slow_mo_ms=self.slow_mo_ms)

    async def stop(self) -> None:
        """Close whatever contexts runs left behind, then the browser and Playwright itself."""
        playwright, chromium = self._playwright, self._chromium
        self._playwright = self._chromium = None
        try:
            while self._open:
                await self._close(self._open.pop())
            if chromium is not None:
                await chromium.close()
        finally:
            if playwright is not None:
                await playwright.stop()
            log.info("browser.stopped")

    async def new_context(self) -> BrowserContext:
        if self._chromium is None:
            raise GrabberError("browser is not running; start() the driver before opening contexts")
        context = await self._chromium.new_context()
        context.set_default_timeout(self.default_timeout_ms)
        self._open.append(context)
        log.debug("browser.context_opened", open_contexts=len(self._open))
        return context

    async def new_page(self, ctx: Any) -> Page:
        return await _context_of(ctx).new_page()

    async def close_context(self, ctx: Any) -> None:
        context = _context_of(ctx)
        if context in self._open:
            self._open.remove(context)
        await self._close(context)

    async def _close(self, context: BrowserContext) -> None:
        await context.close()
        log.debug("browser.context_closed", open_contexts=len(self._open))


def _context_of(ctx: Any) -> BrowserContext:
    if isinstance(ctx, BrowserContext):
        return ctx
    raise GrabberError(f"expected a BrowserContext from new_context(), got {type(ctx).__name__}")
