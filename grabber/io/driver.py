"""
What the runner needs from a browser backend.

Only the lifecycle goes through the driver: one browser per process, one
isolated context per run, and pages opened inside that context. Action handlers
then work on the page objects directly (Playwright's async Page API).
The runner closes a run's pages before handing its context back.
"""

from __future__ import annotations

from typing import Any, Protocol


class BrowserDriver(Protocol):
    async def start(self) -> None: ...
    async def stop(self) -> None: ...

    # `ctx` is opaque to callers and belongs to exactly one run
    async def new_context(self) -> Any: ...
    async def new_page(self, ctx: Any) -> Any: ...
    async def close_context(self, ctx: Any) -> None: ...
