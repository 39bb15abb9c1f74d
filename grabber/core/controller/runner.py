# grabber/core/controller/runner.py
"""
Recipe interpreter.

Responsibilities:
- Run lifecycle: fresh Store per recipe, default page, base dir, teardown
- Per action: PARAMS -> interpolate -> validate -> dispatch
- `await: false` actions become tasks joined at the end of the run
- Control-flow handlers re-enter Run.execute() on their nested bodies
- Return a RunOutcome for CLI rendering and the HTTP service
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator, Sequence

import structlog
from pydantic import BaseModel

from .. import registry
from ..action import ActionSpec, Recipe
from ..display import Segment, display_error, display_text
from ..errors import DeferredActionsError, FileSystemError
from ..interpolation import interpolate
from ..retry import RetryPolicy, retry_with_backoff
from ..store import (
    ACTIVE_PAGE,
    BASE_DIR,
    CURRENT_DIR,
    INDENT,
    INPUT,
    PAGES,
    PARAMS,
    PAYLOAD_ID,
    Store,
)
from ...io import files

log = structlog.get_logger(__name__)

INDENT_STEP = 2

Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class RunOutcome:
    """UI-friendly outcome used by the CLI and the HTTP service."""

    name: str
    ok: bool
    result: Any = None
    error: BaseException | None = None
    completed: int = 0
    duration_ms: int = 0


class Run:
    """State of one recipe execution; handed to every action handler."""

    def __init__(
        self,
        store: Store,
        driver: Any,
        session: Any,
        *,
        resources_dir: Path,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.store = store
        self.driver = driver
        self.session = session
        self.resources_dir = resources_dir
        self.sleep = sleep
        self.pending: list[asyncio.Task[Any]] = []
        self.completed = 0

    # ---------------- store shortcuts ----------------

    @property
    def page(self) -> Any:
        return self.store.get(ACTIVE_PAGE)

    @property
    def base_dir(self) -> Path:
        return Path(self.store.get(BASE_DIR))

    @property
    def current_dir(self) -> Path:
        return Path(self.store.get(CURRENT_DIR))

    def set_base_dir(self, name: str) -> Path:
        """BASE_DIR := <resources>/<name> (created); CURRENT_DIR follows it."""
        root = self.resources_dir.resolve()
        target = (root / files.sanitize_string(name)).resolve()
        if not files.is_within(root, target):
            raise FileSystemError("setBaseDir", "resolve", str(target))
        files.mkdir(target)
        self.store.put(BASE_DIR, str(target))
        self.store.put(CURRENT_DIR, str(target))
        return target

    # ---------------- dispatch ----------------

    def prepare(self, name: str, params: dict[str, Any] | None) -> Awaitable[Any]:
        """
        Resolve and validate params synchronously, then return the handler's
        awaitable. Deferred actions therefore see params fixed at dispatch time.
        """
        self.store.put(PARAMS, params or {})
        resolved = interpolate(self.store.get(PARAMS), self.store)
        self.store.put(PARAMS, resolved)
        validated = registry.validate_params(name, resolved)
        if isinstance(validated, BaseModel):
            self.store.put(PARAMS, validated.model_dump(by_alias=True))
        else:
            self.store.put(PARAMS, validated)
        fn = registry.get_action(name)
        return fn(self, self.page, validated)

    async def _track(self, name: str, pending: Awaitable[Any]) -> Any:
        started = time.monotonic()
        try:
            result = await pending
        except Exception as e:  # noqa: BLE001
            log.debug(
                "action.failed",
                action=name,
                duration_ms=int((time.monotonic() - started) * 1000),
                error=str(e),
            )
            raise
        self.completed += 1
        log.info(
            "action.completed",
            action=name,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return result

    async def perform(self, name: str, params: dict[str, Any] | None = None) -> Any:
        """Run one action inline (used by composite actions such as login)."""
        self.display([("Running action : ", "bold blue"), (name, "bright_white")])
        log.debug("action.started", action=name)
        return await self._track(name, self.prepare(name, params))

    async def dispatch(self, spec: ActionSpec) -> None:
        if spec.await_:
            await self.perform(spec.name, spec.params)
            return
        self.display([("Running action : ", "bold blue"), (spec.name, "bright_white")])
        log.debug("action.started", action=spec.name, deferred=True)
        pending = self.prepare(spec.name, spec.params)
        self.pending.append(asyncio.create_task(self._track(spec.name, pending)))

    async def execute(self, actions: Sequence[ActionSpec]) -> None:
        for spec in actions:
            await self.dispatch(spec)

    async def join(self) -> list[BaseException]:
        """Await every deferred action; returns the failures."""
        if not self.pending:
            return []
        results = await asyncio.gather(*self.pending, return_exceptions=True)
        self.pending.clear()
        failures = [r for r in results if isinstance(r, BaseException)]
        for e in failures:
            log.warning("action.deferred_failed", error=str(e))
        return failures

    # ---------------- display ----------------

    @contextlib.contextmanager
    def indented(self) -> Iterator[None]:
        """INDENT += 2 for the body; restored on success and on failure."""
        previous = int(self.store.get(INDENT) or 0)
        self.store.put(INDENT, previous + INDENT_STEP)
        try:
            yield
        finally:
            self.store.put(INDENT, previous)

    def display(self, parts: Sequence[Segment]) -> None:
        display_text(parts, self.store)

    def retry_notice(self, attempt: int, max_attempts: int, delay_ms: int, error: BaseException) -> None:
        self.display([(f": Retry {attempt}/{max_attempts} after {delay_ms}ms", "yellow")])
        log.warning(
            "action.retry", attempt=attempt, max_attempts=max_attempts, delay_ms=delay_ms, error=str(error)
        )

    async def retry(self, fn: Callable[[], Awaitable[Any]], *, initial_delay_ms: int = 1000) -> Any:
        policy = RetryPolicy(initial_delay_ms=initial_delay_ms)
        return await retry_with_backoff(fn, policy, on_retry=self.retry_notice, sleep=self.sleep)


class Runner:
    def __init__(
        self,
        driver: Any,
        *,
        resources_dir: Path,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.driver = driver
        self.resources_dir = resources_dir
        self.sleep = sleep

    async def grab(self, recipe: Recipe, payload_id: str | None = None) -> RunOutcome:
        started = time.monotonic()
        store = Store.from_environ()
        if payload_id:
            store.put(PAYLOAD_ID, payload_id)
        store.put(INDENT, 0)

        outcome = RunOutcome(name=recipe.name, ok=True)
        with structlog.contextvars.bound_contextvars(grab=recipe.name, request_id=payload_id):
            display_text([(f"Grabbing {recipe.name}", "bold green")], store)
            log.info("grab.started")
            session = None
            run: Run | None = None
            try:
                session = await self.driver.new_context()
                run = Run(
                    store, self.driver, session, resources_dir=self.resources_dir, sleep=self.sleep
                )
                page = await self.driver.new_page(session)
                store.put(PAGES, {"default": page})
                store.put(ACTIVE_PAGE, page)
                run.set_base_dir(recipe.name)
                try:
                    await run.execute(recipe.actions)
                finally:
                    deferred = await run.join()
                if len(deferred) == 1:
                    raise deferred[0]
                if deferred:
                    raise DeferredActionsError(deferred)
            except Exception as e:  # noqa: BLE001
                outcome.ok = False
                outcome.error = e
                display_error(e, store)
                log.error("grab.failed", error=str(e), exc_info=e)
            finally:
                await self._teardown(store, session)

            outcome.completed = run.completed if run is not None else 0
            outcome.duration_ms = int((time.monotonic() - started) * 1000)
            if payload_id:
                outcome.result = store.get(INPUT)
            log.info(
                "grab.finished",
                ok=outcome.ok,
                completed=outcome.completed,
                duration_ms=outcome.duration_ms,
            )
        return outcome

    async def _teardown(self, store: Store, session: Any) -> None:
        """Close every page of the run, then its browser context."""
        pages = store.get(PAGES) or {}
        for key, page in list(pages.items()):
            try:
                await page.close()
            except Exception as e:  # noqa: BLE001
                log.warning("page.close_failed", page=key, error=str(e))
        if session is None:
            return
        try:
            await self.driver.close_context(session)
        except Exception as e:  # noqa: BLE001
            log.warning("context.close_failed", error=str(e))
