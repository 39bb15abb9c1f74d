from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest
import structlog
from structlog.testing import capture_logs

import grabber.actions.impl  # noqa: F401  (register built-ins)
from grabber.core import registry
from grabber.core.action import Recipe
from grabber.core.controller.runner import Run, Runner
from grabber.core.store import ACTIVE_PAGE, ENV_PREFIX, INDENT, PAGES, Store

from fakes import FakeContext, FakeDriver, FakePage, no_sleep


@pytest.fixture(autouse=True)
def _isolate(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    # shell GRABBER_* variables would otherwise seed every Store
    for key in list(os.environ):
        if key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key)
    monkeypatch.delenv("PORT", raising=False)
    yield
    registry._reset_extensions_for_tests()


@pytest.fixture(autouse=True)
def logs() -> Iterator[list[dict[str, Any]]]:
    """Structured log events of the test; nothing reaches the real streams."""
    with capture_logs() as events:
        yield events
    structlog.reset_defaults()


@pytest.fixture()
def resources(tmp_path: Path) -> Path:
    return tmp_path / "resources"


@pytest.fixture()
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture()
def runner(driver: FakeDriver, resources: Path) -> Runner:
    return Runner(driver, resources_dir=resources, sleep=no_sleep)


@pytest.fixture()
def make_recipe() -> Callable[..., Recipe]:
    def make(*actions: dict[str, Any], name: str = "test") -> Recipe:
        return Recipe.model_validate({"name": name, "actions": list(actions)})

    return make


@pytest.fixture()
def page() -> FakePage:
    return FakePage()


@pytest.fixture()
def run(driver: FakeDriver, page: FakePage, resources: Path) -> Run:
    """A Run in the state Runner.grab leaves it before the first action."""
    store = Store()
    store.put(PAGES, {"default": page})
    store.put(ACTIVE_PAGE, page)
    store.put(INDENT, 0)
    r = Run(store, driver, FakeContext(), resources_dir=resources, sleep=no_sleep)
    r.set_base_dir("test")
    return r
