"""
Browser actions bound to the run's pages (Playwright async Page API):
- puppeteer: generic passthrough to a page method
- newPage / closePage / switchPage: keyed pages in PAGES
- screenshot / screenshotElement
- getElements / getChildren / elementExists -> INPUT
"""
# @file purpose: Implement and register page/element actions.

from __future__ import annotations

import inspect
import re
import uuid
from typing import Any

from grabber.core.controller.runner import Run
from grabber.core.errors import ActionError, SelectorError
from grabber.core.registry import action
from grabber.core.store import ACTIVE_PAGE, INPUT, PAGES
from grabber.io.files import sanitize_string

from .params import (
    GetChildrenParams,
    GetElementsParams,
    PageKeyParams,
    PuppeteerParams,
    ScreenshotElementParams,
    ScreenshotParams,
    SelectorParams,
)

DEFAULT_PAGE = "default"

# Puppeteer spellings that differ from Playwright's
WAIT_UNTIL = {"networkidle0": "networkidle", "networkidle2": "networkidle"}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

MARGINS_JS = """
el => {
  const s = window.getComputedStyle(el);
  return {
    top: parseFloat(s.marginTop) || 0,
    right: parseFloat(s.marginRight) || 0,
    bottom: parseFloat(s.marginBottom) || 0,
    left: parseFloat(s.marginLeft) || 0,
  };
}
"""


def snake_case(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


def _options(value: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, v in value.items():
        key = snake_case(key)
        if key == "wait_until" and isinstance(v, str):
            v = WAIT_UNTIL.get(v, v)
        out[key] = v
    return out


def _resolve(target: Any, name: str) -> Any:
    if name.startswith("_"):
        raise ActionError("puppeteer", f"Private attribute {name!r} is not accessible")
    for candidate in (snake_case(name), name):
        if hasattr(target, candidate):
            return getattr(target, candidate)
    raise ActionError("puppeteer", f"Page has no attribute {name!r}")


@action("puppeteer", params_model=PuppeteerParams)
async def puppeteer(run: Run, page: Any, params: PuppeteerParams) -> None:
    """
    page.<func>(*rest) or page.<func>.<func2>(*rest); result -> INPUT.
    A trailing mapping argument becomes keyword options (keys snake_cased).
    """
    run.display(
        [
            (": Puppeteer ", "italic"),
            (params.func, "italic bright_black"),
            (f".{params.func2}" if params.func2 else "", "italic bright_black"),
        ]
    )
    if params.func == "newPage":
        await run.perform("newPage", {"pageKey": str(uuid.uuid4())})
        return

    args = list((params.model_extra or {}).values())
    kwargs: dict[str, Any] = {}
    if args and isinstance(args[-1], dict):
        kwargs = _options(args.pop())

    target = _resolve(page, params.func)
    if params.func2:
        target = _resolve(target, params.func2)
    result = target(*args, **kwargs) if callable(target) else target
    if inspect.isawaitable(result):
        result = await result
    run.store.put(INPUT, result)


@action("newPage", params_model=PageKeyParams)
async def new_page(run: Run, page: Any, params: PageKeyParams) -> None:
    pages = run.store.get(PAGES)
    pages[params.page_key] = await run.driver.new_page(run.session)
    run.store.put(PAGES, pages)
    run.display([(f"New page created with key '{params.page_key}'", "bold blue")])


@action("closePage", params_model=PageKeyParams)
async def close_page(run: Run, page: Any, params: PageKeyParams) -> None:
    pages = run.store.get(PAGES)
    target = pages.get(params.page_key)
    if target is None:
        run.display([(f"Page with key '{params.page_key}' not found", "bold red")])
        return
    await target.close()
    del pages[params.page_key]
    run.store.put(PAGES, pages)
    if run.store.get(ACTIVE_PAGE) is target:
        fallback = pages.get(DEFAULT_PAGE) or next(iter(pages.values()), None)
        run.store.put(ACTIVE_PAGE, fallback)
    run.display([(f"Page with key '{params.page_key}' closed", "bold blue")])


@action("switchPage", params_model=PageKeyParams)
async def switch_page(run: Run, page: Any, params: PageKeyParams) -> None:
    target = run.store.get(PAGES).get(params.page_key)
    if target is None:
        run.display([(f"Page with key '{params.page_key}' not found", "bold red")])
        return
    await target.bring_to_front()
    run.store.put(ACTIVE_PAGE, target)
    run.display([(f"Switched to page with key '{params.page_key}'", "bold blue")])


@action("screenshot", params_model=ScreenshotParams)
async def screenshot(run: Run, page: Any, params: ScreenshotParams) -> None:
    path = run.current_dir / f"{sanitize_string(params.name)}.{params.type}"
    run.display([(": Taking screenshot ", "italic"), (params.name, "italic bright_black")])
    await page.screenshot(path=str(path), type=params.type, full_page=params.full_page)


@action("screenshotElement", params_model=ScreenshotElementParams)
async def screenshot_element(run: Run, page: Any, params: ScreenshotElementParams) -> None:
    """Clip = the element's border box grown by its computed margins."""
    path = run.current_dir / f"{sanitize_string(params.name)}.{params.type}"
    run.display([(": Taking screenshot of element ", "italic"), (params.name, "italic bright_black")])
    handle = await page.query_selector(params.selector)
    if handle is None:
        raise SelectorError("screenshotElement", params.selector)
    await handle.scroll_into_view_if_needed()
    box = await handle.bounding_box()
    if box is None:
        raise SelectorError("screenshotElement", params.selector, details={"reason": "not rendered"})
    margin = await handle.evaluate(MARGINS_JS)
    x = max(box["x"] - margin["left"], 0)
    y = max(box["y"] - margin["top"], 0)
    clip = {
        "x": x,
        "y": y,
        "width": box["x"] + box["width"] + margin["right"] - x,
        "height": box["y"] + box["height"] + margin["bottom"] - y,
    }
    await page.screenshot(path=str(path), type=params.type, clip=clip)


async def _read(element: Any, attribute: str | None) -> Any:
    if attribute:
        return await element.get_attribute(attribute)
    return await element.text_content()


@action("getElements", params_model=GetElementsParams)
async def get_elements(run: Run, page: Any, params: GetElementsParams) -> None:
    elements = await page.query_selector_all(params.selector)
    run.store.put(INPUT, [await _read(el, params.attribute) for el in elements])


@action("getChildren", params_model=GetChildrenParams)
async def get_children(run: Run, page: Any, params: GetChildrenParams) -> None:
    """One list per matching parent, holding its matching children's values."""
    result = []
    for parent in await page.query_selector_all(params.selector_parent):
        children = await parent.query_selector_all(params.selector_child)
        result.append([await _read(child, params.attribute) for child in children])
    run.store.put(INPUT, result)


@action("elementExists", params_model=SelectorParams)
async def element_exists(run: Run, page: Any, params: SelectorParams) -> None:
    run.store.put(INPUT, await page.query_selector(params.selector) is not None)
