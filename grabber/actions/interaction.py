"""
Interaction actions: click / clickAll / scrollWaitClick / type / login.
click, type and login are wrapped in the run's retry coordinator.
"""
# @file purpose: Implement and register interaction actions.

from __future__ import annotations

import json
import time
from typing import Any

from grabber.core.controller.runner import Run
from grabber.core.errors import NetworkError, SelectorError
from grabber.core.registry import action
from grabber.io import files

from .params import ClickParams, LoginParams, ScrollWaitClickParams, SelectorParams, TypeParams

VISIBLE_TIMEOUT_MS = 5_000
USERNAME_TIMEOUT_MS = 10_000
NAVIGATION_TIMEOUT_MS = 30_000
LOGIN_INITIAL_DELAY_MS = 2_000
WAIT_UNTIL = "networkidle"

COOKIES_DIR = "cookies"
COOKIES_FILE = "cookies.json"


async def _click_matching(page: Any, params: ClickParams) -> None:
    elements = await page.query_selector_all(params.selector)
    if not elements:
        raise SelectorError(
            "click", params.selector, details={"attribute": params.attribute, "text": params.text}
        )
    for element in elements:
        if params.attribute:
            content = await element.get_attribute(params.attribute)
        else:
            content = await element.text_content()
        if content == params.text:
            await element.click()
            return
    raise SelectorError(
        "click",
        params.selector,
        details={
            "attribute": params.attribute,
            "text": params.text,
            "reason": "No matching element found",
        },
    )


@action("click", params_model=ClickParams)
async def click(run: Run, page: Any, params: ClickParams) -> None:
    """By selector (visible-wait), or the first element whose text/attribute equals `text`."""
    run.display([(": Clicking ", "italic"), (params.selector, "italic bright_black")])

    async def attempt() -> None:
        try:
            if params.text is not None:
                await _click_matching(page, params)
            else:
                await page.wait_for_selector(
                    params.selector, state="visible", timeout=VISIBLE_TIMEOUT_MS
                )
                await page.click(params.selector)
        except SelectorError:
            raise
        except Exception as e:  # noqa: BLE001
            raise SelectorError(
                "click", params.selector, details={"cause": str(e), "url": page.url}, cause=e
            ) from e

    await run.retry(attempt)


@action("clickAll", params_model=SelectorParams)
async def click_all(run: Run, page: Any, params: SelectorParams) -> None:
    elements = await page.query_selector_all(params.selector)
    run.display([(f": Clicking {len(elements)} x ", "italic"), (params.selector, "italic bright_black")])
    for element in elements:
        await element.scroll_into_view_if_needed()
        await element.click()


@action("scrollWaitClick", params_model=ScrollWaitClickParams)
async def scroll_wait_click(run: Run, page: Any, params: ScrollWaitClickParams) -> None:
    handle = await page.query_selector(params.selector)
    if handle is None:
        raise SelectorError("scrollWaitClick", params.selector)
    await handle.scroll_into_view_if_needed()
    await run.sleep(params.ms / 1000)
    await page.click(params.selector)


@action("type", params_model=TypeParams)
async def type_action(run: Run, page: Any, params: TypeParams) -> None:
    """
    Named type_action to avoid shadowing Python's built-in `type`.
    Registered name is still "type".
    """

    async def attempt() -> None:
        run.display(
            [(": Typing ", "italic"), ("•••••" if params.secret else params.text, "italic bright_black")]
        )
        try:
            await page.wait_for_selector(params.selector, state="visible", timeout=VISIBLE_TIMEOUT_MS)
            await page.locator(params.selector).first.press_sequentially(params.text)
        except Exception as e:  # noqa: BLE001
            raise SelectorError(
                "type", params.selector, details={"cause": str(e), "url": page.url}, cause=e
            ) from e

    await run.retry(attempt)


def _cookie_valid(cookies: list[dict[str, Any]], name: str | None) -> bool:
    if name:
        token = next((c for c in cookies if c.get("name") == name), None)
    else:
        token = cookies[0] if cookies else None
    if token is None:
        return False
    expires = token.get("expires", -1)
    return isinstance(expires, (int, float)) and expires > time.time()


@action("login", params_model=LoginParams)
async def login(run: Run, page: Any, params: LoginParams) -> None:
    """
    Reuse <BASE_DIR>/cookies/cookies.json while the selected cookie is unexpired;
    otherwise log in through the form and persist the new cookies.
    """
    url = str(params.url)
    cookies_dir = run.base_dir / COOKIES_DIR
    cookies_file = cookies_dir / COOKIES_FILE

    async def attempt() -> None:
        with run.indented():
            if files.exists(cookies_file):
                run.display([(": Loading cookies", "italic")])
                cookies = json.loads(files.read_text(cookies_file))
                if _cookie_valid(cookies, params.cookie_name):
                    await page.context.add_cookies(cookies)
                    run.display([(": Cookies loaded", "italic")])
                    return
                files.unlink(cookies_file)
                run.display([(": Cookies expired", "italic")])

            try:
                await page.goto(url, wait_until=WAIT_UNTIL)
                run.display([(": Page loaded", "italic")])
                await page.wait_for_selector(
                    params.username_selector, state="visible", timeout=USERNAME_TIMEOUT_MS
                )
                await run.perform(
                    "type", {"selector": params.username_selector, "text": params.username}
                )
                await run.perform(
                    "type",
                    {"selector": params.password_selector, "text": params.password, "secret": True},
                )
                run.display([(": Credentials entered", "italic")])
                async with page.expect_navigation(
                    wait_until=WAIT_UNTIL, timeout=NAVIGATION_TIMEOUT_MS
                ):
                    await run.perform("click", {"selector": params.submit_selector})
                run.display([(": Login submitted", "italic")])

                cookies = await page.context.cookies()
                if cookies:
                    files.mkdir(cookies_dir)
                    files.write_text(cookies_file, json.dumps(cookies))
                    run.display([(": Cookies saved", "italic")])
            except Exception as e:  # noqa: BLE001
                raise NetworkError("login", url, e) from e

    await run.retry(attempt, initial_delay_ms=LOGIN_INITIAL_DELAY_MS)
