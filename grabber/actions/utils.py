"""
Utility actions: sleep, log, string helpers, random/uuid, userInput.
"""
# @file purpose: Implement and register utility actions.

from __future__ import annotations

import asyncio
import posixpath
import random as _random
import re
import uuid as _uuid
from typing import Any

from grabber.core.controller.runner import Run
from grabber.core.display import color_name, console
from grabber.core.errors import ActionError
from grabber.core.registry import action
from grabber.core.store import INDENT, INPUT
from grabber.io.files import sanitize_string as _sanitize

from .params import (
    EmptyParams,
    GetExtensionParams,
    LogParams,
    MatchFromSelectorParams,
    MatchFromStringParams,
    RandomParams,
    ReplaceStringParams,
    SleepParams,
    StringParams,
    UserInputParams,
)


def _compile(name: str, pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ActionError(name, f"Invalid regex: {pattern}", cause=e) from e


@action("sleep", params_model=SleepParams)
async def sleep(run: Run, page: Any, params: SleepParams) -> None:
    run.display([(": Sleeping ", "italic"), (str(params.ms), "italic bright_black"), (" ms", "italic")])
    await run.sleep(params.ms / 1000)


@action("log", params_model=LogParams)
async def log(run: Run, page: Any, params: LogParams) -> None:
    style = "italic"
    if params.color:
        style += f" {color_name(params.color)}"
    if params.background:
        style += f" on {color_name(params.background)}"
    run.display([(f": {params.message}", style)])


@action("sanitizeString", params_model=StringParams)
async def sanitize_string(run: Run, page: Any, params: StringParams) -> None:
    run.store.put(INPUT, _sanitize(params.string))


@action("replaceString", params_model=ReplaceStringParams)
async def replace_string(run: Run, page: Any, params: ReplaceStringParams) -> None:
    """First occurrence only."""
    run.store.put(INPUT, params.string.replace(params.search, params.replace, 1))


@action("matchFromString", params_model=MatchFromStringParams)
async def match_from_string(run: Run, page: Any, params: MatchFromStringParams) -> None:
    m = _compile("matchFromString", params.regex).search(params.string)
    run.store.put(INPUT, m.group(0) if m else "")


@action("matchFromSelector", params_model=MatchFromSelectorParams)
async def match_from_selector(run: Run, page: Any, params: MatchFromSelectorParams) -> None:
    """Every match in the element's innerHTML (or `attribute`); no element -> []."""
    pattern = _compile("matchFromSelector", params.regex)
    handle = await page.query_selector(params.selector)
    html = ""
    if handle is None:
        run.display([(": No element found", "italic bright_black")])
    elif params.attribute:
        html = await handle.get_attribute(params.attribute) or ""
    else:
        html = await handle.inner_html()
    run.store.put(INPUT, [m.group(0) for m in pattern.finditer(html)])


@action("random", params_model=RandomParams)
async def random(run: Run, page: Any, params: RandomParams) -> None:
    run.display(
        [
            (": Generating random number between ", "italic"),
            (str(params.min), "italic bright_black"),
            (" and ", "italic"),
            (str(params.max), "italic bright_black"),
        ]
    )
    run.store.put(INPUT, _random.randint(params.min, params.max))


@action("uuid", params_model=EmptyParams)
async def uuid(run: Run, page: Any, params: EmptyParams) -> None:
    value = str(_uuid.uuid4())
    run.store.put(INPUT, value)
    run.display([(": Generating uuid ", "italic"), (value, "italic bright_black")])


@action("getExtension", params_model=GetExtensionParams)
async def get_extension(run: Run, page: Any, params: GetExtensionParams) -> None:
    run.store.put(INPUT, posixpath.splitext(params.string)[1])


@action("userInput", params_model=UserInputParams)
async def user_input(run: Run, page: Any, params: UserInputParams) -> None:
    """Read one line from stdin; the prompt follows the current indentation."""
    prompt = " " * int(run.store.get(INDENT) or 0) + params.query
    answer = await asyncio.to_thread(console.input, prompt)
    run.store.put(INPUT, answer)
