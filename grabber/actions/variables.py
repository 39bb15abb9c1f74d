"""
Store manipulation actions: variables and counters.
"""
# @file purpose: Implement and register variable/counter actions.

from __future__ import annotations

import json
from typing import Any

from grabber.core.controller.runner import Run
from grabber.core.errors import ActionError
from grabber.core.registry import action
from grabber.core.store import INPUT

from .params import (
    AppendToVariableParams,
    CountParams,
    CountStartParams,
    DeleteVariableParams,
    GetVariableParams,
    SetVariableParams,
    TransferVariableParams,
)


def _label(run: Run, verb: str, key: str, *tail: tuple[str, str]) -> None:
    run.display([(f": {verb} ", "italic"), (key, "italic bright_black"), *tail])


def _pick_index(name: str, value: Any, index: int) -> Any:
    try:
        return value[index]
    except (IndexError, KeyError, TypeError) as e:
        raise ActionError(name, f"Cannot read index {index}", details={"cause": str(e)}, cause=e) from e


@action("setVariable", params_model=SetVariableParams)
async def set_variable(run: Run, page: Any, params: SetVariableParams) -> None:
    _label(run, "Setting variable", params.key)
    run.store.put(params.key, params.value)


@action("getVariable", params_model=GetVariableParams)
async def get_variable(run: Run, page: Any, params: GetVariableParams) -> None:
    _label(run, "Getting variable", params.key)
    value = run.store.get(params.key)
    if params.index is not None:
        value = _pick_index("getVariable", value, params.index)
    run.store.put(INPUT, value)


@action("deleteVariable", params_model=DeleteVariableParams)
async def delete_variable(run: Run, page: Any, params: DeleteVariableParams) -> None:
    _label(run, "Deleting variable", params.key)
    run.store.drop(params.key)


@action("transferVariable", params_model=TransferVariableParams)
async def transfer_variable(run: Run, page: Any, params: TransferVariableParams) -> None:
    """
    Copy `from` into `to`, optionally narrowing by `index` (sequence) or
    `key` (mapping; a string source is parsed as JSON first).
    """
    _label(run, "Transferring variable", params.from_, (" to ", "italic"), (params.to, "italic bright_black"))
    value = run.store.get(params.from_)
    if params.index is not None:
        value = _pick_index("transferVariable", value, params.index)
    elif params.key is not None:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                raise ActionError(
                    "transferVariable", f"{params.from_} is not valid JSON", cause=e
                ) from e
        if not isinstance(value, dict):
            raise ActionError("transferVariable", f"{params.from_} is not a mapping")
        value = value.get(params.key)
    run.store.put(params.to, value)


@action("appendToVariable", params_model=AppendToVariableParams)
async def append_to_variable(run: Run, page: Any, params: AppendToVariableParams) -> None:
    _label(run, "Appending to variable", params.key)
    content = run.store.get(params.key)
    if content is None:
        content = []
    if not isinstance(content, list):
        raise ActionError("appendToVariable", f"{params.key} is not a list")
    content.append(params.value)
    run.store.put(params.key, content)


@action("countStart", params_model=CountStartParams)
async def count_start(run: Run, page: Any, params: CountStartParams) -> None:
    value = params.value or 0
    _label(run, "Starting count", params.key, (" with value ", "italic"), (str(value), "italic bright_black"))
    run.store.put(params.key, value)


def _count(run: Run, name: str, key: str, delta: int) -> None:
    current = run.store.get(key)
    if isinstance(current, bool) or not isinstance(current, (int, float)):
        raise ActionError(name, f"{key} is not a number", details={"value": current})
    count = current + delta
    verb = "Incrementing count" if delta > 0 else "Decrementing count"
    _label(run, verb, key, (" to ", "italic"), (str(count), "italic bright_black"))
    run.store.put(key, count)


@action("countIncrement", params_model=CountParams)
async def count_increment(run: Run, page: Any, params: CountParams) -> None:
    _count(run, "countIncrement", params.key, 1)


@action("countDecrement", params_model=CountParams)
async def count_decrement(run: Run, page: Any, params: CountParams) -> None:
    _count(run, "countDecrement", params.key, -1)
