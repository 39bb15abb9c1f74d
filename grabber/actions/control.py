"""
Control-flow actions. Each one re-enters Run.execute() on its nested body
with the same Store, one indentation level deeper.
"""
# @file purpose: Implement and register if/ifElse/for/forEach/while.

from __future__ import annotations

from typing import Any, Sequence

from grabber.core import expression
from grabber.core.action import ActionSpec
from grabber.core.controller.runner import Run
from grabber.core.errors import ActionError
from grabber.core.store import INPUT
from grabber.core.registry import action
from grabber.io.files import sanitize_string

from .params import ForEachParams, ForParams, IfElseParams, IfParams, WhileParams


def _condition(run: Run, condition: str) -> bool:
    """Safe evaluation against {INPUT}; invalid or unsafe conditions raise ExpressionError."""
    return expression.truthy(expression.evaluate(condition, {"INPUT": run.store.get(INPUT)}))


async def _body(run: Run, actions: Sequence[ActionSpec]) -> None:
    with run.indented():
        await run.execute(actions)


@action("if", params_model=IfParams)
async def if_action(run: Run, page: Any, params: IfParams) -> None:
    run.display([(": Condition: ", "italic"), (params.condition, "bold")])
    if _condition(run, params.condition):
        run.display([(": Condition is true", "italic")])
        await _body(run, params.actions)
        run.display([(": End of if", "italic")])
    else:
        run.display([(": Condition is false", "italic")])


@action("ifElse", params_model=IfElseParams)
async def if_else(run: Run, page: Any, params: IfElseParams) -> None:
    run.display([(": Condition: ", "italic"), (params.condition, "bold")])
    if _condition(run, params.condition):
        run.display([(": Condition is true", "italic")])
        await _body(run, params.actions)
    else:
        run.display([(": Condition is false", "italic")])
        await _body(run, params.else_actions)
    run.display([(": End of if", "italic")])


@action("for", params_model=ForParams)
async def for_action(run: Run, page: Any, params: ForParams) -> None:
    """Inclusive range; a negative step counts down while i >= until."""
    i = params.from_
    with run.indented():
        while (i <= params.until) if params.step > 0 else (i >= params.until):
            run.display([(f": [{i}/{params.until}]", "italic yellow")])
            run.store.put(INPUT, i)
            await run.execute(params.actions)
            i += params.step
    run.display([(": End of for loop", "italic yellow")])


@action("forEach", params_model=ForEachParams)
async def for_each(run: Run, page: Any, params: ForEachParams) -> None:
    items = run.store.get(params.key)
    if isinstance(items, (str, bytes, dict)) or not isinstance(items, (list, tuple)):
        raise ActionError(
            "forEach", f"{params.key} is not a list", details={"type": type(items).__name__}
        )
    total = len(items)
    with run.indented():
        for n, item in enumerate(list(items), start=1):
            run.display(
                [
                    (f": {params.key}[{n}/{total}]", "italic yellow"),
                    (f": {sanitize_string(item)}", "italic"),
                ]
            )
            run.store.put(INPUT, item)
            await run.execute(params.actions)
    run.display([(": End of forEach", "italic yellow")])


@action("while", params_model=WhileParams)
async def while_action(run: Run, page: Any, params: WhileParams) -> None:
    with run.indented():
        while _condition(run, params.condition):
            await run.execute(params.actions)
    run.display([(": End of while loop", "italic yellow")])
