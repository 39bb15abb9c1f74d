import pytest

from grabber.core import registry
from grabber.core.controller.runner import Run
from grabber.core.errors import ActionError, ActionValidationError, ExpressionError
from grabber.core.store import INPUT


@pytest.fixture()
def collected() -> list:
    values: list = []

    async def collect(run, page, params):
        values.append(run.store.get(INPUT))

    registry.extend("collect", collect)
    return values


BODY = [{"name": "collect"}]


@pytest.mark.asyncio
async def test_for_is_inclusive(run: Run, collected: list) -> None:
    await run.perform("for", {"from": 1, "until": 3, "actions": BODY})
    assert collected == [1, 2, 3]


@pytest.mark.asyncio
async def test_for_with_step_and_empty_range(run: Run, collected: list) -> None:
    await run.perform("for", {"from": 0, "until": 5, "step": 2, "actions": BODY})
    await run.perform("for", {"from": 3, "until": 1, "actions": BODY})
    assert collected == [0, 2, 4]


@pytest.mark.asyncio
async def test_for_counts_down_with_negative_step(run: Run, collected: list) -> None:
    await run.perform("for", {"from": 3, "until": 1, "step": -1, "actions": BODY})
    assert collected == [3, 2, 1]


@pytest.mark.asyncio
async def test_for_rejects_zero_step(run: Run) -> None:
    with pytest.raises(ActionValidationError, match="step"):
        await run.perform("for", {"from": 1, "until": 3, "step": 0, "actions": BODY})


@pytest.mark.asyncio
async def test_for_each(run: Run, collected: list) -> None:
    run.store.put("ITEMS", ["a", {"b": 1}])
    await run.perform("forEach", {"key": "ITEMS", "actions": BODY})
    assert collected == ["a", {"b": 1}]


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [None, "abc", {"a": 1}, 5])
async def test_for_each_requires_a_list(run: Run, value) -> None:
    if value is not None:
        run.store.put("ITEMS", value)
    with pytest.raises(ActionError, match="ITEMS is not a list"):
        await run.perform("forEach", {"key": "ITEMS", "actions": BODY})


@pytest.mark.asyncio
async def test_if_and_if_else(run: Run, collected: list) -> None:
    run.store.put(INPUT, "go")
    await run.perform("if", {"condition": "INPUT === 'go'", "actions": BODY})
    await run.perform("if", {"condition": "INPUT === 'stop'", "actions": BODY})
    await run.perform(
        "ifElse",
        {
            "condition": "INPUT.length > 5",
            "actions": [{"name": "setVariable", "params": {"key": "INPUT", "value": "then"}}],
            "elseActions": [{"name": "setVariable", "params": {"key": "INPUT", "value": "else"}}],
        },
    )
    assert collected == ["go"]
    assert run.store.get(INPUT) == "else"


@pytest.mark.asyncio
async def test_while_uses_the_safe_evaluator(run: Run) -> None:
    await run.perform("countStart", {"key": "INPUT", "value": 0})
    await run.perform(
        "while",
        {"condition": "INPUT < 3", "actions": [{"name": "countIncrement", "params": {"key": "INPUT"}}]},
    )
    assert run.store.get(INPUT) == 3

    with pytest.raises(ExpressionError):
        await run.perform("while", {"condition": "INPUT = 0", "actions": []})


@pytest.mark.asyncio
async def test_templated_body_is_resolved_per_iteration(run: Run) -> None:
    await run.perform(
        "for",
        {
            "from": 1,
            "until": 2,
            "actions": [{"name": "appendToVariable", "params": {"key": "SEEN", "value": "n{{INPUT}}"}}],
        },
    )
    assert run.store.get("SEEN") == ["n1", "n2"]
