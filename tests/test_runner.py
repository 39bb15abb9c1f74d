import asyncio
from pathlib import Path

import pytest

from grabber.core import registry
from grabber.core.controller.runner import Run, Runner
from grabber.core.errors import (
    ActionError,
    DeferredActionsError,
    ExpressionError,
    UnknownActionError,
)
from grabber.core.store import INDENT, Store

from fakes import FakeDriver


@pytest.mark.asyncio
async def test_variable_and_log(runner: Runner, make_recipe, capsys) -> None:
    outcome = await runner.grab(
        make_recipe(
            {"name": "setVariable", "params": {"key": "NAME", "value": "alice"}},
            {"name": "log", "params": {"message": "hi {{NAME}}"}},
        )
    )
    assert outcome.ok and outcome.error is None
    assert "hi alice" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_arithmetic_loop_to_file(runner: Runner, make_recipe, resources: Path) -> None:
    outcome = await runner.grab(
        make_recipe(
            {"name": "setBaseDir", "params": {"dir": "loop"}},
            {"name": "countStart", "params": {"key": "N", "value": 0}},
            {
                "name": "for",
                "params": {
                    "from": 1,
                    "until": 3,
                    "step": 1,
                    "actions": [{"name": "countIncrement", "params": {"key": "N"}}],
                },
            },
            {"name": "setVariable", "params": {"key": "OUT", "value": "{{N}}"}},
            {"name": "saveToText", "params": {"key": "OUT", "filename": "n"}},
        )
    )
    assert outcome.ok, outcome.error
    assert (resources / "loop" / "n.txt").read_text() == "3"


@pytest.mark.asyncio
async def test_for_each_appends_every_item(runner: Runner, make_recipe, resources: Path) -> None:
    outcome = await runner.grab(
        make_recipe(
            {"name": "setBaseDir", "params": {"dir": "each"}},
            {"name": "setVariable", "params": {"key": "LIST", "value": ["a", "b", "c"]}},
            {
                "name": "forEach",
                "params": {
                    "key": "LIST",
                    "actions": [{"name": "appendToText", "params": {"key": "INPUT", "filename": "out"}}],
                },
            },
        )
    )
    assert outcome.ok, outcome.error
    assert (resources / "each" / "out.txt").read_text() == "a\nb\nc\n"


def _conditional(condition: str) -> list[dict]:
    return [
        {"name": "setVariable", "params": {"key": "INPUT", "value": 7}},
        {
            "name": "if",
            "params": {"condition": condition, "actions": [{"name": "log", "params": {"message": "yes"}}]},
        },
    ]


@pytest.mark.asyncio
async def test_safe_condition(runner: Runner, make_recipe, capsys) -> None:
    outcome = await runner.grab(make_recipe(*_conditional("INPUT > 5")))
    assert outcome.ok
    assert ": yes" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_unsafe_condition_fails_before_any_log(runner: Runner, make_recipe, capsys) -> None:
    outcome = await runner.grab(make_recipe(*_conditional("process.exit(0)")))
    assert not outcome.ok
    assert isinstance(outcome.error, ExpressionError)
    out = capsys.readouterr().out
    assert ": yes" not in out
    assert "ERROR:" in out


@pytest.mark.asyncio
async def test_unknown_action_aborts(runner: Runner, make_recipe, capsys, logs) -> None:
    outcome = await runner.grab(
        make_recipe({"name": "frobnicate", "params": {}}, {"name": "log", "params": {"message": "after"}})
    )
    assert not outcome.ok
    assert isinstance(outcome.error, UnknownActionError)
    assert outcome.completed == 0
    assert ": after" not in capsys.readouterr().out
    failed = [e for e in logs if e["event"] == "grab.failed"]
    assert failed and failed[0]["log_level"] == "error"


@pytest.mark.asyncio
async def test_completed_counts_every_action(runner: Runner, make_recipe) -> None:
    outcome = await runner.grab(
        make_recipe(
            {"name": "countStart", "params": {"key": "C"}},
            {"name": "countIncrement", "params": {"key": "C"}},
            {"name": "countIncrement", "params": {"key": "C"}},
            {"name": "getVariable", "params": {"key": "C"}},
        ),
        payload_id="req-1",
    )
    assert outcome.ok
    assert outcome.completed == 4
    assert outcome.result == 2


@pytest.mark.asyncio
async def test_nested_actions_are_counted(runner: Runner, make_recipe) -> None:
    outcome = await runner.grab(
        make_recipe(
            {
                "name": "for",
                "params": {"from": 1, "until": 2, "actions": [{"name": "uuid"}]},
            }
        )
    )
    assert outcome.completed == 3


@pytest.mark.asyncio
async def test_result_only_with_payload_id(runner: Runner, make_recipe, capsys) -> None:
    recipe = make_recipe({"name": "setVariable", "params": {"key": "INPUT", "value": {"a": 1}}})
    assert (await runner.grab(recipe)).result is None
    outcome = await runner.grab(recipe, payload_id="abc-123")
    assert outcome.result == {"a": 1}
    assert "abc-123: " in capsys.readouterr().out


@pytest.mark.asyncio
async def test_indent_restored_after_failing_block(driver: FakeDriver, resources: Path, make_recipe) -> None:
    seen: list[int] = []

    async def record_indent(run, page, params):
        seen.append(run.store.get(INDENT))

    async def explode(run, page, params):
        raise ActionError("explode", "boom")

    registry.extend("recordIndent", record_indent)
    registry.extend("explode", explode)

    recipe = make_recipe(
        {"name": "recordIndent"},
        {
            "name": "ifElse",
            "params": {
                "condition": "true",
                "actions": [
                    {"name": "recordIndent"},
                    {"name": "for", "params": {"from": 1, "until": 1, "actions": [{"name": "recordIndent"}]}},
                ],
                "elseActions": [],
            },
        },
        {"name": "recordIndent"},
        {"name": "if", "params": {"condition": "true", "actions": [{"name": "explode"}]}},
    )
    runner = Runner(driver, resources_dir=resources)
    outcome = await runner.grab(recipe)
    assert seen == [0, 2, 4, 0]
    assert not outcome.ok and str(outcome.error) == "[explode] boom"


def test_indented_restores_on_exception() -> None:
    store = Store({INDENT: 4})
    run = Run(store, None, None, resources_dir=Path("."))
    with pytest.raises(RuntimeError):
        with run.indented():
            assert store.get(INDENT) == 6
            raise RuntimeError("x")
    assert store.get(INDENT) == 4


@pytest.mark.asyncio
async def test_deferred_actions_are_joined(driver: FakeDriver, resources: Path, make_recipe) -> None:
    order: list[str] = []
    gate = asyncio.Event()

    async def slow(run, page, params):
        await gate.wait()
        order.append("slow")

    async def fast(run, page, params):
        order.append("fast")
        gate.set()

    registry.extend("slow", slow)
    registry.extend("fast", fast)
    runner = Runner(driver, resources_dir=resources)
    outcome = await runner.grab(make_recipe({"name": "slow", "await": False}, {"name": "fast"}))
    assert outcome.ok
    assert order == ["fast", "slow"]
    assert outcome.completed == 2


@pytest.mark.asyncio
async def test_deferred_params_are_fixed_at_dispatch(driver: FakeDriver, resources: Path, make_recipe) -> None:
    seen: list[str] = []

    async def record(run, page, params):
        await asyncio.sleep(0)
        seen.append(params["value"])

    registry.extend("record", record)
    runner = Runner(driver, resources_dir=resources)
    await runner.grab(
        make_recipe(
            {"name": "setVariable", "params": {"key": "V", "value": "before"}},
            {"name": "record", "params": {"value": "{{V}}"}, "await": False},
            {"name": "setVariable", "params": {"key": "V", "value": "after"}},
        )
    )
    assert seen == ["before"]


@pytest.mark.asyncio
async def test_deferred_failures_are_aggregated(driver: FakeDriver, resources: Path, make_recipe) -> None:
    async def fail(run, page, params):
        raise ActionError("fail", params.get("why", "?"))

    registry.extend("fail", fail)
    runner = Runner(driver, resources_dir=resources)

    one = await runner.grab(make_recipe({"name": "fail", "params": {"why": "a"}, "await": False}))
    assert str(one.error) == "[fail] a"

    many = await runner.grab(
        make_recipe(
            {"name": "fail", "params": {"why": "a"}, "await": False},
            {"name": "fail", "params": {"why": "b"}, "await": False},
        )
    )
    assert isinstance(many.error, DeferredActionsError)
    assert len(many.error.errors) == 2


@pytest.mark.asyncio
async def test_teardown_closes_pages_and_context(runner: Runner, driver: FakeDriver, make_recipe) -> None:
    outcome = await runner.grab(
        make_recipe(
            {"name": "newPage", "params": {"pageKey": "second"}},
            {"name": "frobnicate"},
        )
    )
    assert not outcome.ok
    assert len(driver.pages) == 2
    assert all(page.closed for page in driver.pages)
    assert all(ctx.closed for ctx in driver.contexts)


@pytest.mark.asyncio
async def test_base_dir_defaults_to_recipe_name(runner: Runner, make_recipe, resources: Path) -> None:
    outcome = await runner.grab(
        make_recipe({"name": "createFile", "params": {"filename": "hello", "content": "x"}}, name="my-grab")
    )
    assert outcome.ok
    assert (resources / "my-grab" / "hello.txt").read_text() == "x"


@pytest.mark.asyncio
async def test_store_is_seeded_from_environment(runner: Runner, make_recipe, monkeypatch) -> None:
    monkeypatch.setenv("GRABBER_GREETING", "hola")
    outcome = await runner.grab(make_recipe({"name": "getVariable", "params": {"key": "GREETING"}}), payload_id="p")
    assert outcome.result == "hola"
