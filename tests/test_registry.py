import sys

import pytest
from pydantic import BaseModel

from grabber.actions.params import ClickParams, TypeParams
from grabber.core import registry
from grabber.core.errors import ActionValidationError, ConfigError, UnknownActionError


class GreetParams(BaseModel):
    who: str


def test_builtins_are_registered() -> None:
    names = registry.list_actions()
    for name in ("setVariable", "if", "for", "click", "type", "saveToText", "puppeteer", "userInput"):
        assert name in names
        assert names[name].builtin
    assert registry.get_meta("click").params_model is ClickParams


def test_unknown_action() -> None:
    with pytest.raises(UnknownActionError, match="Action not registered: frobnicate"):
        registry.get_action("frobnicate")


def test_validate_params_fills_defaults() -> None:
    params = registry.validate_params("type", {"selector": "#q", "text": "hi"})
    assert isinstance(params, TypeParams)
    assert params.secret is False


def test_validate_params_lists_every_issue() -> None:
    with pytest.raises(ActionValidationError) as info:
        registry.validate_params("screenshot", {"name": "", "type": "gif"})
    issues = info.value.issues
    assert any(i.startswith("name:") for i in issues)
    assert any(i.startswith("type:") for i in issues)
    assert "[screenshot] Invalid parameters:" in str(info.value)


@pytest.mark.parametrize(
    "name,params",
    [
        ("sleep", {"ms": 300_001}),
        ("sleep", {"ms": -1}),
        ("click", {"selector": "#a", "attribute": "href"}),
        ("login", {
            "url": "ftp://example.com",
            "usernameSelector": "#u",
            "username": "u",
            "passwordSelector": "#p",
            "password": "p",
            "submitSelector": "#s",
        }),
        ("for", {"from": 1, "until": 3, "step": 0, "actions": []}),
        ("random", {"min": 5, "max": 1}),
        ("download", {"url": "/file.zip"}),
    ],
)
def test_refinements(name, params) -> None:
    with pytest.raises(ActionValidationError):
        registry.validate_params(name, params)


def test_extension_registration_and_conflicts() -> None:
    @registry.extension("greet", params_model=GreetParams)
    async def greet(run, page, params):
        return params.who

    meta = registry.get_meta("greet")
    assert meta.fn is greet and not meta.builtin

    with pytest.raises(ConfigError, match="already registered: greet"):
        registry.extend("greet", greet)
    with pytest.raises(ConfigError, match="already registered: click"):
        registry.extend("click", greet)


def test_extension_without_model_passes_raw_mapping() -> None:
    async def raw(run, page, params):
        return params

    registry.extend("raw", raw)
    params = {"anything": [1, 2]}
    validated = registry.validate_params("raw", params)
    assert validated == params and validated is not params


EXTENSION_MODULE = '''
from grabber.core.registry import extension


@extension("shout")
async def shout(run, page, params):
    run.display([(str(params.get("text", "")).upper(), "bold")])
'''


def test_load_extensions(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "shout_ext.py").write_text(EXTENSION_MODULE, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    try:
        registry.load_extensions(["shout_ext"])
        assert registry.get_meta("shout").params_model is None
    finally:
        sys.modules.pop("shout_ext", None)

    with pytest.raises(ConfigError, match="Failed to load extension module 'no_such_module_xyz'"):
        registry.load_extensions(["no_such_module_xyz"])
