"""
Action registry and metadata:
- two layers: built-ins (grabber.actions.*) and user extensions
- a name is unique across both layers; lookup scans built-ins first
- params_model (Pydantic v2) is bound per action and used by validate_params()
"""
# @file purpose: Provide action registry, metadata, and params validation.

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Type

from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import ActionValidationError, ConfigError, UnknownActionError

# Standard handler signature: async fn(run, page, params)
ActionFn = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class ActionMeta:
    """Handler + its bound params model (optional for extensions)."""

    name: str
    fn: ActionFn
    params_model: Optional[Type[BaseModel]] = None
    builtin: bool = True


_BUILTINS: Dict[str, ActionMeta] = {}
_EXTENSIONS: Dict[str, ActionMeta] = {}


def _add(layer: Dict[str, ActionMeta], meta: ActionMeta) -> None:
    if meta.name in _BUILTINS or meta.name in _EXTENSIONS:
        raise ConfigError(f"Action already registered: {meta.name}")
    layer[meta.name] = meta


def action(
    name: str, *, params_model: Optional[Type[BaseModel]] = None
) -> Callable[[ActionFn], ActionFn]:
    """
    Decorator for built-in actions:
        @action("click", params_model=ClickParams)
        async def click(run, page, params): ...
    """

    def deco(fn: ActionFn) -> ActionFn:
        _add(_BUILTINS, ActionMeta(name=name, fn=fn, params_model=params_model))
        return fn

    return deco


def extension(
    name: str, params_model: Optional[Type[BaseModel]] = None
) -> Callable[[ActionFn], ActionFn]:
    """Decorator form of extend() for user modules."""

    def deco(fn: ActionFn) -> ActionFn:
        extend(name, fn, params_model)
        return fn

    return deco


def extend(name: str, fn: ActionFn, params_model: Optional[Type[BaseModel]] = None) -> None:
    """Register a user action; clashing with any existing name is a ConfigError."""
    _add(_EXTENSIONS, ActionMeta(name=name, fn=fn, params_model=params_model, builtin=False))


def get_meta(name: str) -> ActionMeta:
    meta = _BUILTINS.get(name) or _EXTENSIONS.get(name)
    if meta is None:
        raise UnknownActionError(name)
    return meta


def get_action(name: str) -> ActionFn:
    return get_meta(name).fn


def list_actions() -> Dict[str, ActionMeta]:
    """Built-ins first, then extensions (shallow copy)."""
    return {**_BUILTINS, **_EXTENSIONS}


def validate_params(name: str, params: dict[str, Any]) -> BaseModel | dict[str, Any]:
    """
    Validate raw params against the action's model.
    Returns the model instance (defaults filled), or the raw mapping when the
    action declares no model. Raises ActionValidationError listing every issue.
    """
    meta = get_meta(name)
    if meta.params_model is None:
        return dict(params)

    adapter = TypeAdapter(meta.params_model)
    try:
        return adapter.validate_python(params)
    except ValidationError as e:
        issues = []
        for err in e.errors():
            loc = ".".join(str(p) for p in err["loc"]) or "params"
            issues.append(f"{loc}: {err['msg']}")
        raise ActionValidationError(name, issues) from e


def load_extensions(modules: Iterable[str]) -> None:
    """Import user modules; their @extension decorators register on import."""
    for module in modules:
        try:
            importlib.import_module(module)
        except ConfigError:
            raise
        except Exception as e:  # noqa: BLE001
            raise ConfigError(f"Failed to load extension module {module!r}: {e}") from e


# Tests only: drop user extensions
def _reset_extensions_for_tests() -> None:
    _EXTENSIONS.clear()
