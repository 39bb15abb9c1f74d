"""
Recipe data contracts.
- ActionSpec: one step of a recipe (name + params + await flag)
- Recipe: a named, ordered list of ActionSpec
- check_recipe(): load-time checks against the registry
"""
# @file purpose: Define recipe/action data contracts and load-time checks.

from __future__ import annotations

from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import registry
from .errors import ActionValidationError, ConfigError, UnknownActionError

NESTED_KEYS = ("actions", "elseActions")
TEMPLATE_OPEN = "{{"


class ActionSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, description="Registered action name.")
    params: dict[str, Any] = Field(
        default_factory=dict, description="Raw parameters; may contain {{templates}}."
    )
    await_: bool = Field(
        default=True, alias="await", description="False schedules the action as a deferred task."
    )

    @field_validator("params", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class Recipe(BaseModel):
    name: str = Field(..., pattern=r"^[A-Za-z0-9_-]+$")
    description: str = "No description provided"
    actions: list[ActionSpec] = Field(..., min_length=1)

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, v: Any) -> Any:
        return "No description provided" if v is None else v


def has_template(value: Any) -> bool:
    """True when any string inside `value` carries a {{...}} reference."""
    if isinstance(value, str):
        return TEMPLATE_OPEN in value
    if isinstance(value, dict):
        return any(has_template(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(has_template(v) for v in value)
    return False


def _walk(actions: list[Any], path: str) -> Iterator[tuple[str, Any]]:
    for i, step in enumerate(actions):
        where = f"{path}[{i}]"
        yield where, step
        params = step.params if isinstance(step, ActionSpec) else (step or {}).get("params")
        if not isinstance(params, dict):
            continue
        for key in NESTED_KEYS:
            nested = params.get(key)
            if isinstance(nested, list):
                yield from _walk(nested, f"{where}.params.{key}")


def check_recipe(recipe: Recipe) -> None:
    """
    Reject a recipe that cannot possibly run:
    1) every action name (nested bodies included) must be registered
    2) params without templates must already satisfy their schema
    Templated params are only validated at dispatch, after interpolation.
    """
    issues: list[str] = []
    for where, step in _walk(recipe.actions, "actions"):
        if isinstance(step, ActionSpec):
            name, params = step.name, step.params
        elif isinstance(step, dict):
            name, params = step.get("name"), step.get("params") or {}
        else:
            # malformed nested entries are reported by the parent's schema
            continue
        try:
            registry.get_meta(str(name))
        except UnknownActionError:
            issues.append(f"{where}: unknown action {name!r}")
            continue
        if has_template(params):
            continue
        try:
            registry.validate_params(str(name), params)
        except ActionValidationError as e:
            issues.extend(f"{where} ({name}): {issue}" for issue in e.issues)
    if issues:
        raise ConfigError(f"Recipe {recipe.name!r} is invalid: " + "; ".join(issues))
