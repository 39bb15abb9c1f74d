"""
Recipe loading from the grabs directory (YAML / JSON).
"""
# @file purpose: Load and validate recipe files.

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from .action import Recipe, check_recipe
from .display import display_warning
from .errors import ConfigError

log = structlog.get_logger(__name__)

YAML_SUFFIXES = {".yml", ".yaml"}
JSON_SUFFIXES = {".json"}


def format_issues(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(p) for p in err['loc']) or 'root'}: {err['msg']}" for err in error.errors()
    ]


def parse_recipe(doc: Any, source: str) -> Recipe:
    """Validate one document as a Recipe, then check it against the registry."""
    try:
        recipe = Recipe.model_validate(doc)
    except ValidationError as e:
        raise ConfigError(f"Invalid recipe in {source}: " + "; ".join(format_issues(e))) from e
    check_recipe(recipe)
    return recipe


def _read(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix in YAML_SUFFIXES:
        return yaml.safe_load(text)
    return json.loads(text)


async def load_recipes(directory: Path) -> list[Recipe]:
    """
    Every *.yml / *.yaml / *.json file in sorted filename order.
    Invalid files are fatal (ConfigError); duplicate names are warned and skipped.
    """
    if not directory.is_dir():
        raise ConfigError(f"Grabs directory not found: {directory}")

    recipes: list[Recipe] = []
    seen: set[str] = set()
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix not in YAML_SUFFIXES | JSON_SUFFIXES:
            continue
        try:
            doc = await asyncio.to_thread(_read, path)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot parse recipe file {path.name}: {e}") from e

        recipe = parse_recipe(doc, path.name)
        if recipe.name in seen:
            display_warning(f"Warning: Duplicate grab name '{recipe.name}' in {path.name}. Skipping.")
            log.warning("recipe.duplicate", recipe=recipe.name, file=path.name)
            continue
        seen.add(recipe.name)
        recipes.append(recipe)
        log.debug("recipe.loaded", recipe=recipe.name, file=path.name)

    if not recipes:
        raise ConfigError(f"No grabs found in {directory}")
    return recipes
