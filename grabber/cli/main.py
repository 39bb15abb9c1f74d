"""
CLI entrypoint.

grabber               run every recipe in the grabs directory
grabber NAME          run one recipe
grabber --help [NAME] describe recipes (no browser)
grabber --server      start the HTTP service
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..core import registry
from ..core.action import Recipe
from ..core.controller.runner import Runner, RunOutcome
from ..core.errors import ConfigError
from ..core.loader import load_recipes
from ..core.logs import configure_logging
from ..core.settings import Settings, settings
from ..io.driver import BrowserDriver
from ..io.playwright_driver import PlaywrightDriver

app = typer.Typer(help="grabber CLI", add_completion=False)
console = Console()


def build_driver(cfg: Settings) -> BrowserDriver:
    return PlaywrightDriver(
        headless=cfg.headless, slow_mo_ms=cfg.slow_mo_ms, default_timeout_ms=cfg.default_timeout_ms
    )


def _describe(recipes: list[Recipe]) -> None:
    for recipe in recipes:
        console.print(f"[bold green]Grab :[/] {recipe.name}")
        console.print(f"[bold]Description :[/] {recipe.description}")
        console.print()


def _summary(outcomes: list[RunOutcome]) -> None:
    table = Table(title="Grab Results", show_header=True, header_style="bold")
    table.add_column("grab")
    table.add_column("result")
    table.add_column("actions", justify="right")
    table.add_column("duration", justify="right", style="dim")
    for o in outcomes:
        result = "[green]OK[/]" if o.ok else "[red]FAIL[/]"
        table.add_row(o.name, result, str(o.completed), f"{o.duration_ms} ms")
    console.print(table)


async def _run(recipes: list[Recipe], cfg: Settings) -> list[RunOutcome]:
    driver = build_driver(cfg)
    await driver.start()
    try:
        runner = Runner(driver, resources_dir=cfg.resources_dir)
        return [await runner.grab(recipe) for recipe in recipes]
    finally:
        await driver.stop()


@app.command(add_help_option=False)
def grab(
    name: Optional[str] = typer.Argument(None, help="Recipe to run (default: all)"),
    show_help: bool = typer.Option(False, "--help", help="Describe recipes instead of running them"),
    server: bool = typer.Option(False, "--server", help="Start the HTTP service"),
) -> None:
    """Run recipes from the grabs directory, or serve them over HTTP."""
    configure_logging(settings.log_level, settings.log_file)
    try:
        import grabber.actions.impl  # noqa: F401

        registry.load_extensions(settings.extensions)
    except ConfigError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if server:
        import uvicorn

        from ..server.app import create_app

        uvicorn.run(
            create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower()
        )
        return

    try:
        recipes = asyncio.run(load_recipes(settings.grabs_dir))
    except ConfigError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if name is not None:
        recipes = [r for r in recipes if r.name == name]
        if not recipes:
            typer.secho(f"Grab {name} not found", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    if show_help:
        _describe(recipes)
        return

    outcomes = asyncio.run(_run(recipes, settings))
    _summary(outcomes)
    if not all(o.ok for o in outcomes):
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
