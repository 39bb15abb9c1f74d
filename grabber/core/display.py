"""
Human-readable terminal output.

Every line is indented by the run's current INDENT and, for HTTP-triggered
runs, prefixed with the request's payload id.
"""
# @file purpose: Render coloured, indented progress lines with rich.

from __future__ import annotations

from typing import Sequence

from rich.console import Console
from rich.text import Text

from .store import INDENT, PAYLOAD_ID, Store

console = Console(highlight=False)

# (text, rich style) segments; "" means default style
Segment = tuple[str, str]


def color_name(name: str) -> str:
    """Accept chalk-style names (whiteBright, bgRed, gray) as rich colours."""
    if name.startswith("bg") and name[2:3].isupper():
        name = name[2].lower() + name[3:]
    if name.endswith("Bright"):
        return f"bright_{name[: -len('Bright')].lower()}"
    if name in ("gray", "grey"):
        return "bright_black"
    return name


def _prefix(store: Store | None) -> str:
    if store is None:
        return ""
    indent = " " * int(store.get(INDENT) or 0)
    payload_id = store.get(PAYLOAD_ID)
    return f"{payload_id}: {indent}" if payload_id else indent


def render(parts: Sequence[Segment], store: Store | None = None) -> Text:
    line = Text(_prefix(store))
    for text, style in parts:
        line.append(str(text), style=style or None)
    return line


def display_text(parts: Sequence[Segment], store: Store | None = None) -> None:
    console.print(render(parts, store), soft_wrap=True)


def display_error(error: BaseException | str, store: Store | None = None) -> None:
    display_text([(f"ERROR: {error}", "bold red")], store)


def display_warning(message: str, store: Store | None = None) -> None:
    display_text([(message, "yellow")], store)
