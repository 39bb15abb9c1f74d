"""
Built-in action set. Importing this module registers every built-in handler:
- variables: setVariable / getVariable / ... / countDecrement
- control: if / ifElse / for / forEach / while
- filesystem: setBaseDir / ... / download
- browser: puppeteer / newPage / ... / elementExists
- interaction: click / clickAll / scrollWaitClick / type / login
- utils: sleep / log / ... / userInput

Each handler:
  1) Receives the Run, the active page and validated params (Pydantic v2)
  2) Reads/writes the run's Store, or raises an ActionError subclass
"""

# @file purpose: Register the built-in action set.
from __future__ import annotations

from . import browser, control, filesystem, interaction, utils, variables  # noqa: F401
