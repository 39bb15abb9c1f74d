"""
Per-run memory.

The Store is a key/value map threaded through every action handler. Writes of
composite values are deep-copied so a caller mutating its own object cannot
change what the Store observed; reads hand back the stored reference, which is
what accumulator keys (appendToVariable, PAGES) rely on.
"""

from __future__ import annotations

import copy
import os
from typing import Any, Iterator, Mapping

PARAMS = "PARAMS"
INPUT = "INPUT"
PAGES = "PAGES"
ACTIVE_PAGE = "ACTIVE_PAGE"
BASE_DIR = "BASE_DIR"
CURRENT_DIR = "CURRENT_DIR"
INDENT = "INDENT"
PAYLOAD_ID = "PAYLOAD_ID"

# Live browser handles are stored as-is.
REFERENCE_KEYS = frozenset({PAGES, ACTIVE_PAGE})

ENV_PREFIX = "GRABBER_"

_COMPOSITES = (dict, list, tuple, set)


class Store:
    def __init__(self, seed: Mapping[str, Any] | None = None) -> None:
        self._memory: dict[str, Any] = {}
        for key, value in (seed or {}).items():
            self.put(key, value)

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> "Store":
        """Seed a fresh store with every GRABBER_* variable, prefix removed."""
        env = os.environ if environ is None else environ
        return cls(
            {key[len(ENV_PREFIX) :]: value for key, value in env.items() if key.startswith(ENV_PREFIX)}
        )

    def put(self, key: str, value: Any) -> None:
        if key not in REFERENCE_KEYS and isinstance(value, _COMPOSITES):
            value = copy.deepcopy(value)
        self._memory[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._memory.get(key, default)

    def drop(self, key: str) -> None:
        self._memory.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._memory

    def __iter__(self) -> Iterator[str]:
        return iter(self._memory)

    def __len__(self) -> int:
        return len(self._memory)
