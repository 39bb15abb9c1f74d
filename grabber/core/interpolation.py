"""
{{key}} substitution of action params against the Store.
"""
# @file purpose: Resolve {{key}} references in params before validation.

from __future__ import annotations

import re
from typing import Any

import structlog

from .expression import to_js_string
from .store import Store

log = structlog.get_logger(__name__)

TEMPLATE_RE = re.compile(r"\{\{(.*?)\}\}")

_COMPOSITES = (dict, list, tuple, set)


def scalar_text(value: Any) -> str:
    """Text form of a scalar as recipes see it: `true`, `null`, `3` for 3.0."""
    return to_js_string(value)


def _resolve_string(text: str, store: Store) -> Any:
    out = text
    for m in TEMPLATE_RE.finditer(text):
        key = m.group(1).strip()
        if key not in store:
            log.debug("interpolation.missing_key", key=key)
            continue
        value = store.get(key)
        if isinstance(value, _COMPOSITES):
            # whole field becomes the stored composite
            return value
        out = out.replace(m.group(0), scalar_text(value), 1)
    return out


def _resolve(value: Any, store: Store) -> Any:
    if isinstance(value, str):
        return _resolve_string(value, store)
    if isinstance(value, list):
        return [_resolve(item, store) if isinstance(item, (str, list)) else item for item in value]
    return value


def interpolate(params: dict[str, Any], store: Store) -> dict[str, Any]:
    """Return a fresh mapping with templates resolved; `params` is never mutated."""
    return {key: _resolve(value, store) for key, value in (params or {}).items()}
