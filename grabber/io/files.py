"""
Filesystem primitives used by the filesystem actions.
Every failure is re-raised as FileSystemError(primitive, operation, path).
"""
# @file purpose: Wrap pathlib/shutil operations with FileSystemError.

from __future__ import annotations

import re
import shutil
from pathlib import Path

from ..core.errors import FileSystemError

ENCODING = "utf-8"

UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9\-_.:?@(), +!#$%&*;|'\"=<>^]")


def sanitize_string(value: object) -> str:
    """Drop every character outside the safe set, then trim."""
    return UNSAFE_CHARS_RE.sub("", str(value)).strip()


def exists(path: Path) -> bool:
    return path.exists()


def mkdir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileSystemError("mkdir", "create", str(path), e) from e


def rmtree(path: Path) -> None:
    """Recursive delete; a missing path is a no-op."""
    if not path.exists():
        return
    try:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        raise FileSystemError("rmdir", "remove", str(path), e) from e


def list_dirs(path: Path) -> list[str]:
    try:
        return sorted(p.name for p in path.iterdir() if p.is_dir())
    except OSError as e:
        raise FileSystemError("readdir", "read", str(path), e) from e


def read_text(path: Path) -> str:
    try:
        return path.read_text(encoding=ENCODING)
    except OSError as e:
        raise FileSystemError("readFile", "read", str(path), e) from e


def write_text(path: Path, data: str) -> None:
    try:
        path.write_text(data, encoding=ENCODING)
    except OSError as e:
        raise FileSystemError("writeFile", "write", str(path), e) from e


def append_text(path: Path, data: str) -> None:
    try:
        with path.open("a", encoding=ENCODING) as fh:
            fh.write(data)
    except OSError as e:
        raise FileSystemError("appendFile", "append", str(path), e) from e


def unlink(path: Path) -> None:
    try:
        path.unlink()
    except OSError as e:
        raise FileSystemError("unlink", "delete", str(path), e) from e


def is_within(base: Path, target: Path) -> bool:
    """True when `target` is `base` or one of its descendants (after resolving)."""
    base, target = base.resolve(), target.resolve()
    return target == base or base in target.parents
