"""
Filesystem actions. Paths are relative to CURRENT_DIR, which never leaves
BASE_DIR; text files get a `.txt` suffix unless noted otherwise.
"""
# @file purpose: Implement and register filesystem actions.

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
from rich.progress import BarColumn, DownloadColumn, Progress, TransferSpeedColumn

from grabber.core.controller.runner import Run
from grabber.core.display import console
from grabber.core.errors import FileSystemError, NetworkError
from grabber.core.interpolation import scalar_text
from grabber.core.registry import action
from grabber.core.store import CURRENT_DIR, INPUT
from grabber.io import files

from .params import (
    CheckStringInFileParams,
    CreateFileParams,
    DeleteFolderParams,
    DirFromBaseParams,
    DirParams,
    DownloadParams,
    EmptyParams,
    FilenameParams,
    KeyToFileParams,
    ReadFromTextParams,
)

CHUNK_SIZE = 64 * 1024


def _show(run: Run, verb: str, target: Any) -> None:
    run.display([(f": {verb} ", "italic"), (str(target), "italic bright_black")])


def _inside_base(run: Run, name: str, target: Path) -> Path:
    if not files.is_within(run.base_dir, target):
        raise FileSystemError(name, "resolve", str(target))
    return target.resolve()


def _text_file(run: Run, name: str, filename: str) -> Path:
    return _inside_base(run, name, run.current_dir / f"{filename}.txt")


@action("setBaseDir", params_model=DirParams)
async def set_base_dir(run: Run, page: Any, params: DirParams) -> None:
    target = run.set_base_dir(params.dir)
    _show(run, "Base dir set to", target)


@action("setCurrentDir", params_model=DirFromBaseParams)
async def set_current_dir(run: Run, page: Any, params: DirFromBaseParams) -> None:
    name = files.sanitize_string(params.dir)
    root = run.base_dir if params.use_base_dir else run.current_dir
    target = _inside_base(run, "setCurrentDir", root / name)
    if not target.is_dir():
        raise FileSystemError("setCurrentDir", "open", str(target))
    _show(run, "Setting current dir to", name)
    run.store.put(CURRENT_DIR, str(target))


@action("resetCurrentDir", params_model=EmptyParams)
async def reset_current_dir(run: Run, page: Any, params: EmptyParams) -> None:
    run.store.put(CURRENT_DIR, str(run.base_dir))


@action("backToParentDir", params_model=EmptyParams)
async def back_to_parent_dir(run: Run, page: Any, params: EmptyParams) -> None:
    if run.current_dir.resolve() == run.base_dir.resolve():
        return
    run.store.put(CURRENT_DIR, str(run.current_dir.parent))


@action("createDir", params_model=DirFromBaseParams)
async def create_dir(run: Run, page: Any, params: DirFromBaseParams) -> None:
    name = files.sanitize_string(params.dir)
    root = run.base_dir if params.use_base_dir else run.current_dir
    target = _inside_base(run, "createDir", root / name)
    _show(run, "Creating directory", name)
    files.mkdir(target)


@action("deleteFolder", params_model=DeleteFolderParams)
async def delete_folder(run: Run, page: Any, params: DeleteFolderParams) -> None:
    target = _inside_base(run, "deleteFolder", run.current_dir / params.foldername)
    if target == run.base_dir.resolve():
        raise FileSystemError("deleteFolder", "remove", str(target))
    _show(run, "Deleting folder", target)
    files.rmtree(target)


@action("listFolders", params_model=EmptyParams)
async def list_folders(run: Run, page: Any, params: EmptyParams) -> None:
    _show(run, "Listing folders", run.current_dir)
    run.store.put(INPUT, files.list_dirs(run.current_dir))


@action("createFile", params_model=CreateFileParams)
async def create_file(run: Run, page: Any, params: CreateFileParams) -> None:
    path = _text_file(run, "createFile", params.filename)
    _show(run, "Creating file", path)
    files.append_text(path, params.content)


@action("readFromText", params_model=ReadFromTextParams)
async def read_from_text(run: Run, page: Any, params: ReadFromTextParams) -> None:
    path = _text_file(run, "readFromText", params.filename)
    _show(run, "Loading file", path)
    content = files.read_text(path)
    run.store.put(INPUT, content.split("\n") if params.break_line else content)


def _as_text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return "\n".join(_as_text(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return scalar_text(value)


@action("saveToText", params_model=KeyToFileParams)
async def save_to_text(run: Run, page: Any, params: KeyToFileParams) -> None:
    """Overwrite `<filename>.txt` with the value at `key`; absent/empty values are skipped."""
    value = run.store.get(params.key)
    if value is None or value == "" or value == [] or value == {}:
        return
    path = _text_file(run, "saveToText", params.filename)
    _show(run, "Saving", path)
    files.write_text(path, _as_text(value))


@action("appendToText", params_model=KeyToFileParams)
async def append_to_text(run: Run, page: Any, params: KeyToFileParams) -> None:
    value = run.store.get(params.key)
    if value is None or value == "" or value == []:
        return
    path = _text_file(run, "appendToText", params.filename)
    _show(run, "Appending to", path)
    if isinstance(value, (list, tuple)):
        files.append_text(path, _as_text(value))
    else:
        files.append_text(path, _as_text(value) + "\n")


@action("deleteFile", params_model=FilenameParams)
async def delete_file(run: Run, page: Any, params: FilenameParams) -> None:
    path = _text_file(run, "deleteFile", params.filename)
    _show(run, "Deleting file", path)
    if files.exists(path):
        files.unlink(path)


@action("fileExists", params_model=FilenameParams)
async def file_exists(run: Run, page: Any, params: FilenameParams) -> None:
    """Checks `<filename>` as given (no `.txt` suffix)."""
    path = _inside_base(run, "fileExists", run.current_dir / params.filename)
    _show(run, "Checking if file exists", path)
    run.store.put(INPUT, files.exists(path))


@action("checkStringInFile", params_model=CheckStringInFileParams)
async def check_string_in_file(run: Run, page: Any, params: CheckStringInFileParams) -> None:
    path = _text_file(run, "checkStringInFile", params.filename)
    _show(run, "Checking if string is in file", path)
    run.store.put(INPUT, params.string in files.read_text(path))


def _discard(partial: Path | None) -> None:
    if partial is not None:
        partial.unlink(missing_ok=True)


@action("download", params_model=DownloadParams)
async def download(run: Run, page: Any, params: DownloadParams) -> None:
    """Stream the response body into CURRENT_DIR, optionally with a progress bar."""
    url = params.url
    if not url.startswith(("http://", "https://")):
        url = f"{params.host}{url}"
    name = params.filename or url.rstrip("/").split("/")[-1].split("?")[0]
    target = run.current_dir / files.sanitize_string(name)
    _show(run, "Downloading", name)

    written: Path | None = None
    try:
        async with httpx.AsyncClient(follow_redirects=True) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                total = int(response.headers.get("content-length") or 0) or None
                with target.open("wb") as fh:
                    written = target
                    if not params.show_progress:
                        async for chunk in response.aiter_bytes(CHUNK_SIZE):
                            await asyncio.to_thread(fh.write, chunk)
                        return
                    with Progress(
                        BarColumn(),
                        DownloadColumn(),
                        TransferSpeedColumn(),
                        console=console,
                        transient=True,
                    ) as progress:
                        task = progress.add_task(name, total=total)
                        async for chunk in response.aiter_bytes(CHUNK_SIZE):
                            await asyncio.to_thread(fh.write, chunk)
                            progress.advance(task, len(chunk))
    except httpx.HTTPError as e:
        _discard(written)
        raise NetworkError("download", url, e) from e
    except OSError as e:
        _discard(written)
        raise FileSystemError("download", "write", str(target), e) from e
