"""Tools that read, write, edit and list files in the working directory."""

from __future__ import annotations

import base64
import os
from pathlib import Path
from typing import Any, Iterator

from smolcode.toolbox import ToolDefinition, ToolError


def _text(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _ensure_parent(filepath: str, tool: str) -> None:
    directory = os.path.dirname(filepath)
    if directory and directory != ".":
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            raise ToolError(f"{tool}: failed to create directory: {exc}") from exc


def _encode(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


def edit_file(args: dict[str, Any]) -> dict[str, Any]:
    """Replace every occurrence of ``old_str`` with ``new_str`` in ``filepath``.

    A missing file is created with ``new_str`` as content when ``old_str`` is empty.
    """
    filepath = _text(args, "filepath")
    if not filepath:
        raise ToolError("edit_file: filepath is missing")
    old_str = _text(args, "old_str")
    new_str = _text(args, "new_str")
    if old_str == new_str:
        raise ToolError("edit_file: old_str and new_str must be different")

    try:
        raw = Path(filepath).read_bytes()
    except FileNotFoundError as exc:
        if old_str == "":
            _ensure_parent(filepath, "edit_file")
            try:
                Path(filepath).write_bytes(_encode(new_str))
            except OSError as write_exc:
                raise ToolError(f"edit_file: failed to create file: {write_exc}") from write_exc
            return {"created": filepath}
        raise ToolError(f"edit_file: {exc}") from exc
    except OSError as exc:
        raise ToolError(f"edit_file: {exc}") from exc

    old_content = raw.decode("utf-8", errors="surrogateescape")
    new_content = old_content.replace(old_str, new_str)
    if old_content == new_content and old_str != "":
        raise ToolError("edit_file: old_str not found in file")

    try:
        Path(filepath).write_bytes(_encode(new_content))
    except OSError as exc:
        raise ToolError(f"edit_file: {exc}") from exc
    return {"wrote": filepath}


def write_file(args: dict[str, Any]) -> dict[str, Any]:
    """Overwrite ``filepath`` with ``content``, creating directories as needed."""
    filepath = _text(args, "filepath")
    if not filepath:
        raise ToolError("write_file: filepath is missing")
    content = _text(args, "content")
    _ensure_parent(filepath, "write_file")
    try:
        Path(filepath).write_bytes(_encode(content))
    except OSError as exc:
        raise ToolError(f"write_file: failed to write file: {exc}") from exc
    return {"wrote": filepath}


def read_file(args: dict[str, Any]) -> dict[str, Any]:
    """Return a file's contents: text as is, anything else base64 encoded."""
    if args.get("filepath") is None:
        raise ToolError("read_file: no filepath provided")
    path = os.path.normpath(os.path.join(".", _text(args, "filepath")))
    try:
        contents = Path(path).read_bytes()
    except OSError as exc:
        raise ToolError(f"read_file: {exc}") from exc
    try:
        return {"contents": contents.decode("utf-8"), "mime_type": "text/plain"}
    except UnicodeDecodeError:
        return {
            "contents": base64.b64encode(contents).decode("ascii"),
            "mime_type": "application/octet-stream",
        }


def _walk(directory: str, prefix: str) -> Iterator[str]:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda entry: entry.name)
    except OSError as exc:
        raise ToolError(f"list_files: {exc}") from exc
    for entry in entries:
        is_dir = entry.is_dir(follow_symlinks=False)
        if is_dir and entry.name == ".git":
            continue
        relative = os.path.join(prefix, entry.name) if prefix else entry.name
        if is_dir:
            yield relative + "/"
            yield from _walk(entry.path, relative)
        else:
            yield relative


def list_files(args: dict[str, Any]) -> dict[str, Any]:
    """List files and directories below ``filepath`` (default: the current directory)."""
    provided = "." if args.get("filepath") is None else _text(args, "filepath")
    root = os.path.normpath(os.path.join(".", provided))
    try:
        info = os.lstat(root)
    except OSError as exc:
        raise ToolError(f"list_files: {exc}") from exc
    if not os.path.isdir(root) or os.path.islink(root) and not info:
        return {"files": []}
    if os.path.basename(root) == ".git":
        return {"files": []}
    return {"files": list(_walk(root, ""))}


EDIT_FILE_TOOL = ToolDefinition(
    name="edit_file",
    description=(
        "Make edits to a text file.\n\n"
        "Replaces 'old_str' with 'new_str' in the given file. 'old_str' and 'new_str' "
        "MUST be different from each other.\n\n"
        "If the file specified with path doesn't exist, it will be created.\n\n"
        "If edits fail repeatedly, consider overwriting the file using the 'write_file' tool."
    ),
    parameters={
        "type": "object",
        "properties": {
            "filepath": {
                "type": "string",
                "title": "filepath",
                "description": "The file to edit – must be a relative path of a file in the "
                "working directory.",
            },
            "old_str": {
                "type": "string",
                "title": "old_str",
                "description": "Text to search for - must match exactly and must only have "
                "one match exactly",
            },
            "new_str": {
                "type": "string",
                "title": "new_str",
                "description": "Text to replace old_str with",
            },
        },
        "required": ["filepath", "old_str", "new_str"],
    },
    function=edit_file,
)

WRITE_FILE_TOOL = ToolDefinition(
    name="write_file",
    description=(
        "Overwrites a file with new content.\n\n"
        "If the file specified with path doesn't exist, it will be created."
    ),
    parameters={
        "type": "object",
        "properties": {
            "filepath": {
                "type": "string",
                "title": "filepath",
                "description": "The file to write – must be a relative path of a file in the "
                "working directory.",
            },
            "content": {
                "type": "string",
                "title": "content",
                "description": "The new content to write to the file.",
            },
        },
        "required": ["filepath", "content"],
    },
    function=write_file,
)

READ_FILE_TOOL = ToolDefinition(
    name="read_file",
    description=(
        "Read the contents of a given relative file path. Use this when you want to see "
        "what's inside a file. Do not use this with directory names."
    ),
    parameters={
        "type": "object",
        "properties": {
            "filepath": {
                "type": "string",
                "title": "filepath",
                "description": "The relative path of a file in the working directory.",
            },
        },
    },
    function=read_file,
)

LIST_FILES_TOOL = ToolDefinition(
    name="list_files",
    description=(
        "List files and directories at a given path. If no path is provided, lists files "
        "in the current directory."
    ),
    parameters={
        "type": "object",
        "properties": {
            "filepath": {
                "type": "string",
                "title": "filepath",
                "description": "The relative path of a directory in the working directory.",
            },
        },
    },
    function=list_files,
)