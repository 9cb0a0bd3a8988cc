"""Tools that run git, ripgrep and shell commands in the working directory."""

from __future__ import annotations

import os
import subprocess
from typing import Any

from smolcode.toolbox import ToolDefinition, ToolError


def _text(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _run(argv: list[str]) -> subprocess.CompletedProcess:
    """Run ``argv`` with stderr folded into stdout."""
    return subprocess.run(argv, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)


def _output(process: subprocess.CompletedProcess) -> str:
    data = process.stdout or b""
    return data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data


def list_changes(args: dict[str, Any]) -> dict[str, Any]:
    """Return ``git status`` output, or ``git diff`` when details is "diff"."""
    details = _text(args, "details")
    if not details:
        raise ToolError("list_changes: no detail level specified")
    git_args = ["diff"] if details == "diff" else ["status"]
    label = " ".join(git_args)
    try:
        process = _run(["git", *git_args])
    except OSError as exc:
        raise ToolError(f"list_changes: failed to run git {label}: {exc}") from exc
    output = _output(process)
    if process.returncode != 0:
        raise ToolError(
            f"list_changes: failed to run git {label}: exit status {process.returncode} "
            f"(output: {output})"
        )
    return {"output": output}


def create_checkpoint(args: dict[str, Any]) -> dict[str, Any]:
    """Stage every change and commit it with the given message."""
    message = _text(args, "message")
    if not message:
        raise ToolError("create_checkpoint: no commit message provided")
    try:
        staged = _run(["git", "add", "."])
    except OSError as exc:
        raise ToolError(f"create_checkpoint: failed to stage files: {exc}") from exc
    if staged.returncode != 0:
        raise ToolError(
            f"create_checkpoint: failed to stage files: exit status {staged.returncode}"
        )
    try:
        process = _run(["git", "commit", "-m", message])
    except OSError as exc:
        raise ToolError(f"create_checkpoint: failed to commit: {exc}") from exc
    output = _output(process)
    if process.returncode != 0:
        raise ToolError(
            f"create_checkpoint: failed to commit: exit status {process.returncode} "
            f"(output: {output})"
        )
    return {"output": output}


def run_command(args: dict[str, Any]) -> dict[str, Any]:
    """Run a command through the user's shell ($SHELL, else sh) and return its output."""
    command = _text(args, "command")
    if not command.split():
        raise ToolError("run_command: no command specified")
    shell = os.environ.get("SHELL") or "sh"
    try:
        process = _run([shell, "-c", command])
    except OSError as exc:
        raise ToolError(f"run_command: failed to run command '{command}': {exc}") from exc
    output = _output(process)
    if process.returncode != 0:
        raise ToolError(
            f"run_command: failed to run command '{command}': exit status "
            f"{process.returncode} (output: {output})"
        )
    return {"output": output}


def search_code(args: dict[str, Any]) -> dict[str, Any]:
    """Search with ripgrep and return its JSON messages as one JSON array string."""
    pattern = args.get("pattern")
    if not isinstance(pattern, str) or not pattern:
        raise ToolError("search_code: pattern is required and must be a non-empty string")
    directory = args.get("directory")
    argv = ["rg", "--json", pattern]
    if isinstance(directory, str) and directory:
        argv.append(directory)
    try:
        process = _run(argv)
    except OSError as exc:
        raise ToolError(f"search_code: failed to run command '{' '.join(argv)}': {exc}") from exc
    output = _output(process)
    if process.returncode == 1:
        return {"results": "[]"}
    if process.returncode != 0:
        raise ToolError(
            f"search_code: failed to run command '{' '.join(argv)}': exit status "
            f"{process.returncode} (output: {output})"
        )
    lines = output.strip().split("\n")
    return {"results": "[" + ",".join(lines) + "]"}


LIST_CHANGES_TOOL = ToolDefinition(
    name="list_changes",
    description=(
        "Use this tool to receive a list of all changes in files in the project.\n\n"
        "This input is useful for drafting a commit message for create_checkpoint."
    ),
    parameters={
        "type": "object",
        "properties": {
            "details": {
                "type": "string",
                "title": "details",
                "description": "The level of detail to use for listing changes",
                "format": "enum",
                "enum": ["files", "diff"],
            },
        },
        "required": ["details"],
    },
    function=list_changes,
)

CREATE_CHECKPOINT_TOOL = ToolDefinition(
    name="create_checkpoint",
    description=(
        "Store a summary of recent changes in git with the given commit message.\n\n"
        "Always list_changes to get input for creating a checkpoint.\n\n"
        "DO NOT ask the user for a commit message.\n\n"
        "In the body of the commit message, include a summary of each change.\n\n"
        "Commit messages MUST follow the conventional commit format:\n\n"
        "<type>[optional scope]: <description>\n\n"
        "[required body]\n\n"
        "fix: a commit of the type fix patches a bug in your codebase (PATCH in Semantic "
        "Versioning).\n"
        "feat: a commit of the type feat introduces a new feature to the codebase (MINOR in "
        "Semantic Versioning).\n"
        "BREAKING CHANGE: a commit that has a footer BREAKING CHANGE:, or appends a ! after "
        "the type/scope, introduces a breaking API change (MAJOR in Semantic Versioning).\n"
        "Types other than fix: and feat: are allowed, for example build:, chore:, ci:, "
        "docs:, style:, refactor:, perf:, test:, and others.\n"
        "Footers other than BREAKING CHANGE: <description> may be provided and follow a "
        "convention similar to git trailer format."
    ),
    parameters={
        "type": "object",
        "properties": {
            "message": {
                "type": "string",
                "title": "message",
                "description": "The conventional commit message to use for this commit",
            },
        },
        "required": ["message"],
    },
    function=create_checkpoint,
)

RUN_COMMAND_TOOL = ToolDefinition(
    name="run_command",
    description=(
        "Run a terminal command. Only use this for short-running commands.\n"
        "Do not use this for interactive commands."
    ),
    parameters={
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "The command to run."},
        },
        "required": ["command"],
    },
    function=run_command,
)

SEARCH_CODE_TOOL = ToolDefinition(
    name="search_code",
    description=(
        "Search for exact text patterns in files using ripgrep, a fast keyword search tool.\n\n"
        "WHEN TO USE THIS TOOL:\n"
        "- When you need to find exact text matches like variable names, function calls, "
        "or specific strings\n"
        "- When you know the precise pattern you're looking for (including regex patterns)\n"
        "- When you want to quickly locate all occurrences of a specific term across "
        "multiple files\n"
        "- When you need to search for code patterns with exact syntax\n\n"
        "WHEN NOT TO USE THIS TOOL:\n"
        "- For semantic or conceptual searches (e.g., \"how does authentication work\")\n"
        "- For finding code that implements a certain functionality without knowing the "
        "exact terms\n"
        "- When you already have read the entire file"
    ),
    parameters={
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "description": "The regexp pattern to search for."},
            "directory": {
                "type": "string",
                "description": "Optional directory to scope the search.",
            },
        },
        "required": ["pattern"],
    },
    function=search_code,
)