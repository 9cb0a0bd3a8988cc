"""Tool definitions offered to a model and the box that holds them by name."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional


class ToolError(Exception):
    """A tool could not do what it was asked."""


ToolFunction = Callable[[dict[str, Any]], dict[str, Any]]


@dataclass
class ToolDefinition:
    """A function declaration together with the function that implements it."""

    name: str
    description: str
    parameters: dict[str, Any]
    function: ToolFunction

    @property
    def declaration(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def __call__(self, args: dict[str, Any]) -> dict[str, Any]:
        return self.function(args)


@dataclass
class ToolBox:
    """Tool definitions indexed by name."""

    _tools: dict[str, ToolDefinition] = field(default_factory=dict)

    def add(self, definition: ToolDefinition) -> "ToolBox":
        """Add or replace a definition; returns the box for chaining."""
        self._tools[definition.name] = definition
        return self

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def list(self) -> list[dict[str, Any]]:
        """Return the function declarations of all tools."""
        return [tool.declaration for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


def format_function_call(name: str, args: Any, call_id: Optional[str] = None) -> str:
    """Render a function call as ``name@id(json-args)``."""
    prefix = f"{name}@{call_id}" if call_id else name
    return f"{prefix}({json.dumps(args, sort_keys=True)})"