"""Tools that store, recall and forget facts in the project's memory database."""

from __future__ import annotations

import sqlite3
from typing import Any

from smolcode.memory import MemoryManager, NotFoundError
from smolcode.toolbox import ToolDefinition, ToolError

MEMORY_DB_PATH = ".smolcode/memory.db"


def _open(tool: str) -> MemoryManager:
    try:
        return MemoryManager(MEMORY_DB_PATH)
    except (OSError, sqlite3.Error) as exc:
        raise ToolError(f"{tool}: failed to initialize memory manager: {exc}") from exc


def create_memory(args: dict[str, Any]) -> dict[str, Any]:
    """Store each fact in ``args["facts"]``, overwriting facts with the same ID."""
    if "facts" not in args:
        raise ToolError("create_memory: missing required parameter 'facts'")
    facts = args["facts"]
    if not isinstance(facts, (list, tuple)):
        raise ToolError(
            f"create_memory: 'facts' parameter is not a valid list (got {type(facts).__name__})"
        )

    processed: list[str] = []
    with _open("create_memory") as manager:
        for index, item in enumerate(facts):
            if not isinstance(item, dict):
                raise ToolError(
                    f"create_memory: fact item at index {index} is not a valid object "
                    f"(got {type(item).__name__})"
                )
            if "id" not in item or "fact" not in item:
                raise ToolError(
                    f"create_memory: fact item at index {index} is missing 'id' or 'fact'"
                )
            fact_id, fact = item["id"], item["fact"]
            if not isinstance(fact_id, str) or not isinstance(fact, str):
                raise ToolError(
                    f"create_memory: fact item at index {index} has non-string 'id' or 'fact'"
                )
            if not fact_id:
                raise ToolError(f"create_memory: fact item at index {index} has an empty 'id'")
            if "/" in fact_id or "\\" in fact_id:
                raise ToolError(
                    f"create_memory: fact item 'id' ('{fact_id}') cannot contain slashes. "
                    "Please use simple IDs."
                )
            try:
                manager.add_memory(fact_id, fact)
            except sqlite3.Error as exc:
                raise ToolError(
                    f"create_memory: failed to add memory for id '{fact_id}': {exc}"
                ) from exc
            processed.append(fact_id)
    return {"processed_ids": processed}


def forget_memory(args: dict[str, Any]) -> dict[str, Any]:
    """Delete the facts listed in ``args["factIDs"]``; unknown IDs are skipped."""
    if "factIDs" not in args:
        raise ToolError("forget_memory: missing required parameter 'factIDs'")
    fact_ids = args["factIDs"]
    if not isinstance(fact_ids, (list, tuple)):
        raise ToolError(
            "forget_memory: 'factIDs' parameter is not a valid list "
            f"(got {type(fact_ids).__name__})"
        )

    processed: list[str] = []
    with _open("forget_memory") as manager:
        for item in fact_ids:
            if not isinstance(item, str):
                raise ToolError(
                    f"forget_memory: fact ID item is not a valid string (got {type(item).__name__})"
                )
            try:
                manager.forget(item)
            except NotFoundError:
                continue
            except sqlite3.Error as exc:
                raise ToolError(
                    f"forget_memory: failed to forget memory for id '{item}': {exc}"
                ) from exc
            processed.append(item)
    return {"processed_ids": processed}


def recall_memory(args: dict[str, Any]) -> dict[str, Any]:
    """Return one fact by ``factID`` or all facts matching the ``about`` search terms."""
    about = args.get("about")
    fact_id = args.get("factID")
    about = about if isinstance(about, str) else ""
    fact_id = fact_id if isinstance(fact_id, str) else ""

    with _open("recall_memory") as manager:
        if fact_id:
            try:
                memory = manager.get_memory_by_id(fact_id)
            except NotFoundError:
                raise ToolError(f"recall_memory: fact with ID '{fact_id}' not found") from None
            except sqlite3.Error as exc:
                raise ToolError(
                    f"recall_memory: error retrieving fact '{fact_id}': {exc}"
                ) from exc
            return {"id": memory.id, "fact": memory.content}

        if about:
            if not about.strip():
                raise ToolError(
                    "recall_memory: 'about' parameter cannot be empty or only whitespace"
                )
            try:
                memories = manager.search_memory(about)
            except (sqlite3.Error, LookupError) as exc:
                raise ToolError(
                    f"recall_memory: error searching for facts about '{about}': {exc}"
                ) from exc
            if not memories:
                raise ToolError(
                    f"recall_memory: no facts found containing all words in '{about}'"
                )
            return {"matches": [{"id": m.id, "fact": m.content} for m in memories]}

    raise ToolError("recall_memory: either 'factID' or 'about' parameter must be provided")


CREATE_MEMORY_TOOL = ToolDefinition(
    name="create_memory",
    description=(
        "Stores facts in the knowledge base using the memory manager.\n"
        "Facts are stored in a database and can be overwritten if an ID already exists.\n\n"
        "Use this when you are asked to memorize or remember something.\n\n"
        "You are responsible for generating fact IDs."
    ),
    parameters={
        "type": "object",
        "properties": {
            "facts": {
                "type": "array",
                "description": "List of fact objects to store.",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {
                            "type": "string",
                            "description": "A short identifier for the fact (e.g., 'project-language').",
                        },
                        "fact": {
                            "type": "string",
                            "description": "The fact itself (2-3 sentences max).",
                        },
                    },
                    "required": ["id", "fact"],
                },
            }
        },
        "required": ["facts"],
    },
    function=create_memory,
)

FORGET_MEMORY_TOOL = ToolDefinition(
    name="forget_memory",
    description=(
        "Forgets facts from the knowledge base using the memory manager.\n\n"
        "Provide a list of 'factIDs' to delete multiple facts at once."
    ),
    parameters={
        "type": "object",
        "properties": {
            "factIDs": {
                "type": "array",
                "description": "List of fact IDs to forget.",
                "items": {"type": "string"},
            }
        },
        "required": ["factIDs"],
    },
    function=forget_memory,
)

RECALL_MEMORY_TOOL = ToolDefinition(
    name="recall_memory",
    description=(
        "Recalls facts from the knowledge base using the memory manager.\n\n"
        "Either provide a specific 'factID' to retrieve a single fact,\n"
        "or provide an 'about' search term to find relevant facts using full-text search.\n\n"
        "When searching, prefer to search with single words and narrow down as needed."
    ),
    parameters={
        "type": "object",
        "properties": {
            "about": {
                "type": "string",
                "description": "A search term to find relevant facts using full-text search.",
            },
            "factID": {
                "type": "string",
                "description": "The specific ID of the fact to recall.",
            },
        },
        "required": [],
    },
    function=recall_memory,
)