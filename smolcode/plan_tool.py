"""The ``manage_plan`` tool: create, inspect, change and query development plans."""

from __future__ import annotations

import logging
from typing import Any, Callable

from smolcode.planner import DONE, TODO, Plan, Planner, PlannerError, PlanNotFoundError
from smolcode.toolbox import ToolDefinition, ToolError

logger = logging.getLogger(__name__)

PLAN_STORAGE_PATH = ".smolcode/plans.db"

_STATUSES = (DONE, TODO)


def _require_string(args: dict[str, Any], key: str, message: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value:
        raise ToolError(f"manage_plan: {message}")
    return value


def _require_list(args: dict[str, Any], key: str, message: str) -> list[Any]:
    value = args.get(key)
    if not isinstance(value, (list, tuple)):
        raise ToolError(f"manage_plan: {message}")
    return list(value)


def _load(planner: Planner, name: str, purpose: str = "") -> Plan:
    try:
        return planner.get(name)
    except PlannerError as exc:
        raise ToolError(f"manage_plan: failed to get plan '{name}'{purpose}: {exc}") from exc


def _store(planner: Planner, plan: Plan, context: str) -> None:
    try:
        planner.save(plan)
    except PlannerError as exc:
        raise ToolError(f"manage_plan: failed to save plan '{plan.id}'{context}: {exc}") from exc


def _inspect(planner: Planner, name: str, args: dict[str, Any]) -> dict[str, Any]:
    return {"markdown": _load(planner, name).inspect()}


def _get_next_step(planner: Planner, name: str, args: dict[str, Any]) -> dict[str, Any]:
    step = _load(planner, name).next_step()
    if step is None:
        return {"result": "Plan is complete."}
    return {
        "next_step": {
            "id": step.id,
            "status": step.status.upper(),
            "description": step.description,
            "acceptance_criteria": list(step.acceptance_criteria),
        }
    }


def _set_status(planner: Planner, name: str, args: dict[str, Any]) -> dict[str, Any]:
    step_id = _require_string(args, "step_id", "'set_status' requires 'step_id'")
    status = args.get("status")
    if status not in _STATUSES:
        raise ToolError("manage_plan: 'set_status' requires 'status' (DONE or TODO)")

    plan = _load(planner, name, " for set_status")
    try:
        if status == DONE:
            plan.mark_as_completed(step_id)
        else:
            plan.mark_as_incomplete(step_id)
    except PlannerError as exc:
        raise ToolError(
            f"manage_plan: failed to set status for step '{step_id}' in plan '{name}': {exc}"
        ) from exc
    _store(planner, plan, " after setting status")
    return {"result": f"Step '{step_id}' in plan '{name}' set to '{status}'."}


def _parse_criteria(step_id: str, index: int, raw: Any) -> list[str]:
    if not isinstance(raw, (list, tuple)):
        return []
    criteria = []
    for position, criterion in enumerate(raw):
        if not isinstance(criterion, str):
            raise ToolError(
                f"manage_plan: invalid acceptance criterion type in step '{step_id}' "
                f"at index {index}, criterion {position}"
            )
        criteria.append(criterion)
    return criteria


def _add_steps(planner: Planner, name: str, args: dict[str, Any]) -> dict[str, Any]:
    items = _require_list(args, "steps_to_add", "'add_steps' requires 'steps_to_add' array")

    try:
        plan = planner.get(name)
    except PlanNotFoundError:
        logger.info("manage_plan: Plan '%s' not found, creating it before adding steps.", name)
        try:
            plan = planner.create(name)
        except PlannerError as exc:
            raise ToolError(
                f"manage_plan: failed to create new plan '{name}' for adding steps: {exc}"
            ) from exc
    except PlannerError as exc:
        raise ToolError(f"manage_plan: failed to get plan '{name}': {exc}") from exc

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ToolError(
                f"manage_plan: invalid item type in 'steps_to_add' at index {index}, "
                "expected object"
            )
        step_id = item.get("id")
        if not isinstance(step_id, str) or not step_id:
            raise ToolError(f"manage_plan: missing 'id' in step at index {index}")
        description = item.get("description")
        if not isinstance(description, str) or not description:
            raise ToolError(
                f"manage_plan: missing 'description' in step '{step_id}' at index {index}"
            )
        criteria = _parse_criteria(step_id, index, item.get("acceptance_criteria"))
        plan.add_step(step_id, description, criteria)

    try:
        planner.save(plan)
    except PlannerError as exc:
        raise ToolError(f"manage_plan: failed to save updated plan '{name}': {exc}") from exc
    return {"result": f"Added {len(items)} steps to plan '{name}'."}


def _is_completed(planner: Planner, name: str, args: dict[str, Any]) -> dict[str, Any]:
    return {"is_completed": _load(planner, name).is_completed()}


def _list_plans(planner: Planner, name: str, args: dict[str, Any]) -> dict[str, Any]:
    try:
        infos = planner.list()
    except PlannerError as exc:
        raise ToolError(f"manage_plan: failed to list plans: {exc}") from exc
    return {"plans": [info.to_dict() for info in infos]}


def _remove_steps(planner: Planner, name: str, args: dict[str, Any]) -> dict[str, Any]:
    raw_ids = _require_list(
        args, "step_ids_to_remove", "'remove_steps' requires 'step_ids_to_remove' array argument"
    )
    step_ids = []
    for index, step_id in enumerate(raw_ids):
        if not isinstance(step_id, str) or not step_id:
            raise ToolError(
                f"manage_plan: invalid or empty step ID in 'step_ids_to_remove' at index {index}"
            )
        step_ids.append(step_id)

    plan = _load(planner, name, " for removing steps")
    removed = plan.remove_steps(step_ids)
    _store(planner, plan, " after removing steps")
    return {
        "result": f"Removed {removed} step(s) from plan '{name}'.",
        "removed_count": removed,
        "plan_name": name,
    }


def _compact_plans(planner: Planner, name: str, args: dict[str, Any]) -> dict[str, Any]:
    try:
        planner.compact()
    except PlannerError as exc:
        raise ToolError(
            f"manage_plan: 'compact_plans' action encountered an error: {exc}"
        ) from exc
    return {
        "result": "Plan compaction process completed. Check server logs for details on "
        "individual plan loading/removal warnings."
    }


def _reorder_steps(planner: Planner, name: str, args: dict[str, Any]) -> dict[str, Any]:
    raw_order = _require_list(
        args, "new_step_order", "'reorder_steps' requires 'new_step_order' array argument"
    )
    order = []
    for index, step_id in enumerate(raw_order):
        if not isinstance(step_id, str):
            raise ToolError(
                f"manage_plan: invalid type for step ID in 'new_step_order' at index {index}, "
                "expected string"
            )
        order.append(step_id)

    plan = _load(planner, name, " for reordering steps")
    plan.reorder(order)
    _store(planner, plan, " after reordering steps")
    return {"result": f"Steps in plan '{name}' reordered successfully.", "plan_name": name}


_ACTIONS: dict[str, Callable[[Planner, str, dict[str, Any]], dict[str, Any]]] = {
    "inspect": _inspect,
    "get_next_step": _get_next_step,
    "set_status": _set_status,
    "add_steps": _add_steps,
    "is_completed": _is_completed,
    "list_plans": _list_plans,
    "remove_steps": _remove_steps,
    "compact_plans": _compact_plans,
    "reorder_steps": _reorder_steps,
}


def manage_plan(args: dict[str, Any]) -> dict[str, Any]:
    """Run one planning action on the plan named by ``args["plan_name"]``."""
    name = _require_string(args, "plan_name", "missing or invalid plan_name")
    action = _require_string(args, "action", "missing or invalid action")

    try:
        planner = Planner(PLAN_STORAGE_PATH)
    except PlannerError as exc:
        raise ToolError(f"manage_plan: failed to initialize planner: {exc}") from exc

    with planner:
        handler = _ACTIONS.get(action)
        if handler is None:
            raise ToolError(f"manage_plan: unknown action '{action}'")
        return handler(planner, name, args)


_STEP_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {
            "type": "string",
            "description": "A short, unique identifier for the step (e.g., 'add-tests').",
        },
        "description": {
            "type": "string",
            "description": "A detailed description of the step's task.",
        },
        "acceptance_criteria": {
            "type": "array",
            "items": {"type": "string"},
            "description": "A list of criteria that must be met for the step to be considered DONE.",
        },
    },
    "required": ["id", "description"],
}

PLANNER_TOOL = ToolDefinition(
    name="manage_plan",
    description=(
        "Manages development plans. Use this tool to create, inspect, modify, and query the "
        "status of plans and their steps.\n"
        "Plans are stored in a SQLite database at '.smolcode/plans.db'. "
        "Always specify the plan name."
    ),
    parameters={
        "type": "object",
        "properties": {
            "plan_name": {
                "type": "string",
                "description": "The name of the plan to manage (e.g., 'main', 'feature-x'). "
                "This corresponds to the unique ID in the plans database.",
            },
            "action": {
                "type": "string",
                "enum": list(_ACTIONS),
                "description": "The operation to perform on the plan.",
            },
            "step_id": {
                "type": "string",
                "description": "The ID of the step to target (required for 'set_status').",
            },
            "status": {
                "type": "string",
                "enum": list(_STATUSES),
                "description": "The status to set for a step (required for 'set_status').",
            },
            "steps_to_add": {
                "type": "array",
                "items": _STEP_SCHEMA,
                "description": "A list of step objects to add to the plan (required for "
                "'add_steps'), creating it if necessary.",
            },
            "step_ids_to_remove": {
                "type": "array",
                "items": {"type": "string"},
                "description": "A list of step IDs to remove from the plan "
                "(required for 'remove_steps').",
            },
            "new_step_order": {
                "type": "array",
                "items": {"type": "string"},
                "description": "A list of step IDs representing the desired new order "
                "(required for 'reorder_steps'). Steps not in this list are appended at the end.",
            },
        },
        "required": ["plan_name", "action"],
    },
    function=manage_plan,
)