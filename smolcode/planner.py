"""Development plans made of ordered steps, persisted in an SQLite database."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

DONE = "DONE"
TODO = "TODO"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS plans (
    id TEXT PRIMARY KEY
);
CREATE TABLE IF NOT EXISTS steps (
    id TEXT NOT NULL,
    plan_id TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'TODO',
    step_order INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (plan_id, id),
    FOREIGN KEY (plan_id) REFERENCES plans(id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS step_acceptance_criteria (
    plan_id TEXT NOT NULL,
    step_id TEXT NOT NULL,
    criterion_order INTEGER NOT NULL,
    criterion TEXT NOT NULL,
    PRIMARY KEY (plan_id, step_id, criterion_order),
    FOREIGN KEY (plan_id, step_id) REFERENCES steps(plan_id, id) ON DELETE CASCADE
);
"""


class PlannerError(Exception):
    """A plan could not be loaded, changed or stored."""


class PlanNotFoundError(PlannerError, LookupError):
    """No plan exists with the requested name."""


@dataclass
class Step:
    """A single task in a plan."""

    id: str
    description: str = ""
    status: str = TODO
    acceptance_criteria: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.status = self.status.upper()
        self.acceptance_criteria = list(self.acceptance_criteria or [])

    @property
    def is_done(self) -> bool:
        return self.status == DONE


@dataclass
class Plan:
    """An ordered collection of steps; ``is_new`` marks a plan not yet stored."""

    id: str
    steps: list[Step] = field(default_factory=list)
    is_new: bool = False

    def inspect(self) -> str:
        """Render the plan as Markdown."""
        parts: list[str] = []
        for number, step in enumerate(self.steps, start=1):
            parts.append(f"## {number}. [{step.status.upper()}] {step.id}\n")
            if step.description:
                parts.append(f"\n{step.description}\n")
            parts.append("\n")
            if step.acceptance_criteria:
                parts.append("Acceptance Criteria:\n")
                parts.extend(
                    f"{index}. {criterion}\n"
                    for index, criterion in enumerate(step.acceptance_criteria, start=1)
                )
                parts.append("\n")
        return "".join(parts)

    def next_step(self) -> Optional[Step]:
        """Return the first step not marked DONE, or None when all are done."""
        return next((step for step in self.steps if step.status.upper() != DONE), None)

    def _find(self, step_id: str) -> Step:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise PlannerError(f"step with ID '{step_id}' not found in plan '{self.id}'")

    def mark_as_completed(self, step_id: str) -> None:
        """Set the step's status to DONE."""
        self._find(step_id).status = DONE

    def mark_as_incomplete(self, step_id: str) -> None:
        """Set the step's status to TODO."""
        self._find(step_id).status = TODO

    def add_step(
        self, step_id: str, description: str, acceptance_criteria: Optional[Iterable[str]] = None
    ) -> Step:
        """Append a new TODO step and return it."""
        step = Step(step_id, description, TODO, list(acceptance_criteria or []))
        self.steps.append(step)
        return step

    def remove_steps(self, step_ids: Iterable[str]) -> int:
        """Remove the steps with the given IDs; return how many were removed."""
        to_remove = set(step_ids)
        if not to_remove:
            return 0
        kept = [step for step in self.steps if step.id not in to_remove]
        removed = len(self.steps) - len(kept)
        self.steps = kept
        return removed

    def reorder(self, new_step_order: Iterable[str]) -> None:
        """Put the listed steps first in the given order, then the rest as they were.

        Unknown and repeated IDs are ignored.
        """
        if not self.steps:
            return
        by_id = {step.id: step for step in self.steps}
        placed: set[str] = set()
        reordered: list[Step] = []
        for step_id in new_step_order:
            if step_id in by_id and step_id not in placed:
                reordered.append(by_id[step_id])
                placed.add(step_id)
        for step in self.steps:
            if step.id not in placed:
                reordered.append(step)
                placed.add(step.id)
        self.steps = reordered

    def is_completed(self) -> bool:
        """Whether every step is DONE."""
        return self.next_step() is None


@dataclass
class PlanInfo:
    """Summary of a stored plan."""

    name: str
    status: str
    total_tasks: int
    completed_tasks: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class Planner:
    """Creates, loads and stores plans in an SQLite database."""

    def __init__(self, database_path: Union[str, Path]) -> None:
        path = Path(database_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PlannerError(
                f"failed to create directory for database {path.parent}: {exc}"
            ) from exc
        try:
            self._db = sqlite3.connect(str(path), isolation_level=None)
        except sqlite3.Error as exc:
            raise PlannerError(f"failed to open database at {path}: {exc}") from exc
        try:
            self._db.execute("PRAGMA foreign_keys = ON")
            self._db.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            self._db.close()
            raise PlannerError(f"failed to initialize database: {exc}") from exc

    def __enter__(self) -> "Planner":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._db.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        self._db.execute("BEGIN")
        try:
            yield self._db
        except BaseException:
            self._db.execute("ROLLBACK")
            raise
        self._db.execute("COMMIT")

    def create(self, name: str) -> Plan:
        """Return a new, unsaved plan with the given name."""
        if not name:
            raise PlannerError("plan name cannot be empty")
        return Plan(id=name, steps=[], is_new=True)

    def get(self, name: str) -> Plan:
        """Load a plan and its steps; raise :class:`PlanNotFoundError` if absent."""
        try:
            row = self._db.execute("SELECT id FROM plans WHERE id = ?", (name,)).fetchone()
            if row is None:
                raise PlanNotFoundError(f"plan with name '{name}' not found")
            plan = Plan(id=row[0], steps=[], is_new=False)
            step_rows = self._db.execute(
                "SELECT id, description, status FROM steps "
                "WHERE plan_id = ? ORDER BY step_order ASC",
                (plan.id,),
            ).fetchall()
            for step_id, description, status in step_rows:
                criteria = [
                    criterion
                    for (criterion,) in self._db.execute(
                        "SELECT criterion FROM step_acceptance_criteria "
                        "WHERE step_id = ? AND plan_id = ? ORDER BY criterion_order ASC",
                        (step_id, plan.id),
                    )
                ]
                plan.steps.append(Step(step_id, description, status, criteria))
        except sqlite3.Error as exc:
            raise PlannerError(f"failed to load plan '{name}': {exc}") from exc
        return plan

    def list(self) -> list[PlanInfo]:
        """Return a summary of every stored plan."""
        try:
            rows = self._db.execute(
                "SELECT p.id, COUNT(s.id), "
                "SUM(CASE WHEN s.status = 'DONE' THEN 1 ELSE 0 END) "
                "FROM plans p LEFT JOIN steps s ON p.id = s.plan_id "
                "GROUP BY p.id ORDER BY p.id"
            ).fetchall()
        except sqlite3.Error as exc:
            raise PlannerError(f"failed to query plan summaries: {exc}") from exc
        infos = []
        for name, total, completed in rows:
            total = total or 0
            completed = completed or 0
            status = DONE if total > 0 and completed == total else TODO
            infos.append(PlanInfo(name, status, total, completed))
        return infos

    def save(self, plan: Plan) -> None:
        """Store the plan and synchronise its steps in one transaction."""
        try:
            with self._transaction() as db:
                if plan.is_new:
                    try:
                        db.execute("INSERT INTO plans (id) VALUES (?)", (plan.id,))
                    except sqlite3.IntegrityError as exc:
                        raise PlannerError(
                            f"plan with name '{plan.id}' already exists in database, "
                            "cannot save as new"
                        ) from exc
                elif db.execute("SELECT id FROM plans WHERE id = ?", (plan.id,)).fetchone() is None:
                    raise PlanNotFoundError(
                        f"plan with name '{plan.id}' not found in database, cannot update"
                    )

                stored_ids = {
                    step_id
                    for (step_id,) in db.execute(
                        "SELECT id FROM steps WHERE plan_id = ?", (plan.id,)
                    )
                }
                current_ids = {step.id for step in plan.steps}
                for stale in stored_ids - current_ids:
                    db.execute(
                        "DELETE FROM step_acceptance_criteria WHERE plan_id = ? AND step_id = ?",
                        (plan.id, stale),
                    )
                    db.execute("DELETE FROM steps WHERE plan_id = ? AND id = ?", (plan.id, stale))

                for order, step in enumerate(plan.steps):
                    if step.id in stored_ids:
                        db.execute(
                            "UPDATE steps SET description = ?, status = ?, step_order = ? "
                            "WHERE plan_id = ? AND id = ?",
                            (step.description, step.status, order, plan.id, step.id),
                        )
                    else:
                        db.execute(
                            "INSERT INTO steps (id, plan_id, description, status, step_order) "
                            "VALUES (?, ?, ?, ?, ?)",
                            (step.id, plan.id, step.description, step.status, order),
                        )
                    db.execute(
                        "DELETE FROM step_acceptance_criteria WHERE plan_id = ? AND step_id = ?",
                        (plan.id, step.id),
                    )
                    db.executemany(
                        "INSERT INTO step_acceptance_criteria "
                        "(plan_id, step_id, criterion_order, criterion) VALUES (?, ?, ?, ?)",
                        [
                            (plan.id, step.id, index, criterion)
                            for index, criterion in enumerate(step.acceptance_criteria)
                        ],
                    )
        except sqlite3.Error as exc:
            raise PlannerError(f"failed to save plan '{plan.id}': {exc}") from exc
        plan.is_new = False

    def remove(self, plan_names: Iterable[str]) -> dict[str, Optional[PlannerError]]:
        """Delete plans by name, all or nothing.

        Returns each name mapped to None on success or to the error it met; if
        any name fails, nothing is deleted.
        """
        results: dict[str, Optional[PlannerError]] = {}
        try:
            self._db.execute("BEGIN")
            try:
                for name in plan_names:
                    try:
                        cursor = self._db.execute("DELETE FROM plans WHERE id = ?", (name,))
                    except sqlite3.Error as exc:
                        results[name] = PlannerError(
                            f"failed to execute delete for plan '{name}': {exc}"
                        )
                        continue
                    if cursor.rowcount == 0:
                        results[name] = PlannerError(f"plan '{name}' not found for deletion")
                    else:
                        results[name] = None
            except BaseException:
                self._db.execute("ROLLBACK")
                raise
            if any(error is not None for error in results.values()):
                self._db.execute("ROLLBACK")
            else:
                self._db.execute("COMMIT")
        except sqlite3.Error as exc:
            raise PlannerError(f"failed to remove plans: {exc}") from exc
        return results

    def compact(self) -> None:
        """Delete every plan that has no steps or only DONE steps."""
        try:
            completed = [
                plan_id
                for (plan_id,) in self._db.execute(
                    "SELECT p.id FROM plans p LEFT JOIN steps s ON p.id = s.plan_id "
                    "GROUP BY p.id HAVING COUNT(s.id) = 0 OR "
                    "SUM(CASE WHEN s.status = 'DONE' THEN 1 ELSE 0 END) = COUNT(s.id)"
                )
            ]
        except sqlite3.Error as exc:
            raise PlannerError(f"failed to query completed plans for compaction: {exc}") from exc
        if not completed:
            return
        failures = [
            (name, error) for name, error in self.remove(completed).items() if error is not None
        ]
        if failures:
            name, error = failures[0]
            raise PlannerError(
                f"encountered {len(failures)} error(s) during compaction, "
                f"first error: failed to remove plan '{name}': {error}"
            ) from error