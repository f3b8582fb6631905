"""
Status state machine and status-based mutation rules.

    pending ──▶ in_progress ──▶ completed
       │  ▲         │
       ▼  │         ▼
      blocked ◀─────┘

Completed is terminal. Moving into in_progress requires every dependency
to be completed.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .errors import StateConflictError, TaskValidationError
from .schema import ExecutionCheck, Task, TaskStatus, now_local

logger = logging.getLogger(__name__)

# Blocked is also stored so an agent can park a task for reasons the graph
# cannot see (waiting on review, missing input). Unmet dependencies alone are
# reported through effective_status without touching the stored status.
TRANSITIONS: Dict[TaskStatus, Set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.BLOCKED},
    TaskStatus.BLOCKED: {TaskStatus.PENDING, TaskStatus.IN_PROGRESS},
    TaskStatus.COMPLETED: set(),
}

# Fields that may still change once a task is completed
COMPLETED_MUTABLE_FIELDS = frozenset({"summary", "related_files"})


def index_by_id(tasks: Iterable[Task]) -> Dict[str, Task]:
    return {task.id: task for task in tasks}


def blocking_dependencies(task: Task, tasks_by_id: Mapping[str, Task]) -> List[str]:
    """Dependency ids that are missing or not yet completed."""
    blocking = []
    for dep_id in task.dependency_ids:
        dep_task = tasks_by_id.get(dep_id)
        if dep_task is None or dep_task.status != TaskStatus.COMPLETED:
            blocking.append(dep_id)
    return blocking


def effective_status(task: Task, tasks_by_id: Mapping[str, Task]) -> TaskStatus:
    """Stored status, except pending tasks that cannot run read as blocked."""
    if task.status == TaskStatus.PENDING and blocking_dependencies(task, tasks_by_id):
        return TaskStatus.BLOCKED
    return task.status


def can_execute(task: Optional[Task], tasks_by_id: Mapping[str, Task]) -> ExecutionCheck:
    if task is None:
        return ExecutionCheck(success=False, allowed=False, reason="not found", error="not_found")
    if task.status == TaskStatus.COMPLETED:
        return ExecutionCheck(allowed=False, reason="already completed")
    blocking = blocking_dependencies(task, tasks_by_id)
    if blocking:
        return ExecutionCheck(
            allowed=False,
            blocking_ids=blocking,
            reason="blocked by incomplete dependencies",
        )
    return ExecutionCheck(allowed=True)


def transition(
    task: Task,
    new_status: TaskStatus,
    tasks_by_id: Mapping[str, Task],
    summary: Optional[str] = None,
) -> Tuple[Task, bool]:
    """
    Apply a status change.

    Returns ``(task, changed)``; ``changed`` is False for same-status
    requests, which leave the task untouched. Raises StateConflictError for
    illegal moves and TaskValidationError for a missing completion summary.
    """
    if new_status == task.status:
        return task, False

    if task.status == TaskStatus.COMPLETED:
        raise StateConflictError(
            f'Task "{task.name}" is completed and cannot change status; '
            "delete and recreate it to run it again",
            [task.id],
        )

    if new_status not in TRANSITIONS[task.status]:
        raise StateConflictError(
            f'Task "{task.name}" cannot move from {task.status.value} to {new_status.value}',
            [task.id],
        )

    updates = {"status": new_status, "updated_at": now_local()}

    if new_status == TaskStatus.IN_PROGRESS:
        blocking = blocking_dependencies(task, tasks_by_id)
        if blocking:
            logger.warning(f"⛔ Task {task.id} blocked by: {blocking}")
            raise StateConflictError(
                f'Task "{task.name}" is blocked by incomplete dependencies: {", ".join(blocking)}',
                [task.id],
                blocking_ids=blocking,
            )

    if new_status == TaskStatus.COMPLETED:
        if summary is None or not summary.strip():
            raise TaskValidationError(
                f'A completion summary is required to complete task "{task.name}"',
                [task.id],
            )
        updates["summary"] = summary.strip()
        updates["completed_at"] = updates["updated_at"]

    return task.model_copy(update=updates), True


def check_field_update(task: Task, fields: Iterable[str]) -> None:
    """Reject writes to a completed task outside ``summary``/``related_files``."""
    if task.status != TaskStatus.COMPLETED:
        return
    disallowed = sorted(set(fields) - COMPLETED_MUTABLE_FIELDS)
    if disallowed:
        raise StateConflictError(
            f'Task "{task.name}" is completed; only summary and relatedFiles can be '
            f"updated (attempted: {', '.join(disallowed)})",
            [task.id],
        )


def check_delete(task: Task, tasks: Iterable[Task]) -> None:
    if task.status == TaskStatus.COMPLETED:
        raise StateConflictError(
            f'Cannot delete completed task "{task.name}"',
            [task.id],
        )
    dependents = [t for t in tasks if t.id != task.id and task.id in t.dependency_ids]
    if dependents:
        names = ", ".join(f'"{t.name}" (ID: {t.id})' for t in dependents)
        raise StateConflictError(
            f"Cannot delete this task because the following tasks depend on it: {names}",
            [t.id for t in dependents],
            blocking_ids=[t.id for t in dependents],
        )
