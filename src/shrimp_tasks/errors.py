"""Error taxonomy shared by the store, the engines and the manager facade."""

from typing import Iterable, List, Optional

from pydantic import ValidationError


class TaskManagerError(Exception):
    """Base class; ``kind`` is what the facade reports to callers."""

    kind = "error"

    def __init__(self, message: str, task_ids: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.message = message
        self.task_ids: List[str] = list(task_ids or [])


class TaskValidationError(TaskManagerError):
    """Malformed payload; rejected before anything is written."""

    kind = "validation"

    @classmethod
    def from_pydantic(cls, exc: ValidationError, label: str = "payload") -> "TaskValidationError":
        problems = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc", ())) or label
            problems.append(f"{location}: {err.get('msg')}")
        return cls(f"Invalid {label}: " + "; ".join(problems))


class TaskNotFoundError(TaskManagerError):
    kind = "not_found"

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}", [task_id])


class StateConflictError(TaskManagerError):
    """Operation not allowed in the task's current state."""

    kind = "state_conflict"

    def __init__(
        self,
        message: str,
        task_ids: Optional[Iterable[str]] = None,
        blocking_ids: Optional[Iterable[str]] = None,
    ):
        super().__init__(message, task_ids)
        self.blocking_ids: List[str] = list(blocking_ids or [])


class StoreIOError(TaskManagerError):
    """Snapshot unreadable, corrupt or not writable."""

    kind = "store_io"
