"""
Shrimp Tasks - Task Manager
===========================
Facade over the store and the engines. Every operation an agent tool, the
HTTP layer or the dashboard needs goes through here.

Mutations run as load -> compute -> replace inside the store's critical
section. Every operation returns a result record; failures carry the error
kind and the offending task ids instead of raising.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from . import complexity, lifecycle, reconcile as reconciliation, resolver, search as searching
from .changelog import ChangeEntry
from .config import Settings
from .errors import (
    TaskManagerError,
    TaskNotFoundError,
    TaskValidationError,
)
from .schema import (
    ChangeEvent,
    ClearResult,
    ComplexityAssessment,
    ExecutionCheck,
    OperationResult,
    SearchResult,
    StatusSummary,
    Task,
    TaskDraft,
    TaskStatus,
    TaskUpdate,
    UpdateMode,
    now_local,
)
from .store import TaskStore

logger = logging.getLogger(__name__)

DraftInput = Union[TaskDraft, Mapping[str, Any]]
Subscriber = Callable[[ChangeEvent], None]


def parse_drafts(raw: Union[str, Sequence[DraftInput]]) -> List[TaskDraft]:
    """Validate a batch payload (JSON text or a list of dicts/drafts)."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TaskValidationError(f"Task list is not valid JSON: {e}") from e
    if not isinstance(raw, list):
        raise TaskValidationError("Task list must be a JSON array of task objects")

    drafts = []
    for i, item in enumerate(raw):
        if isinstance(item, TaskDraft):
            drafts.append(item)
            continue
        try:
            drafts.append(TaskDraft.model_validate(item))
        except ValidationError as e:
            raise TaskValidationError.from_pydantic(e, label=f"task #{i + 1}") from e
    return drafts


def parse_mode(mode: Union[UpdateMode, str]) -> UpdateMode:
    try:
        return UpdateMode(mode)
    except ValueError:
        allowed = ", ".join(m.value for m in UpdateMode)
        raise TaskValidationError(f"Unknown update mode {mode!r} (expected one of: {allowed})") from None


class TaskManager:
    """
    Task graph manager backed by one data directory.

    Layout:
        <data_dir>/tasks.json    current collection
        <data_dir>/changes.log   audit trail
        <data_dir>/memory/       archives of completed tasks
    """

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or Settings()
        self.data_dir = Path(data_dir) if data_dir is not None else self.settings.data_dir
        self.store = TaskStore(self.data_dir, change_log_enabled=self.settings.change_log_enabled)
        self._subscribers: List[Subscriber] = []
        self._subscribers_lock = threading.Lock()

    # ========================================
    # QUERIES
    # ========================================

    def list_tasks(self, status: Optional[Union[TaskStatus, str]] = None) -> OperationResult:
        """All tasks in collection order, optionally filtered by (effective) status."""
        try:
            tasks = self.store.load_all()
            if status is not None and status != "all":
                try:
                    wanted = TaskStatus(status)
                except ValueError:
                    raise TaskValidationError(f"Unknown status {status!r}") from None
                by_id = lifecycle.index_by_id(tasks)
                tasks = [t for t in tasks if lifecycle.effective_status(t, by_id) == wanted]
        except TaskManagerError as e:
            return self._rejected(e)
        return OperationResult(success=True, message=f"{len(tasks)} tasks", tasks=tasks)

    def get_task(self, task_id: str) -> OperationResult:
        try:
            tasks = self.store.load_all()
            task = tasks[self._index_of(tasks, task_id)]
        except TaskManagerError as e:
            return self._rejected(e)
        return OperationResult(success=True, message=f'Task "{task.name}"', task=task)

    def can_execute(self, task_id: str) -> ExecutionCheck:
        try:
            tasks = self.store.load_all()
        except TaskManagerError as e:
            logger.warning(f"⛔ Read failed ({e.kind}): {e.message}")
            return ExecutionCheck(success=False, allowed=False, reason=e.message, error=e.kind)
        by_id = lifecycle.index_by_id(tasks)
        return lifecycle.can_execute(by_id.get(task_id), by_id)

    def assess_complexity(self, task_id: str) -> ComplexityAssessment:
        result = self.get_task(task_id)
        if not result.success:
            return ComplexityAssessment(success=False, message=result.message, error=result.error)
        return complexity.assess(result.task, self.settings.complexity)

    def search(
        self,
        query: str = "",
        is_id_search: bool = False,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> SearchResult:
        """Search live tasks and archived completed tasks."""
        max_files = self.settings.search_max_archive_files
        try:
            return searching.search(
                self.store.load_all(),
                query,
                is_id_search=is_id_search,
                page=page,
                page_size=page_size or self.settings.search_page_size,
                scan_archives=lambda predicate: self.store.scan_archives(predicate, max_files),
            )
        except TaskManagerError as e:
            logger.warning(f"⛔ Read failed ({e.kind}): {e.message}")
            return SearchResult(success=False, message=e.message, error=e.kind)

    def ready_tasks(self) -> OperationResult:
        """Pending tasks whose dependencies are all completed."""
        try:
            tasks = self.store.load_all()
        except TaskManagerError as e:
            return self._rejected(e)
        by_id = lifecycle.index_by_id(tasks)
        ready = [
            t for t in tasks
            if t.status == TaskStatus.PENDING and not lifecycle.blocking_dependencies(t, by_id)
        ]
        return OperationResult(success=True, message=f"{len(ready)} tasks ready", tasks=ready)

    def status_summary(self) -> StatusSummary:
        try:
            tasks = self.store.load_all()
        except TaskManagerError as e:
            logger.warning(f"⛔ Read failed ({e.kind}): {e.message}")
            return StatusSummary(success=False, message=e.message, error=e.kind)
        by_id = lifecycle.index_by_id(tasks)
        counts = {status.value: 0 for status in TaskStatus}
        for task in tasks:
            counts[lifecycle.effective_status(task, by_id).value] += 1
        return StatusSummary(counts=counts)

    def history(self, limit: Optional[int] = None) -> List[ChangeEntry]:
        return self.store.history(limit)

    # ========================================
    # MUTATIONS
    # ========================================

    def create_or_reconcile(
        self,
        drafts: Union[str, Sequence[DraftInput]],
        mode: Union[UpdateMode, str],
        global_analysis: Optional[str] = None,
    ) -> OperationResult:
        """Apply a batch of task drafts with the given update mode."""
        try:
            parsed = parse_drafts(drafts)
            update_mode = parse_mode(mode)
            archive_id = None
            with self.store.mutation():
                existing = self.store.load_all()
                outcome = reconciliation.reconcile(
                    existing,
                    parsed,
                    update_mode,
                    global_analysis=global_analysis,
                    reject_cycles=self.settings.reject_dependency_cycles,
                )
                if update_mode == UpdateMode.CLEAR_ALL_TASKS and existing:
                    archive_id = self.store.archive_completed(existing)
                self.store.replace_all(outcome.collection, outcome.change_message(update_mode))
        except TaskManagerError as e:
            return self._rejected(e)

        message = f"{len(outcome.affected)} tasks saved ({update_mode.value} mode)"
        if archive_id:
            message += f"; previous completed tasks archived as {archive_id}"
        self._notify("reconcile", outcome.change_message(update_mode), outcome.affected)
        return OperationResult(
            success=True,
            message=message,
            tasks=outcome.affected,
            warnings=outcome.warnings,
        )

    def update_task_fields(self, task_id: str, fields: Union[TaskUpdate, Mapping[str, Any]]) -> OperationResult:
        """Partially update a task's descriptive fields."""
        try:
            update = self._parse_update(fields)
            supplied = update.supplied()
            warnings: List[str] = []
            with self.store.mutation():
                tasks = self.store.load_all()
                index = self._index_of(tasks, task_id)
                task = tasks[index]

                if not supplied:
                    return OperationResult(success=True, message="No content provided to update", task=task)

                lifecycle.check_field_update(task, supplied.keys())
                changes = self._field_changes(task, supplied, tasks, warnings)
                changes["updated_at"] = now_local()
                updated = task.model_copy(update=changes)
                tasks[index] = updated

                if "dependencies" in changes and self.settings.reject_dependency_cycles:
                    self._check_acyclic(tasks)

                self.store.replace_all(tasks, f"Update task: {updated.name}")
        except TaskManagerError as e:
            return self._rejected(e)

        logger.info(f"✏️ Updated task: {updated.name} ({task_id}) fields={sorted(supplied)}")
        self._notify("update", f"Update task: {updated.name}", [updated])
        return OperationResult(
            success=True,
            message="Task content updated successfully",
            task=updated,
            warnings=warnings,
        )

    def transition_status(
        self,
        task_id: str,
        new_status: Union[TaskStatus, str],
        summary: Optional[str] = None,
    ) -> OperationResult:
        """Move a task through the lifecycle (see lifecycle.TRANSITIONS)."""
        try:
            try:
                target = TaskStatus(new_status)
            except ValueError:
                raise TaskValidationError(f"Unknown status {new_status!r}") from None
            with self.store.mutation():
                tasks = self.store.load_all()
                index = self._index_of(tasks, task_id)
                task = tasks[index]
                updated, changed = lifecycle.transition(
                    task, target, lifecycle.index_by_id(tasks), summary=summary
                )
                if not changed:
                    return OperationResult(
                        success=True,
                        message=self._noop_message(task),
                        task=task,
                    )
                tasks[index] = updated
                self.store.replace_all(
                    tasks, f"Update task status: {task.name} ({task.status.value} -> {target.value})"
                )
        except TaskManagerError as e:
            return self._rejected(e)

        icon = "✅" if target == TaskStatus.COMPLETED else "▶️"
        logger.info(f"{icon} Task {updated.name} ({task_id}) is now {target.value}")
        self._notify("status", f"{updated.name} -> {target.value}", [updated])
        return OperationResult(
            success=True,
            message=f'Task "{updated.name}" is now {target.value}',
            task=updated,
        )

    def start_task(self, task_id: str) -> OperationResult:
        return self.transition_status(task_id, TaskStatus.IN_PROGRESS)

    def complete_task(self, task_id: str, summary: str) -> OperationResult:
        return self.transition_status(task_id, TaskStatus.COMPLETED, summary=summary)

    def delete_task(self, task_id: str) -> OperationResult:
        """Delete a task nobody depends on; completed tasks cannot be deleted."""
        try:
            with self.store.mutation():
                tasks = self.store.load_all()
                index = self._index_of(tasks, task_id)
                task = tasks[index]
                lifecycle.check_delete(task, tasks)
                del tasks[index]
                self.store.replace_all(tasks, f"Delete task: {task.name}")
        except TaskManagerError as e:
            return self._rejected(e)

        logger.info(f"🗑️ Deleted task: {task.name} ({task_id})")
        self._notify("delete", f"Delete task: {task.name}", [task])
        return OperationResult(success=True, message="Task deleted successfully", task=task)

    def clear_all(self) -> ClearResult:
        """Archive completed tasks to memory/ and empty the collection."""
        try:
            with self.store.mutation():
                tasks = self.store.load_all()
                if not tasks:
                    return ClearResult(success=True, message="No tasks to clear")
                archive_id = self.store.archive_completed(tasks)
                completed = sum(1 for t in tasks if t.is_completed)
                self.store.replace_all([], f"Clear all tasks ({len(tasks)} tasks removed)")
        except TaskManagerError as e:
            return ClearResult(success=False, message=e.message, error=e.kind)

        self._notify("clear", f"Clear all tasks ({len(tasks)} tasks removed)", tasks)
        return ClearResult(
            success=True,
            message=(
                f"Successfully cleared all tasks, {len(tasks)} tasks deleted, "
                f"{completed} completed tasks backed up to memory directory"
            ),
            archive_id=archive_id,
            removed_count=len(tasks),
            retained_completed_count=completed,
        )

    # ========================================
    # NOTIFICATIONS
    # ========================================

    def subscribe(self, callback: Subscriber) -> None:
        """Call ``callback(ChangeEvent)`` after every successful mutation."""
        with self._subscribers_lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._subscribers_lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def _notify(self, action: str, message: str, tasks: Iterable[Task]) -> None:
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        if not subscribers:
            return
        event = ChangeEvent(action=action, message=message, task_ids=[t.id for t in tasks])
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Change subscriber %r failed", callback)

    # ========================================
    # HELPER METHODS
    # ========================================

    @staticmethod
    def _index_of(tasks: List[Task], task_id: str) -> int:
        for i, task in enumerate(tasks):
            if task.id == task_id:
                return i
        raise TaskNotFoundError(task_id)

    @staticmethod
    def _parse_update(fields: Union[TaskUpdate, Mapping[str, Any]]) -> TaskUpdate:
        if isinstance(fields, TaskUpdate):
            return fields
        try:
            return TaskUpdate.model_validate(dict(fields))
        except ValidationError as e:
            raise TaskValidationError.from_pydantic(e, label="update") from e

    @staticmethod
    def _field_changes(
        task: Task,
        supplied: Dict[str, Any],
        tasks: List[Task],
        warnings: List[str],
    ) -> Dict[str, Any]:
        changes = dict(supplied)
        for required in ("name", "description"):
            if required in changes and changes[required] is None:
                raise TaskValidationError(f"{required} cannot be cleared", [task.id])
        if "related_files" in changes:
            changes["related_files"] = list(changes["related_files"] or [])
        if "dependencies" in changes:
            others = [t for t in tasks if t.id != task.id]
            deps, missing = resolver.resolve_all(
                changes["dependencies"] or [],
                resolver.name_index(others),
                {t.id for t in others},
            )
            changes["dependencies"] = deps
            for ref in missing:
                warnings.append(f'Task "{task.name}": dropped unresolved dependency "{ref}"')
            if missing:
                logger.warning(f"⚠️ Task {task.id}: dropped unresolved dependencies {missing}")
        return changes

    @staticmethod
    def _check_acyclic(tasks: List[Task]) -> None:
        cycle = resolver.find_cycle(tasks)
        if cycle:
            raise TaskValidationError(
                "Update would introduce a dependency cycle: " + " -> ".join(cycle),
                cycle[:-1],
            )

    @staticmethod
    def _noop_message(task: Task) -> str:
        if task.status == TaskStatus.IN_PROGRESS:
            return f'Task "{task.name}" is already in progress'
        return f'Task "{task.name}" is already {task.status.value}'

    @staticmethod
    def _rejected(error: TaskManagerError) -> OperationResult:
        logger.warning(f"⛔ Rejected ({error.kind}): {error.message}")
        return OperationResult(
            success=False,
            message=error.message,
            error=error.kind,
            blocking_ids=getattr(error, "blocking_ids", []),
        )

    # ========================================
    # REPORTING
    # ========================================

    def get_status_report(self) -> str:
        """Human-readable status report"""
        try:
            tasks = self.store.load_all()
        except TaskManagerError as e:
            return f"❌ [{e.kind}] {e.message}"
        if not tasks:
            return "No tasks yet"

        by_id = lifecycle.index_by_id(tasks)
        done = sum(1 for t in tasks if t.is_completed)
        pct = int(done * 100 / len(tasks))

        lines = [
            f"📋 {self.data_dir}",
            f"Progress: {'█' * (pct // 10)}{'░' * (10 - pct // 10)} {pct}%",
            "",
            "Tasks:",
        ]

        status_icons = {
            TaskStatus.PENDING: "⬜",
            TaskStatus.IN_PROGRESS: "🔵",
            TaskStatus.BLOCKED: "🟡",
            TaskStatus.COMPLETED: "✅",
        }

        for task in tasks:
            status = lifecycle.effective_status(task, by_id)
            icon = status_icons.get(status, "❓")
            blocking = lifecycle.blocking_dependencies(task, by_id)
            deps = f" (blocked by: {blocking})" if status == TaskStatus.BLOCKED and blocking else ""
            lines.append(f"  {icon} [{task.id}] {task.name}{deps}")

        return "\n".join(lines)
