"""
Shrimp Tasks - Task Graph Manager
=================================

Persistent task graph for agent-driven planning and execution workflows:
batch planning with four reconciliation modes, dependency-gated status
transitions, complexity hints, and search that reaches back into archived
task lists.

Usage:
    from shrimp_tasks import TaskManager

    manager = TaskManager(data_dir="data")
    result = manager.create_or_reconcile(
        [
            {"name": "Schema", "description": "Define the task schema"},
            {"name": "Store", "description": "Persist tasks", "dependencies": ["Schema"]},
        ],
        mode="clearAllTasks",
    )

    schema_task, store_task = result.tasks
    manager.can_execute(store_task.id)       # blocked by Schema
    manager.start_task(schema_task.id)
    manager.complete_task(schema_task.id, summary="Schema defined with pydantic")
    manager.search("schema")
"""

from .config import ComplexityThresholds, Settings
from .errors import (
    StateConflictError,
    StoreIOError,
    TaskManagerError,
    TaskNotFoundError,
    TaskValidationError,
)
from .manager import TaskManager
from .schema import (
    ChangeEvent,
    ClearResult,
    ComplexityAssessment,
    ComplexityLevel,
    ExecutionCheck,
    OperationResult,
    RelatedFile,
    RelatedFileType,
    SearchResult,
    StatusSummary,
    Task,
    TaskDraft,
    TaskStatus,
    TaskUpdate,
    UpdateMode,
)

__version__ = "1.0.0"
__all__ = [
    "TaskManager",
    "Settings",
    "ComplexityThresholds",
    "Task",
    "TaskDraft",
    "TaskUpdate",
    "TaskStatus",
    "RelatedFile",
    "RelatedFileType",
    "UpdateMode",
    "ComplexityLevel",
    "ComplexityAssessment",
    "ExecutionCheck",
    "OperationResult",
    "ClearResult",
    "SearchResult",
    "StatusSummary",
    "ChangeEvent",
    "TaskManagerError",
    "TaskValidationError",
    "TaskNotFoundError",
    "StateConflictError",
    "StoreIOError",
]
