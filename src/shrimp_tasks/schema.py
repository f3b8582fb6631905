"""
Shrimp Tasks - Task Schema Definition
=====================================
Record types for the task graph: tasks, batch drafts, partial updates,
complexity reports and search results.

Every record serializes with camelCase keys (``createdAt``,
``implementationGuide``) so snapshot files stay readable by the dashboard
and older tooling, and accepts snake_case keys when loading.
"""

import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def now_local() -> datetime:
    """Current time as an aware datetime in the server's local timezone."""
    return datetime.now().astimezone()


def new_task_id() -> str:
    return str(uuid.uuid4())


def looks_like_task_id(reference: str) -> bool:
    return bool(UUID_PATTERN.match(reference))


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TaskStatus(str, Enum):
    """Task lifecycle states"""
    PENDING = "pending"           # Created, not started
    IN_PROGRESS = "in_progress"   # Currently executing
    COMPLETED = "completed"       # Finished and verified
    BLOCKED = "blocked"           # Waiting on dependencies


class RelatedFileType(str, Enum):
    """How a file relates to a task"""
    TO_MODIFY = "TO_MODIFY"
    REFERENCE = "REFERENCE"
    CREATE = "CREATE"
    DEPENDENCY = "DEPENDENCY"
    OTHER = "OTHER"


class UpdateMode(str, Enum):
    """Batch reconciliation strategies"""
    APPEND = "append"
    OVERWRITE = "overwrite"
    SELECTIVE = "selective"
    CLEAR_ALL_TASKS = "clearAllTasks"


class ComplexityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK = {
    ComplexityLevel.LOW: 0,
    ComplexityLevel.MEDIUM: 1,
    ComplexityLevel.HIGH: 2,
    ComplexityLevel.VERY_HIGH: 3,
}


class RelatedFile(_Record):
    """A file touched or consulted by a task"""
    path: str = Field(min_length=1)
    kind: RelatedFileType = Field(alias="type")
    description: Optional[str] = None
    line_start: Optional[int] = Field(default=None, gt=0)
    line_end: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _check_line_range(self) -> "RelatedFile":
        if (self.line_start is None) != (self.line_end is None):
            raise ValueError("lineStart and lineEnd must be set together")
        if self.line_start is not None and self.line_start > self.line_end:
            raise ValueError("lineStart must not be greater than lineEnd")
        return self


class TaskDependency(_Record):
    task_id: str


class Task(_Record):
    """Individual task in the collection"""
    id: str = Field(default_factory=new_task_id)
    name: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    dependencies: List[TaskDependency] = Field(default_factory=list)

    notes: Optional[str] = None
    implementation_guide: Optional[str] = None
    verification_criteria: Optional[str] = None
    summary: Optional[str] = None
    analysis_result: Optional[str] = None
    agent: Optional[str] = None
    related_files: List[RelatedFile] = Field(default_factory=list)

    # Set by the store, never by clients
    created_at: datetime = Field(default_factory=now_local)
    updated_at: datetime = Field(default_factory=now_local)
    completed_at: Optional[datetime] = None

    @field_validator("related_files", mode="before")
    @classmethod
    def _null_files(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("created_at", "updated_at", "completed_at")
    @classmethod
    def _assume_local(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Older snapshots may carry naive timestamps
        if value is not None and value.tzinfo is None:
            return value.astimezone()
        return value

    @property
    def dependency_ids(self) -> List[str]:
        return [dep.task_id for dep in self.dependencies]

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED


class TaskDraft(_Record):
    """Incoming task description for a batch reconciliation"""
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1)
    implementation_guide: Optional[str] = None
    notes: Optional[str] = None
    verification_criteria: Optional[str] = None
    agent: Optional[str] = None
    dependencies: List[str] = Field(default_factory=list)
    related_files: Optional[List[RelatedFile]] = None

    @field_validator("name", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("dependencies", mode="before")
    @classmethod
    def _null_dependencies(cls, value: Any) -> Any:
        return [] if value is None else value


class TaskUpdate(_Record):
    """Partial field update; only explicitly supplied fields are applied"""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1)
    notes: Optional[str] = None
    implementation_guide: Optional[str] = None
    verification_criteria: Optional[str] = None
    agent: Optional[str] = None
    analysis_result: Optional[str] = None
    summary: Optional[str] = None
    dependencies: Optional[List[str]] = None
    related_files: Optional[List[RelatedFile]] = None

    @field_validator("name", "description")
    @classmethod
    def _not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    def supplied(self) -> Dict[str, Any]:
        """Field name -> value for the fields the caller actually set."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class TaskCollection(_Record):
    """Snapshot layout: the whole ordered task list"""
    tasks: List[Task] = Field(default_factory=list)


class ComplexityMetrics(_Record):
    description_length: int
    dependencies_count: int
    notes_length: int
    has_notes: bool


class _QueryOutcome(_Record):
    """Success flag and error slot shared by read results"""
    success: bool = True
    message: Optional[str] = None
    error: Optional[str] = None           # error kind when the read failed


class ComplexityAssessment(_QueryOutcome):
    level: Optional[ComplexityLevel] = None
    metrics: Optional[ComplexityMetrics] = None
    recommendations: List[str] = Field(default_factory=list)


class Pagination(_Record):
    current_page: int = 1
    total_pages: int = 1
    total_results: int = 0
    has_more: bool = False


class SearchResult(_QueryOutcome):
    tasks: List[Task] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class ExecutionCheck(_QueryOutcome):
    allowed: bool
    blocking_ids: List[str] = Field(default_factory=list)
    reason: Optional[str] = None


class OperationResult(_Record):
    """Outcome of an operation, success or rejection"""
    success: bool
    message: str
    error: Optional[str] = None           # error kind when rejected
    task: Optional[Task] = None
    tasks: List[Task] = Field(default_factory=list)
    blocking_ids: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ClearResult(_Record):
    success: bool
    message: str
    error: Optional[str] = None
    archive_id: Optional[str] = None
    removed_count: int = 0
    retained_completed_count: int = 0


class StatusSummary(_QueryOutcome):
    counts: Dict[str, int] = Field(default_factory=dict)


class ChangeEvent(_Record):
    """Pushed to subscribers after every successful mutation"""
    action: str
    message: str
    task_ids: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=now_local)


def dump_tasks(tasks: List[Task]) -> Dict[str, Any]:
    """Snapshot/archive document for ``tasks``."""
    return TaskCollection(tasks=tasks).model_dump(mode="json", by_alias=True)
