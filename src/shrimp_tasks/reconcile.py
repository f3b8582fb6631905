"""
Shrimp Tasks - Reconciliation Engine
====================================
Computes the new task collection from the existing one and a batch of
drafts, according to one of four update modes:

    append         keep everything, every draft becomes a new task
    overwrite      keep completed tasks only, every draft becomes a new task
    selective      update non-completed tasks by name, create the rest,
                   keep everything not mentioned
    clearAllTasks  start from an empty collection (the caller archives
                   completed tasks first)

Dependencies are resolved after all drafts have ids, so a draft may refer
to a later draft by name.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .errors import TaskValidationError
from .resolver import find_cycle, resolve_all
from .schema import Task, TaskDraft, TaskStatus, UpdateMode, new_task_id, now_local

logger = logging.getLogger(__name__)


@dataclass
class ReconcileOutcome:
    """Tasks touched by the batch plus the full collection to persist."""
    affected: List[Task]
    collection: List[Task]
    unresolved: Dict[str, List[str]] = field(default_factory=dict)  # task name -> refs

    @property
    def warnings(self) -> List[str]:
        return [
            f'Task "{name}": dropped unresolved dependency "{ref}"'
            for name, refs in self.unresolved.items()
            for ref in refs
        ]

    def change_message(self, mode: UpdateMode) -> str:
        return f"Bulk task operation: {mode.value} mode, {len(self.affected)} tasks"


def check_unique_names(drafts: Sequence[TaskDraft]) -> None:
    counts = Counter(d.name for d in drafts)
    duplicates = sorted(name for name, n in counts.items() if n > 1)
    if duplicates:
        raise TaskValidationError(
            "Duplicate task names in batch: " + ", ".join(f'"{n}"' for n in duplicates)
        )


def _tasks_to_keep(existing: Sequence[Task], mode: UpdateMode) -> List[Task]:
    if mode == UpdateMode.APPEND:
        return list(existing)
    if mode == UpdateMode.OVERWRITE:
        return [t for t in existing if t.status == TaskStatus.COMPLETED]
    if mode == UpdateMode.SELECTIVE:
        return list(existing)
    return []


def reconcile(
    existing: Sequence[Task],
    drafts: Sequence[TaskDraft],
    mode: UpdateMode,
    global_analysis: Optional[str] = None,
    reject_cycles: bool = False,
) -> ReconcileOutcome:
    """
    Merge ``drafts`` into ``existing``. Pure: nothing is read or written.

    Raises TaskValidationError for an empty batch, duplicate names, or (with
    ``reject_cycles``) a dependency cycle in the result.
    """
    if not drafts:
        raise TaskValidationError("Please provide at least one task")
    check_unique_names(drafts)

    kept = _tasks_to_keep(existing, mode)
    now = now_local()

    # Selective targets: first non-completed task carrying the draft's name
    targets: Dict[str, Task] = {}
    if mode == UpdateMode.SELECTIVE:
        for task in kept:
            if task.status != TaskStatus.COMPLETED and task.name not in targets:
                targets[task.name] = task

    name_to_id: Dict[str, str] = {task.name: task.id for task in kept}
    touched: List[Task] = []
    updated_ids = set()

    for draft in drafts:
        target = targets.get(draft.name)
        base = {
            "name": draft.name,
            "description": draft.description,
            "notes": draft.notes,
            "implementation_guide": draft.implementation_guide,
            "verification_criteria": draft.verification_criteria,
            "agent": draft.agent,
            "updated_at": now,
        }
        if global_analysis is not None:
            base["analysis_result"] = global_analysis

        if target is not None:
            if draft.related_files is not None:
                base["related_files"] = list(draft.related_files)
            task = target.model_copy(update=base)
            updated_ids.add(target.id)
        else:
            task = Task(
                id=new_task_id(),
                status=TaskStatus.PENDING,
                related_files=list(draft.related_files or []),
                created_at=now,
                **base,
            )
        name_to_id[draft.name] = task.id
        touched.append(task)

    retained = [t for t in kept if t.id not in updated_ids]
    id_universe = {t.id for t in retained} | {t.id for t in touched}

    # An updated task keeps its dependencies unless the draft lists new ones
    unresolved: Dict[str, List[str]] = {}
    for i, draft in enumerate(drafts):
        if not draft.dependencies:
            continue
        deps, missing = resolve_all(draft.dependencies, name_to_id, id_universe)
        touched[i] = touched[i].model_copy(update={"dependencies": deps})
        if missing:
            unresolved[draft.name] = missing
            logger.warning(f"⚠️ Task {draft.name!r}: dropped unresolved dependencies {missing}")

    collection = retained + touched

    if reject_cycles:
        cycle = find_cycle(collection)
        if cycle:
            raise TaskValidationError(
                "Batch would introduce a dependency cycle: " + " -> ".join(cycle),
                cycle[:-1],
            )

    logger.info(
        f"🧩 Reconciled {len(touched)} drafts ({mode.value}): "
        f"{len(updated_ids)} updated, {len(touched) - len(updated_ids)} created, "
        f"{len(retained)} retained"
    )
    return ReconcileOutcome(affected=touched, collection=collection, unresolved=unresolved)
