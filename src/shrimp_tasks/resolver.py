"""
Dependency references: a task may name its prerequisites either by id or by
task name. References that resolve to nothing are dropped, never fatal.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .schema import Task, TaskDependency, looks_like_task_id

logger = logging.getLogger(__name__)


def resolve(
    reference: str,
    known_tasks: Mapping[str, str],
    id_universe: Set[str],
) -> Optional[str]:
    """
    Map ``reference`` to a task id.

    An id-shaped reference present in ``id_universe`` wins; otherwise the
    reference is looked up as a name in ``known_tasks`` (name -> id).
    Returns None when neither matches.
    """
    reference = reference.strip()
    if looks_like_task_id(reference) and reference in id_universe:
        return reference
    return known_tasks.get(reference)


def resolve_all(
    references: Iterable[str],
    known_tasks: Mapping[str, str],
    id_universe: Set[str],
) -> Tuple[List[TaskDependency], List[str]]:
    """Resolve references in order, dropping duplicates; returns (deps, unresolved)."""
    resolved: List[TaskDependency] = []
    seen: Set[str] = set()
    unresolved: List[str] = []
    for ref in references:
        task_id = resolve(ref, known_tasks, id_universe)
        if task_id is None:
            unresolved.append(ref)
            continue
        if task_id not in seen:
            seen.add(task_id)
            resolved.append(TaskDependency(task_id=task_id))
    return resolved, unresolved


def name_index(tasks: Iterable[Task]) -> Dict[str, str]:
    """name -> id; the last task with a given name wins."""
    return {task.name: task.id for task in tasks}


def find_cycle(tasks: Iterable[Task]) -> Optional[List[str]]:
    """
    Return one dependency cycle as a list of task ids (first id repeated at
    the end), or None when the graph is acyclic. Edges to unknown ids are
    ignored.
    """
    graph = {task.id: task.dependency_ids for task in tasks}
    visiting, done = set(), set()

    for root in graph:
        if root in done:
            continue
        # Iterative DFS keeps deep chains off the recursion limit
        path: List[str] = [root]
        stack = [iter(graph[root])]
        visiting.add(root)
        while stack:
            advanced = False
            for nxt in stack[-1]:
                if nxt not in graph or nxt in done:
                    continue
                if nxt in visiting:
                    return path[path.index(nxt):] + [nxt]
                visiting.add(nxt)
                path.append(nxt)
                stack.append(iter(graph[nxt]))
                advanced = True
                break
            if not advanced:
                stack.pop()
                node = path.pop()
                visiting.discard(node)
                done.add(node)
    return None
