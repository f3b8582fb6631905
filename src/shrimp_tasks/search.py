"""
Keyword and id search over the live collection and archived snapshots.

Live tasks win over archived copies with the same id. Results are ordered
completed-first by completion time, then by last update, newest first.
"""

import math
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import TaskValidationError
from .schema import Pagination, SearchResult, Task

SEARCHABLE_FIELDS = ("name", "description", "notes", "implementation_guide", "summary")

TaskPredicate = Callable[[Task], bool]
ArchiveScanner = Callable[[TaskPredicate], List[Task]]


def keywords(query: str) -> List[str]:
    return [k.lower() for k in query.split()]


def build_predicate(query: str, is_id_search: bool) -> TaskPredicate:
    if is_id_search:
        wanted = query.strip()
        return lambda task: task.id == wanted

    words = keywords(query)

    def matches(task: Task) -> bool:
        haystacks = [
            value.lower()
            for value in (getattr(task, name) for name in SEARCHABLE_FIELDS)
            if value
        ]
        return all(any(word in text for text in haystacks) for word in words)

    return matches


def _sort_key(task: Task) -> Tuple[int, float, float]:
    completed = task.completed_at.timestamp() if task.completed_at else 0.0
    return (1 if task.completed_at else 0, completed, task.updated_at.timestamp())


def order_results(tasks: Sequence[Task]) -> List[Task]:
    return sorted(tasks, key=_sort_key, reverse=True)


def paginate(tasks: Sequence[Task], page: int, page_size: int) -> SearchResult:
    if page_size < 1:
        raise TaskValidationError("pageSize must be at least 1")
    total = len(tasks)
    total_pages = max(1, math.ceil(total / page_size))
    current = min(max(page, 1), total_pages)
    start = (current - 1) * page_size
    return SearchResult(
        tasks=list(tasks[start:start + page_size]),
        pagination=Pagination(
            current_page=current,
            total_pages=total_pages,
            total_results=total,
            has_more=current < total_pages,
        ),
    )


def search(
    live_tasks: Sequence[Task],
    query: str,
    is_id_search: bool = False,
    page: int = 1,
    page_size: int = 5,
    scan_archives: Optional[ArchiveScanner] = None,
) -> SearchResult:
    """
    Match ``query`` against ``live_tasks`` and, through ``scan_archives``,
    against archived snapshots.

    Keyword queries match a task when every whitespace-separated keyword is a
    case-insensitive substring of its name, description, notes,
    implementation guide or summary. An empty query matches everything.
    """
    predicate = build_predicate(query, is_id_search)

    merged = {}
    for task in live_tasks:
        if predicate(task):
            merged[task.id] = task
    if scan_archives is not None:
        for task in scan_archives(predicate):
            merged.setdefault(task.id, task)

    return paginate(order_results(list(merged.values())), page, page_size)
