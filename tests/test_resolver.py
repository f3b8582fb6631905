# tests/test_resolver.py

from __future__ import annotations

from shrimp_tasks.resolver import find_cycle, name_index, resolve, resolve_all
from shrimp_tasks.schema import Task, TaskDependency

A_ID = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
B_ID = "bbbbbbbb-bbbb-4bbb-8bbb-bbbbbbbbbbbb"
GHOST_ID = "cccccccc-cccc-4ccc-8ccc-cccccccccccc"


def test_resolve_prefers_known_id_then_name() -> None:
    known = {"Design": A_ID}
    universe = {A_ID, B_ID}

    assert resolve(B_ID, known, universe) == B_ID
    assert resolve("Design", known, universe) == A_ID
    assert resolve(" Design ", known, universe) == A_ID
    assert resolve(GHOST_ID, known, universe) is None
    assert resolve("Unknown", known, universe) is None


def test_id_shaped_name_falls_back_to_name_lookup() -> None:
    # A task may literally be named like an id
    assert resolve(GHOST_ID, {GHOST_ID: A_ID}, {A_ID}) == A_ID


def test_resolve_all_keeps_order_dedupes_and_reports_misses() -> None:
    deps, missing = resolve_all(["Design", B_ID, "Nope", A_ID], {"Design": A_ID}, {A_ID, B_ID})
    assert deps == [TaskDependency(task_id=A_ID), TaskDependency(task_id=B_ID)]
    assert missing == ["Nope"]


def _task(task_id: str, name: str, *deps: str) -> Task:
    return Task(
        id=task_id,
        name=name,
        description="d",
        dependencies=[TaskDependency(task_id=d) for d in deps],
    )


def test_name_index_last_name_wins() -> None:
    tasks = [_task(A_ID, "same"), _task(B_ID, "same")]
    assert name_index(tasks) == {"same": B_ID}


def test_find_cycle() -> None:
    assert find_cycle([_task(A_ID, "a"), _task(B_ID, "b", A_ID)]) is None
    assert find_cycle([_task(A_ID, "a", GHOST_ID)]) is None  # unknown ids ignored

    cycle = find_cycle([_task(A_ID, "a", B_ID), _task(B_ID, "b", A_ID)])
    assert cycle is not None
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {A_ID, B_ID}

    assert find_cycle([_task(A_ID, "self", A_ID)]) == [A_ID, A_ID]
