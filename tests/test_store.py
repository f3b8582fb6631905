# tests/test_store.py

from __future__ import annotations

import json
import os
import stat
import threading
from pathlib import Path

import pytest

from shrimp_tasks.errors import StoreIOError
from shrimp_tasks.schema import Task, TaskStatus
from shrimp_tasks.store import TaskStore


def _task(name: str, status: TaskStatus = TaskStatus.PENDING) -> Task:
    return Task(name=name, description=f"{name} description", status=status)


def test_load_all_creates_empty_snapshot(store: TaskStore) -> None:
    assert not store.tasks_file.exists()
    assert store.load_all() == []
    assert json.loads(store.tasks_file.read_text(encoding="utf-8")) == {"tasks": []}


def test_replace_all_round_trips_in_order(store: TaskStore) -> None:
    tasks = [_task("b"), _task("a"), _task("c", TaskStatus.COMPLETED)]
    store.replace_all(tasks, "Seed three tasks")

    loaded = store.load_all()
    assert [t.name for t in loaded] == ["b", "a", "c"]
    assert loaded == tasks
    # no temp files left behind by the atomic write
    assert sorted(p.name for p in store.data_dir.iterdir()) == ["changes.log", "tasks.json"]


def test_corrupt_snapshot_raises_store_io_error(store: TaskStore) -> None:
    store.data_dir.mkdir(parents=True)
    store.tasks_file.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreIOError):
        store.load_all()

    store.tasks_file.write_text(json.dumps({"tasks": [{"name": "no description"}]}), encoding="utf-8")
    with pytest.raises(StoreIOError):
        store.load_all()


def test_change_log_records_each_change_once(store: TaskStore) -> None:
    tasks = [_task("a")]
    store.replace_all(tasks, "Add new task: a")
    store.replace_all(tasks, "Same content again")  # unchanged snapshot, no entry
    store.replace_all(tasks + [_task("b")], "Add new task: b\nwith details")

    entries = store.history()
    assert [e.message for e in entries] == ["Add new task: b | with details", "Add new task: a"]
    assert all(len(e.digest) == 12 for e in entries)
    assert entries[0].digest != entries[1].digest


def test_change_log_failure_never_blocks_snapshot(store: TaskStore, caplog) -> None:
    store.data_dir.mkdir(parents=True)
    # A directory where the log file should be makes every append fail
    (store.data_dir / "changes.log").mkdir()

    store.replace_all([_task("a")], "Add new task: a")

    assert [t.name for t in store.load_all()] == ["a"]
    assert store.history() == []
    assert "Change log write failed" in caplog.text


def test_change_log_written_after_lock_released(store: TaskStore, monkeypatch) -> None:
    held = []

    def spy(timestamp, content, message):
        # RLock is re-entrant for its owner, so probe from another thread
        result = []

        def probe():
            acquired = store._write_lock.acquire(blocking=False)
            if acquired:
                store._write_lock.release()
            result.append(acquired)

        t = threading.Thread(target=probe)
        t.start()
        t.join()
        held.append(not result[0])
        return True

    monkeypatch.setattr(store.change_log, "record", spy)
    with store.mutation():
        store.replace_all([_task("a")], "first")
        store.replace_all([_task("b")], "second")
        assert held == []  # nothing flushed while inside the outer section

    assert held == [False, False]


def test_archive_completed_writes_read_only_distinct_files(store: TaskStore) -> None:
    tasks = [_task("done", TaskStatus.COMPLETED), _task("open")]
    first = store.archive_completed(tasks)
    second = store.archive_completed(tasks)

    assert first != second
    assert first.startswith("tasks_memory_") and first.endswith(".json")
    archived = store.load_archive(first)
    assert [t.name for t in archived] == ["done"]

    mode = os.stat(store.memory_dir / first).st_mode
    assert not mode & (stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH)
    assert [p.name for p in store.list_archives()] == [second, first]


def test_scan_archives_filters_limits_and_skips_bad_files(store: TaskStore) -> None:
    store.memory_dir.mkdir(parents=True)

    def write(name: str, tasks) -> None:
        payload = {"tasks": [t.model_dump(mode="json", by_alias=True) for t in tasks]}
        (store.memory_dir / name).write_text(json.dumps(payload), encoding="utf-8")

    write("tasks_memory_2025-01-01T10-00-00.json", [_task("old alpha", TaskStatus.COMPLETED)])
    write("tasks_memory_2025-02-01T10-00-00.json", [_task("new alpha", TaskStatus.COMPLETED)])
    (store.memory_dir / "tasks_memory_2025-03-01T10-00-00.json").write_text("garbage", encoding="utf-8")

    def is_alpha(task: Task) -> bool:
        return "alpha" in task.name

    assert sorted(t.name for t in store.scan_archives(is_alpha)) == ["new alpha", "old alpha"]
    # most recent two files: the garbage one and February
    assert [t.name for t in store.scan_archives(is_alpha, max_files=2)] == ["new alpha"]


def test_unwritable_data_dir_raises_store_io_error(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    store = TaskStore(blocker / "data")
    with pytest.raises(StoreIOError):
        store.load_all()
