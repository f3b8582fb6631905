"""
Shrimp Tasks - Task Store
=========================
File-based persistence. The snapshot file (``tasks.json``) is the single
source of truth; the change log is a best-effort audit trail and the
``memory/`` directory keeps read-only archives of completed tasks for
search recall.

Writers are serialized through :meth:`TaskStore.mutation`, across every
store opened on the same data directory in this process. Change-log
entries produced inside a mutation are written only after the lock has
been released.
"""

import json
import logging
import os
import stat
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from .changelog import ChangeEntry, ChangeLog
from .errors import StoreIOError
from .schema import Task, TaskCollection, TaskStatus, dump_tasks, now_local

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "tasks_memory_"
ARCHIVE_TIME_FORMAT = "%Y-%m-%dT%H-%M-%S"

# One writer lock per data directory, shared by every store in the process
_DIR_LOCKS: Dict[Path, Any] = {}
_DIR_LOCKS_GUARD = threading.Lock()


def _lock_for(data_dir: Path):
    with _DIR_LOCKS_GUARD:
        return _DIR_LOCKS.setdefault(data_dir.resolve(), threading.RLock())


def _serialize(tasks: List[Task]) -> bytes:
    return json.dumps(dump_tasks(tasks), indent=2, ensure_ascii=False).encode("utf-8")


def _atomic_write(path: Path, content: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class TaskStore:
    """
    Snapshot + change log + archive directory under one data directory.

    Layout:
        <data_dir>/tasks.json      {"tasks": [...]}
        <data_dir>/changes.log     one line per recorded change
        <data_dir>/memory/         tasks_memory_<timestamp>.json archives
    """

    def __init__(self, data_dir: Path, change_log_enabled: bool = True):
        self.data_dir = Path(data_dir)
        self.tasks_file = self.data_dir / "tasks.json"
        self.memory_dir = self.data_dir / "memory"
        self.change_log = ChangeLog(self.data_dir / "changes.log", enabled=change_log_enabled)

        self._write_lock = _lock_for(self.data_dir)
        self._depth = 0
        self._pending: List[Tuple[str, bytes, str]] = []

    # ========================================
    # SNAPSHOT
    # ========================================

    def _ensure_snapshot(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            if not self.tasks_file.exists():
                _atomic_write(self.tasks_file, _serialize([]))
                logger.info(f"📂 Created empty task snapshot: {self.tasks_file}")
        except OSError as e:
            raise StoreIOError(f"Cannot initialise data directory {self.data_dir}: {e}") from e

    def load_all(self) -> List[Task]:
        """Read the snapshot, creating an empty one if it does not exist yet."""
        self._ensure_snapshot()
        try:
            with open(self.tasks_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            return TaskCollection.model_validate(data).tasks
        except FileNotFoundError:
            # Removed between the existence check and the read
            return []
        except (OSError, UnicodeDecodeError) as e:
            raise StoreIOError(f"Cannot read task snapshot {self.tasks_file}: {e}") from e
        except json.JSONDecodeError as e:
            raise StoreIOError(f"Task snapshot {self.tasks_file} is not valid JSON: {e}") from e
        except ValidationError as e:
            raise StoreIOError(
                f"Task snapshot {self.tasks_file} does not match the task schema: "
                f"{e.error_count()} error(s)"
            ) from e

    def replace_all(self, tasks: List[Task], change_description: str) -> None:
        """Atomically overwrite the snapshot and queue a change-log entry."""
        with self.mutation():
            self._ensure_snapshot()
            content = _serialize(tasks)
            try:
                _atomic_write(self.tasks_file, content)
            except OSError as e:
                logger.error(f"❌ Snapshot write failed: {e}")
                raise StoreIOError(f"Cannot write task snapshot {self.tasks_file}: {e}") from e
            logger.info(f"✅ Saved {len(tasks)} tasks: {change_description}")
            self._pending.append((now_local().isoformat(timespec="seconds"), content, change_description))

    @contextmanager
    def mutation(self) -> Iterator[None]:
        """
        Critical section for read-modify-write sequences.

        Re-entrant. Queued change-log entries are flushed once the outermost
        section exits, outside the lock.
        """
        pending: List[Tuple[str, bytes, str]] = []
        try:
            with self._write_lock:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                    if self._depth == 0:
                        pending, self._pending = self._pending, []
        finally:
            for timestamp, content, message in pending:
                self.change_log.record(timestamp, content, message)

    def history(self, limit: Optional[int] = None) -> List[ChangeEntry]:
        return self.change_log.entries(limit)

    # ========================================
    # ARCHIVES
    # ========================================

    def archive_completed(self, tasks: List[Task]) -> str:
        """Write a read-only archive of the completed tasks; returns its file name."""
        completed = [t for t in tasks if t.status == TaskStatus.COMPLETED]
        try:
            self.memory_dir.mkdir(parents=True, exist_ok=True)
            path = self._new_archive_path()
            _atomic_write(path, _serialize(completed))
            os.chmod(path, stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH)
        except OSError as e:
            raise StoreIOError(f"Cannot write archive in {self.memory_dir}: {e}") from e
        logger.info(f"🗄️ Archived {len(completed)} completed tasks to {path.name}")
        return path.name

    def _new_archive_path(self) -> Path:
        stem = ARCHIVE_PREFIX + now_local().strftime(ARCHIVE_TIME_FORMAT)
        path = self.memory_dir / f"{stem}.json"
        counter = 1
        while path.exists():
            path = self.memory_dir / f"{stem}_{counter}.json"
            counter += 1
        return path

    def list_archives(self) -> List[Path]:
        """Archive files, most recent first."""
        if not self.memory_dir.is_dir():
            return []
        files = [p for p in self.memory_dir.glob("*.json") if p.is_file()]
        return sorted(files, key=_archive_sort_key, reverse=True)

    def load_archive(self, archive_id: str) -> List[Task]:
        path = self.memory_dir / archive_id
        try:
            with open(path, "r", encoding="utf-8") as f:
                return TaskCollection.model_validate(json.load(f)).tasks
        except (OSError, ValueError) as e:
            raise StoreIOError(f"Cannot read archive {archive_id}: {e}") from e

    def scan_archives(
        self,
        predicate: Callable[[Task], bool],
        max_files: Optional[int] = None,
    ) -> List[Task]:
        """
        Tasks from archive files that satisfy ``predicate``.

        Opens at most ``max_files`` archives, most recent first (None or 0
        means all of them). Unreadable archives are skipped with a warning.
        """
        archives = self.list_archives()
        if max_files:
            archives = archives[:max_files]

        matches: List[Task] = []
        for path in archives:
            try:
                tasks = self.load_archive(path.name)
            except StoreIOError as e:
                logger.warning(f"⚠️ Skipping archive: {e}")
                continue
            matches.extend(t for t in tasks if predicate(t))
        return matches


def _archive_sort_key(path: Path) -> Tuple[str, int]:
    # tasks_memory_<ts>.json sorts before tasks_memory_<ts>_1.json
    stem = path.stem
    base, sep, suffix = stem.rpartition("_")
    if sep and suffix.isdigit() and base.startswith(ARCHIVE_PREFIX):
        return base, int(suffix)
    return stem, 0
