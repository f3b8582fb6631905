# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from shrimp_tasks.config import Settings
from shrimp_tasks.manager import TaskManager
from shrimp_tasks.store import TaskStore


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings pinned to a per-test data directory.

    Constructed explicitly so SHRIMP_* variables in the developer's
    environment cannot leak into the tests.
    """
    return Settings(
        data_dir=tmp_path / "data",
        search_page_size=5,
        search_max_archive_files=10,
        reject_dependency_cycles=False,
        change_log_enabled=True,
    )


@pytest.fixture()
def store(settings: Settings) -> TaskStore:
    return TaskStore(settings.data_dir)


@pytest.fixture()
def manager(settings: Settings) -> TaskManager:
    return TaskManager(settings=settings)
