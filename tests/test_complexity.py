# tests/test_complexity.py

from __future__ import annotations

from shrimp_tasks.complexity import assess, level_for
from shrimp_tasks.config import ComplexityThresholds, LevelThresholds
from shrimp_tasks.schema import ComplexityLevel, Task, TaskDependency


def _task(description_len: int = 10, deps: int = 0, notes_len: int = 0) -> Task:
    return Task(
        name="t",
        description="x" * description_len,
        notes=("n" * notes_len) or None,
        dependencies=[TaskDependency(task_id=f"dep-{i}") for i in range(deps)],
    )


def test_level_thresholds_are_inclusive() -> None:
    t = LevelThresholds(medium=2, high=5, very_high=10)
    assert level_for(1, t) == ComplexityLevel.LOW
    assert level_for(2, t) == ComplexityLevel.MEDIUM
    assert level_for(5, t) == ComplexityLevel.HIGH
    assert level_for(10, t) == ComplexityLevel.VERY_HIGH


def test_simple_task_is_low() -> None:
    report = assess(_task())
    assert report.level == ComplexityLevel.LOW
    assert report.metrics.description_length == 10
    assert report.metrics.has_notes is False
    assert len(report.recommendations) == 2


def test_overall_level_is_max_of_metrics() -> None:
    assert assess(_task(deps=5)).level == ComplexityLevel.HIGH
    assert assess(_task(description_len=600, notes_len=1000)).level == ComplexityLevel.VERY_HIGH
    assert assess(_task(description_len=1200, deps=2)).level == ComplexityLevel.HIGH


def test_medium_with_dependencies_adds_dependency_note() -> None:
    report = assess(_task(description_len=600, deps=1))
    assert report.level == ComplexityLevel.MEDIUM
    assert any("dependency task" in r for r in report.recommendations)


def test_very_high_extra_recommendations() -> None:
    report = assess(_task(description_len=2000, deps=5))
    assert report.level == ComplexityLevel.VERY_HIGH
    assert any("description is very long" in r for r in report.recommendations)
    assert any("re-evaluate the task boundaries" in r for r in report.recommendations)
    assert len(report.recommendations) == 6


def test_custom_thresholds() -> None:
    thresholds = ComplexityThresholds(description_length=LevelThresholds(medium=5, high=8, very_high=9))
    assert assess(_task(description_len=8), thresholds).level == ComplexityLevel.HIGH
