"""Advisory complexity rating derived from the size and shape of a task."""

from typing import List, Optional

from .config import ComplexityThresholds, LevelThresholds
from .schema import ComplexityAssessment, ComplexityLevel, ComplexityMetrics, Task

DEFAULT_THRESHOLDS = ComplexityThresholds()

RECOMMENDATIONS = {
    ComplexityLevel.LOW: [
        "This task has low complexity and can be executed directly",
        "Set clear completion criteria so acceptance is unambiguous",
    ],
    ComplexityLevel.MEDIUM: [
        "This task has some complexity; plan the execution steps in detail",
        "Execute in phases and check progress regularly to confirm the implementation is complete",
    ],
    ComplexityLevel.HIGH: [
        "This task has high complexity; analyse and plan thoroughly before starting",
        "Consider splitting the task into smaller, independently executable subtasks",
        "Set milestones and checkpoints to track progress and quality",
    ],
    ComplexityLevel.VERY_HIGH: [
        "This task has very high complexity; strongly consider splitting it into several independent tasks",
        "Define the scope and interfaces of each subtask before execution",
        "Assess risks, identify likely obstacles and prepare responses",
        "Define concrete testing and verification criteria for each subtask",
    ],
}


def level_for(value: int, thresholds: LevelThresholds) -> ComplexityLevel:
    if value >= thresholds.very_high:
        return ComplexityLevel.VERY_HIGH
    if value >= thresholds.high:
        return ComplexityLevel.HIGH
    if value >= thresholds.medium:
        return ComplexityLevel.MEDIUM
    return ComplexityLevel.LOW


def assess(task: Task, thresholds: Optional[ComplexityThresholds] = None) -> ComplexityAssessment:
    """Rate ``task``; the overall level is the highest level of any metric."""
    thresholds = thresholds or DEFAULT_THRESHOLDS

    metrics = ComplexityMetrics(
        description_length=len(task.description),
        dependencies_count=len(task.dependencies),
        notes_length=len(task.notes) if task.notes else 0,
        has_notes=bool(task.notes),
    )

    level = max(
        (
            level_for(metrics.description_length, thresholds.description_length),
            level_for(metrics.dependencies_count, thresholds.dependencies_count),
            level_for(metrics.notes_length, thresholds.notes_length),
        ),
        key=lambda lv: lv.rank,
    )

    recommendations: List[str] = list(RECOMMENDATIONS[level])
    deps = metrics.dependencies_count

    if level == ComplexityLevel.MEDIUM and deps > 0:
        recommendations.append(
            "Check the completion status and output quality of every dependency task"
        )
    elif level == ComplexityLevel.HIGH and deps > thresholds.dependencies_count.medium:
        recommendations.append(
            "There are many dependency tasks; sketch a dependency diagram to confirm the execution order"
        )
    elif level == ComplexityLevel.VERY_HIGH:
        if metrics.description_length >= thresholds.description_length.very_high:
            recommendations.append(
                "The description is very long; extract the key points into a structured checklist"
            )
        if deps >= thresholds.dependencies_count.high:
            recommendations.append(
                "Too many dependency tasks; re-evaluate the task boundaries"
            )

    return ComplexityAssessment(level=level, metrics=metrics, recommendations=recommendations)
