# tests/test_schema.py

from __future__ import annotations

import pytest
from pydantic import ValidationError

from shrimp_tasks.schema import (
    RelatedFile,
    RelatedFileType,
    Task,
    TaskCollection,
    TaskDraft,
    TaskStatus,
    TaskUpdate,
    dump_tasks,
    looks_like_task_id,
)


def test_task_defaults_and_camel_case_dump() -> None:
    task = Task(name="A", description="first task")
    assert looks_like_task_id(task.id)
    assert task.status == TaskStatus.PENDING
    assert task.created_at.tzinfo is not None

    data = dump_tasks([task])["tasks"][0]
    assert "createdAt" in data and "implementationGuide" in data
    assert data["status"] == "pending"
    assert data["dependencies"] == []


def test_snapshot_accepts_camel_and_snake_case() -> None:
    data = {
        "tasks": [
            {
                "id": "11111111-1111-4111-8111-111111111111",
                "name": "A",
                "description": "d",
                "status": "completed",
                "dependencies": [{"taskId": "22222222-2222-4222-8222-222222222222"}],
                "createdAt": "2025-01-01T10:00:00+00:00",
                "updated_at": "2025-01-01T11:00:00",
                "completedAt": "2025-01-01T12:00:00+00:00",
                "relatedFiles": [{"path": "a.py", "type": "TO_MODIFY"}],
            }
        ]
    }
    task = TaskCollection.model_validate(data).tasks[0]
    assert task.dependency_ids == ["22222222-2222-4222-8222-222222222222"]
    assert task.updated_at.tzinfo is not None  # naive read as local time
    assert task.related_files[0].kind == RelatedFileType.TO_MODIFY
    assert dump_tasks([task])["tasks"][0]["relatedFiles"][0]["type"] == "TO_MODIFY"


@pytest.mark.parametrize(
    "start,end",
    [(10, None), (None, 10), (20, 10), (0, 5)],
)
def test_related_file_rejects_bad_line_ranges(start, end) -> None:
    with pytest.raises(ValidationError):
        RelatedFile(path="a.py", type="REFERENCE", lineStart=start, lineEnd=end)


def test_related_file_accepts_single_line_range() -> None:
    f = RelatedFile(path="a.py", type="CREATE", lineStart=3, lineEnd=3)
    assert (f.line_start, f.line_end) == (3, 3)


def test_draft_requires_non_blank_name_and_description() -> None:
    with pytest.raises(ValidationError):
        TaskDraft(name="  ", description="x")
    with pytest.raises(ValidationError):
        TaskDraft(name="A", description="")
    with pytest.raises(ValidationError):
        TaskDraft(name="n" * 101, description="x")


def test_draft_ignores_unknown_keys_and_null_dependencies() -> None:
    d = TaskDraft.model_validate({"name": " A ", "description": "x", "dependencies": None, "priority": 1})
    assert d.name == "A"
    assert d.dependencies == []
    assert d.related_files is None


def test_update_tracks_supplied_fields_and_forbids_protected_ones() -> None:
    update = TaskUpdate.model_validate({"notes": None, "implementationGuide": "steps"})
    assert update.supplied() == {"notes": None, "implementation_guide": "steps"}

    with pytest.raises(ValidationError):
        TaskUpdate.model_validate({"status": "completed"})
    with pytest.raises(ValidationError):
        TaskUpdate.model_validate({"id": "x"})


def test_update_rejects_blank_name_and_description() -> None:
    with pytest.raises(ValidationError):
        TaskUpdate(name="   ")
    with pytest.raises(ValidationError):
        TaskUpdate.model_validate({"description": "\t"})
    assert TaskUpdate(name=" Renamed ").name == "Renamed"
    assert TaskUpdate(description=None).supplied() == {"description": None}


def test_id_syntax() -> None:
    assert looks_like_task_id("9F1C2D3E-4A5B-4C6D-8E7F-0123456789AB")
    assert not looks_like_task_id("Design schema")
    assert not looks_like_task_id("12345678-1234")
