import uuid
from datetime import datetime, timedelta, timezone

import pytest

from mcptodo.models import (
    DuplicateCandidate,
    FtsSearchResult,
    Priority,
    RecurrencePattern,
    TaskStatus,
    TodoItem,
)


def _parse_z(text):
    assert text.endswith("Z")
    return datetime.fromisoformat(text[:-1] + "+00:00")


def _item(**overrides):
    created = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    values = dict(
        id=uuid.uuid4(),
        summary="Buy milk",
        status=TaskStatus.IN_PROGRESS,
        priority=Priority.HIGH,
        created_at=created,
        updated_at=created,
    )
    values.update(overrides)
    return TodoItem(**values)


@pytest.mark.parametrize("enum_type", [TaskStatus, Priority, RecurrencePattern])
def test_parse_round_trips_every_member(enum_type):
    for member in enum_type:
        assert enum_type.parse(member.value) is member


def test_parse_known_strings():
    assert TaskStatus.parse("in_progress") is TaskStatus.IN_PROGRESS
    assert Priority.parse("medium") is Priority.MEDIUM
    assert RecurrencePattern.parse("biweekly") is RecurrencePattern.BIWEEKLY


@pytest.mark.parametrize("text", ["", "IN_PROGRESS", "Done", "urgent", None])
def test_parse_unknown_returns_none(text):
    assert TaskStatus.parse(text) is None
    assert Priority.parse(text) is None
    assert RecurrencePattern.parse(text) is None


def test_labels():
    assert TaskStatus.IN_PROGRESS.label == "InProgress"
    assert Priority.HIGH.label == "High"
    assert RecurrencePattern.DAILY.label.lower() == RecurrencePattern.DAILY.value


def test_str_of_parsed_member_is_stored_value():
    assert str(TaskStatus.parse("done")) == "done"
    assert str(Priority.parse("low")) == "low"


def test_todo_item_to_dict_values():
    item = _item(tags=["a", "b"], recurrence_pattern=RecurrencePattern.DAILY)
    data = item.to_dict()
    assert data["id"] == str(item.id)
    assert data["status"] == "inProgress"
    assert data["priority"] == "high"
    assert data["recurrencePattern"] == "daily"
    assert data["tags"] == ["a", "b"]
    assert _parse_z(data["createdAt"]) == item.created_at


def test_todo_item_to_dict_missing_optionals_are_null():
    data = _item().to_dict()
    assert data["dueDate"] is None
    assert data["completedAt"] is None
    assert data["recurrenceEnd"] is None
    assert data["description"] is None


def test_timestamps_converted_to_utc():
    zone = timezone(timedelta(hours=2))
    due = datetime(2024, 5, 6, 12, 0, 0, 250000, tzinfo=zone)
    data = _item(due_date=due).to_dict()
    assert _parse_z(data["dueDate"]) == due


def test_duplicate_candidate_to_dict():
    ident = uuid.uuid4()
    data = DuplicateCandidate(id=ident, summary="Buy milk", similarity=0.9).to_dict()
    assert data == {"id": str(ident), "summary": "Buy milk", "similarity": 0.9}


def test_fts_result_to_dict():
    ident = uuid.uuid4()
    result = FtsSearchResult(id=ident, summary="s", project=None, score=0.5, snippet="<b>s</b>")
    assert result.to_dict() == {
        "id": str(ident),
        "summary": "s",
        "project": None,
        "score": 0.5,
        "snippet": "<b>s</b>",
    }