"""Task records and the enumerations they are built from."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _format_utc(moment: datetime | None) -> str | None:
    """Render a timestamp in UTC with a trailing 'Z' and only the digits it needs."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    micros = moment.microsecond
    if micros:
        if micros % 1000 == 0:
            text += f".{micros // 1000:03d}"
        else:
            text += f".{micros:06d}"
    return text + "Z"


def _lookup(enum_type, text):
    try:
        return enum_type(text)
    except ValueError:
        return None


class _NamedValue(str, enum.Enum):
    """An enumeration stored in the database by its lower-case value."""

    def __str__(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        """Human-readable name, e.g. ``InProgress``."""
        return "".join(part.capitalize() for part in self.value.split("_"))

    @property
    def wire(self) -> str:
        """Name used in JSON documents, e.g. ``inProgress``."""
        label = self.label
        return label[:1].lower() + label[1:]


class TaskStatus(_NamedValue):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def parse(cls, text):
        """Return the status stored as ``text``, or None if there is none."""
        return _lookup(cls, text)


class Priority(_NamedValue):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, text):
        """Return the priority stored as ``text``, or None if there is none."""
        return _lookup(cls, text)


class RecurrencePattern(_NamedValue):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, text):
        """Return the pattern stored as ``text``, or None if there is none."""
        return _lookup(cls, text)


@dataclass
class TodoItem:
    """A single task as stored in the database."""

    id: uuid.UUID
    summary: str
    status: TaskStatus
    priority: Priority
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    project: str | None = None
    tags: list[str] = field(default_factory=list)
    due_date: datetime | None = None
    completed_at: datetime | None = None
    recurrence_pattern: RecurrencePattern | None = None
    recurrence_end: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "summary": self.summary,
            "description": self.description,
            "status": self.status.wire,
            "priority": self.priority.wire,
            "project": self.project,
            "tags": list(self.tags),
            "dueDate": _format_utc(self.due_date),
            "createdAt": _format_utc(self.created_at),
            "updatedAt": _format_utc(self.updated_at),
            "completedAt": _format_utc(self.completed_at),
            "recurrencePattern": (
                self.recurrence_pattern.wire if self.recurrence_pattern else None
            ),
            "recurrenceEnd": _format_utc(self.recurrence_end),
        }


@dataclass
class DuplicateCandidate:
    """An existing task whose summary resembles a new one."""

    id: uuid.UUID
    summary: str
    similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {"id": str(self.id), "summary": self.summary, "similarity": self.similarity}


@dataclass
class FtsSearchResult:
    """One hit of a full-text search."""

    id: uuid.UUID
    summary: str
    project: str | None
    score: float
    snippet: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "summary": self.summary,
            "project": self.project,
            "score": self.score,
            "snippet": self.snippet,
        }