"""Export of tasks to a JSON document and import of such documents."""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .store import (
    _now,
    _rows,
    _tags_for,
    find_similar_tasks,
    format_rfc3339,
)

EXPORT_VERSION = "1.0"
_DUPLICATE_THRESHOLD = 0.85

# (JSON key, attribute, may be missing or null)
_TEXT_FIELDS = (
    ("summary", "summary", False),
    ("description", "description", True),
    ("status", "status", False),
    ("priority", "priority", False),
    ("project", "project", True),
    ("dueDate", "due_date", True),
    ("completedAt", "completed_at", True),
    ("recurrencePattern", "recurrence_pattern", True),
    ("recurrenceEnd", "recurrence_end", True),
)
_SKIPPED_WHEN_EMPTY = ("dueDate", "completedAt", "recurrencePattern", "recurrenceEnd")


@dataclass
class ExportTask:
    """A task as it appears in an export document."""

    summary: str
    status: str
    priority: str
    description: str | None = None
    project: str | None = None
    tags: list[str] = field(default_factory=list)
    due_date: str | None = None
    completed_at: str | None = None
    recurrence_pattern: str | None = None
    recurrence_end: str | None = None

    def to_dict(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "summary": self.summary,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "project": self.project,
            "tags": list(self.tags),
        }
        for key, attribute, _ in _TEXT_FIELDS:
            if key in _SKIPPED_WHEN_EMPTY:
                value = getattr(self, attribute)
                if value is not None:
                    document[key] = value
        return document


@dataclass
class ExportData:
    """A whole export document."""

    version: str
    exported_at: str
    tasks: list[ExportTask] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "exportedAt": self.exported_at,
            "tasks": [task.to_dict() for task in self.tasks],
        }


@dataclass
class ImportResult:
    """Outcome of an import: counts and the messages of tasks that failed."""

    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def export_tasks(
    conn: sqlite3.Connection,
    include_deleted: bool = False,
    status: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
) -> ExportData:
    """Collect the matching tasks, oldest first, into an export document."""
    clauses = ["1=1"]
    params: list[Any] = []
    if not include_deleted:
        clauses.append("t.is_deleted = 0")
    if status is not None:
        clauses.append("t.status = ?")
        params.append(status)
    if project is not None:
        clauses.append("t.project = ?")
        params.append(project)
    if tags:
        marks = ", ".join("?" for _ in tags)
        clauses.append(f"t.id IN (SELECT todo_id FROM tags WHERE name IN ({marks}))")
        params.extend(tags)

    sql = (
        "SELECT t.id, t.summary, t.description, t.status, t.priority, t.project,"
        " t.due_date, t.completed_at, t.recurrence_pattern, t.recurrence_end"
        f" FROM todo_items t WHERE {' AND '.join(clauses)} ORDER BY t.created_at ASC"
    )
    tasks = [
        ExportTask(
            summary=row["summary"],
            description=row["description"],
            status=row["status"],
            priority=row["priority"],
            project=row["project"],
            tags=_tags_for(conn, row["id"]),
            due_date=row["due_date"],
            completed_at=row["completed_at"],
            recurrence_pattern=row["recurrence_pattern"],
            recurrence_end=row["recurrence_end"],
        )
        for row in _rows(conn, sql, params)
    ]
    return ExportData(
        version=EXPORT_VERSION, exported_at=format_rfc3339(_now()), tasks=tasks
    )


def _text(document: Mapping[str, Any], key: str, optional: bool) -> str | None:
    if key not in document:
        if optional:
            return None
        raise ValueError(f"missing field `{key}`")
    value = document[key]
    if value is None and optional:
        return None
    if not isinstance(value, str):
        raise ValueError(f"invalid type for field `{key}`: expected a string")
    return value


def _task_from_json(document: Any) -> ExportTask:
    if not isinstance(document, Mapping):
        raise ValueError("invalid type for a task: expected an object")
    values = {attr: _text(document, key, optional) for key, attr, optional in _TEXT_FIELDS}
    if "tags" not in document:
        raise ValueError("missing field `tags`")
    tags = document["tags"]
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise ValueError("invalid type for field `tags`: expected a list of strings")
    return ExportTask(tags=list(tags), **values)


def _data_from_json(text: str) -> ExportData:
    try:
        document = json.loads(text)
        if not isinstance(document, Mapping):
            raise ValueError("expected an object")
        version = _text(document, "version", False)
        exported_at = _text(document, "exportedAt", False)
        if "tasks" not in document:
            raise ValueError("missing field `tasks`")
        raw_tasks = document["tasks"]
        if not isinstance(raw_tasks, list):
            raise ValueError("invalid type for field `tasks`: expected a list")
        tasks = [_task_from_json(item) for item in raw_tasks]
    except ValueError as exc:
        raise ValueError(f"Invalid JSON format: {exc}") from exc
    return ExportData(version=version, exported_at=exported_at, tasks=tasks)


def _import_single_task(conn: sqlite3.Connection, task: ExportTask) -> None:
    task_id = str(uuid.uuid4())
    now = format_rfc3339(_now())
    with conn:
        conn.execute(
            "INSERT INTO todo_items (id, summary, description, status, priority, project,"
            " due_date, created_at, updated_at, completed_at, recurrence_pattern,"
            " recurrence_end) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                task_id, task.summary, task.description, task.status, task.priority,
                task.project, task.due_date, now, now, task.completed_at,
                task.recurrence_pattern, task.recurrence_end,
            ),
        )
        conn.executemany(
            "INSERT INTO tags (todo_id, name) VALUES (?, ?)",
            [(task_id, tag) for tag in task.tags],
        )


def import_tasks(
    conn: sqlite3.Connection, data: str, skip_duplicates: bool = True
) -> ImportResult:
    """Add the tasks of an export document, optionally skipping near-duplicates."""
    export = _data_from_json(data)
    if export.version != EXPORT_VERSION:
        raise ValueError(
            f"Unsupported export version: {export.version}. Expected {EXPORT_VERSION}"
        )

    result = ImportResult()
    for task in export.tasks:
        try:
            duplicates = find_similar_tasks(conn, task.summary, _DUPLICATE_THRESHOLD)
        except sqlite3.Error:
            duplicates = []
        if skip_duplicates and duplicates:
            result.skipped += 1
            continue
        try:
            _import_single_task(conn, task)
        except sqlite3.Error as exc:
            result.errors.append(f"Failed to import '{task.summary}': {exc}")
        else:
            result.imported += 1
    return result