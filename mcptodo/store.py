"""Storage of tasks in SQLite: creation, updates, queries, statistics and search."""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Any

from .models import (
    DuplicateCandidate,
    FtsSearchResult,
    Priority,
    RecurrencePattern,
    TaskStatus,
    TodoItem,
)
from .natural_date import _parse_rfc3339
from .similarity import calculate_similarity

_BASE_COLUMNS = (
    "t.id, t.summary, t.description, t.status, t.priority, t.project, "
    "t.due_date, t.created_at, t.updated_at, t.completed_at"
)
_FULL_COLUMNS = _BASE_COLUMNS + ", t.recurrence_pattern, t.recurrence_end"


class TaskNotFoundError(LookupError):
    """No task has the requested id."""


@dataclass
class TaskStats:
    """Counts describing the current state of the task list."""

    total: int
    todo_count: int
    in_progress_count: int
    done_count: int
    overdue_count: int
    due_today_count: int
    due_this_week_count: int
    completed_today: int
    completed_this_week: int
    high_priority_count: int
    projects: list[tuple[str, int]] = field(default_factory=list)


def parse_rfc3339(text: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime; raise ValueError if invalid."""
    moment = _parse_rfc3339(text) if isinstance(text, str) else None
    if moment is None:
        raise ValueError(f"invalid RFC 3339 timestamp: {text!r}")
    return moment


def format_rfc3339(dt: datetime) -> str:
    """Render ``dt`` in UTC as RFC 3339 with a '+00:00' offset and only the digits needed."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    text = dt.strftime("%Y-%m-%dT%H:%M:%S")
    micros = dt.microsecond
    if micros:
        if micros % 1000 == 0:
            text += f".{micros // 1000:03d}"
        else:
            text += f".{micros:06d}"
    return text + "+00:00"


def connect(path: str) -> sqlite3.Connection:
    """Open (creating if needed) the database at ``path`` in WAL mode."""
    conn = sqlite3.connect(path, timeout=5.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _rows(conn: sqlite3.Connection, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
    cursor = conn.cursor()
    cursor.row_factory = sqlite3.Row
    cursor.execute(sql, tuple(params))
    return cursor.fetchall()


def _optional_time(value: str | None) -> datetime | None:
    return parse_rfc3339(value) if value is not None else None


def _normalize_time(value: str | None) -> str | None:
    return format_rfc3339(parse_rfc3339(value)) if value is not None else None


def _tags_for(conn: sqlite3.Connection, task_id: str) -> list[str]:
    rows = conn.execute("SELECT name FROM tags WHERE todo_id = ? ORDER BY id", (task_id,))
    return [row[0] for row in rows]


def _insert_tags(conn: sqlite3.Connection, task_id: str, tags: Iterable[str]) -> None:
    conn.executemany(
        "INSERT INTO tags (todo_id, name) VALUES (?, ?)",
        [(task_id, tag) for tag in tags],
    )


def _row_to_item(conn: sqlite3.Connection, row: sqlite3.Row) -> TodoItem:
    keys = row.keys()
    task_id = row["id"]
    pattern = None
    if "recurrence_pattern" in keys and row["recurrence_pattern"] is not None:
        pattern = RecurrencePattern.parse(row["recurrence_pattern"])
    recurrence_end = None
    if "recurrence_end" in keys:
        recurrence_end = _optional_time(row["recurrence_end"])
    return TodoItem(
        id=uuid.UUID(task_id),
        summary=row["summary"],
        description=row["description"],
        status=TaskStatus.parse(row["status"]) or TaskStatus.TODO,
        priority=Priority.parse(row["priority"]) or Priority.MEDIUM,
        project=row["project"],
        tags=_tags_for(conn, task_id),
        due_date=_optional_time(row["due_date"]),
        created_at=parse_rfc3339(row["created_at"]),
        updated_at=parse_rfc3339(row["updated_at"]),
        completed_at=_optional_time(row["completed_at"]),
        recurrence_pattern=pattern,
        recurrence_end=recurrence_end,
    )


def _select_tasks(
    conn: sqlite3.Connection, sql: str, params: Sequence[Any] = ()
) -> list[TodoItem]:
    return [_row_to_item(conn, row) for row in _rows(conn, sql, params)]


def create_task(
    conn: sqlite3.Connection,
    summary: str,
    description: str | None = None,
    priority: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
    due_date: str | None = None,
) -> TodoItem:
    """Insert a new task with status 'todo' and return it."""
    task_id = str(uuid.uuid4())
    now = format_rfc3339(_now())
    level = (Priority.parse(priority) if priority is not None else None) or Priority.MEDIUM
    due = _normalize_time(due_date)

    with conn:
        conn.execute(
            "INSERT INTO todo_items (id, summary, description, status, priority, project,"
            " due_date, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (task_id, summary, description, TaskStatus.TODO.value, level.value,
             project, due, now, now),
        )
        if tags is not None:
            _insert_tags(conn, task_id, tags)

    return get_task(conn, task_id)


def update_task(
    conn: sqlite3.Connection,
    task_id: str,
    summary: str | None = None,
    description: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
    due_date: str | None = None,
) -> TodoItem:
    """Change the given fields of a task; fields left as None keep their value."""
    canonical = str(uuid.UUID(task_id))
    now = _now()
    existing = get_task(conn, task_id)

    new_summary = summary if summary is not None else existing.summary
    new_description = description if description is not None else existing.description
    new_status = (TaskStatus.parse(status) if status is not None else None) or existing.status
    new_priority = (
        (Priority.parse(priority) if priority is not None else None) or existing.priority
    )
    new_project = project if project is not None else existing.project
    new_due = parse_rfc3339(due_date) if due_date is not None else existing.due_date

    if new_status is TaskStatus.DONE and existing.status is not TaskStatus.DONE:
        completed_at = now
    elif new_status is not TaskStatus.DONE:
        completed_at = None
    else:
        completed_at = existing.completed_at

    with conn:
        conn.execute(
            "UPDATE todo_items SET summary = ?, description = ?, status = ?, priority = ?,"
            " project = ?, due_date = ?, updated_at = ?, completed_at = ? WHERE id = ?",
            (
                new_summary,
                new_description,
                new_status.value,
                new_priority.value,
                new_project,
                format_rfc3339(new_due) if new_due is not None else None,
                format_rfc3339(now),
                format_rfc3339(completed_at) if completed_at is not None else None,
                canonical,
            ),
        )
        if tags is not None:
            conn.execute("DELETE FROM tags WHERE todo_id = ?", (canonical,))
            _insert_tags(conn, canonical, tags)

    return get_task(conn, canonical)


def delete_task(conn: sqlite3.Connection, task_id: str) -> None:
    """Move a task to the trash."""
    soft_delete_task(conn, task_id)


def soft_delete_task(conn: sqlite3.Connection, task_id: str) -> None:
    """Mark a task as deleted without removing it."""
    now = format_rfc3339(_now())
    with conn:
        conn.execute(
            "UPDATE todo_items SET is_deleted = 1, deleted_at = ?, updated_at = ? WHERE id = ?",
            (now, now, task_id),
        )


def get_task(conn: sqlite3.Connection, task_id: str) -> TodoItem:
    """Return the task with ``task_id``, deleted or archived ones included."""
    rows = _rows(conn, f"SELECT {_FULL_COLUMNS} FROM todo_items t WHERE t.id = ?", (task_id,))
    if not rows:
        raise TaskNotFoundError(f"no task with id {task_id}")
    return _row_to_item(conn, rows[0])


def list_tasks(
    conn: sqlite3.Connection,
    status: str | None = None,
    priority: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
    due_before: str | None = None,
    due_after: str | None = None,
    created_before: str | None = None,
    created_after: str | None = None,
    completed_before: str | None = None,
    completed_after: str | None = None,
    search: str | None = None,
    limit: int | None = None,
    include_archived: bool = False,
) -> list[TodoItem]:
    """Return live tasks matching every given filter, newest first."""
    clauses = ["t.is_deleted = 0"]
    if not include_archived:
        clauses.append("t.is_archived = 0")
    params: list[Any] = []

    for column, value in (("status", status), ("priority", priority), ("project", project)):
        if value is not None:
            clauses.append(f"t.{column} = ?")
            params.append(value)
    if tags:
        placeholders = ", ".join("?" for _ in tags)
        clauses.append(f"t.id IN (SELECT todo_id FROM tags WHERE name IN ({placeholders}))")
        params.extend(tags)
    for column, operator, value in (
        ("due_date", "<=", due_before),
        ("due_date", ">=", due_after),
        ("created_at", "<=", created_before),
        ("created_at", ">=", created_after),
        ("completed_at", "<=", completed_before),
        ("completed_at", ">=", completed_after),
    ):
        if value is not None:
            clauses.append(f"t.{column} {operator} ?")
            params.append(_normalize_time(value))
    if search is not None:
        clauses.append("(t.summary LIKE ? OR t.description LIKE ?)")
        pattern = f"%{search}%"
        params.extend((pattern, pattern))

    sql = (
        f"SELECT {_BASE_COLUMNS} FROM todo_items t WHERE {' AND '.join(clauses)}"
        " ORDER BY t.created_at DESC"
    )
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    return _select_tasks(conn, sql, params)


def find_similar_tasks(
    conn: sqlite3.Connection, summary: str, threshold: float
) -> list[DuplicateCandidate]:
    """Open tasks whose summary is at least ``threshold`` similar to ``summary``."""
    rows = conn.execute(
        "SELECT id, summary FROM todo_items WHERE status != 'done' AND is_deleted = 0"
    ).fetchall()
    candidates = []
    for task_id, existing in rows:
        score = calculate_similarity(summary, existing)
        if score < threshold:
            continue
        try:
            parsed = uuid.UUID(task_id)
        except ValueError:
            continue
        candidates.append(DuplicateCandidate(id=parsed, summary=existing, similarity=score))
    return candidates


def complete_task(conn: sqlite3.Connection, task_id: str) -> TodoItem:
    """Mark a task done now and return it."""
    now = format_rfc3339(_now())
    with conn:
        conn.execute(
            "UPDATE todo_items SET status = 'done', updated_at = ?, completed_at = ? WHERE id = ?",
            (now, now, task_id),
        )
    return get_task(conn, task_id)


def get_overdue_tasks(conn: sqlite3.Connection) -> list[TodoItem]:
    """Live, unfinished tasks whose due date has passed, earliest first."""
    return _select_tasks(
        conn,
        f"SELECT {_BASE_COLUMNS} FROM todo_items t WHERE t.is_deleted = 0"
        " AND t.due_date IS NOT NULL AND t.due_date < ? AND t.status != 'done'"
        " ORDER BY t.due_date ASC",
        (format_rfc3339(_now()),),
    )


def _count(conn: sqlite3.Connection, sql: str, params: Sequence[Any] = ()) -> int:
    return int(conn.execute(sql, tuple(params)).fetchone()[0])


def get_task_stats(conn: sqlite3.Connection) -> TaskStats:
    """Totals by status, due and completion counts for today and this week, and projects."""
    now = _now()
    today = now.date()
    weekday = today.weekday()

    def at(day, hour, minute=0, second=0):
        return format_rfc3339(datetime.combine(day, time(hour, minute, second), tzinfo=timezone.utc))

    today_start = at(today, 0)
    today_end = at(today, 23, 59, 59)
    week_start = at(today - timedelta(days=weekday), 0)
    week_end = at(today + timedelta(days=7 - weekday), 23, 59, 59)
    now_text = format_rfc3339(now)

    due_between = (
        "SELECT COUNT(*) FROM todo_items WHERE due_date >= ? AND due_date <= ?"
        " AND status != 'done'"
    )
    completed_between = (
        "SELECT COUNT(*) FROM todo_items WHERE completed_at >= ? AND completed_at <= ?"
    )
    by_status = "SELECT COUNT(*) FROM todo_items WHERE status = ? AND is_deleted = 0"

    projects = [
        (row[0], int(row[1]))
        for row in conn.execute(
            "SELECT project, COUNT(*) AS count FROM todo_items WHERE project IS NOT NULL"
            " AND is_deleted = 0 AND status != 'done' GROUP BY project ORDER BY count DESC"
        )
    ]

    return TaskStats(
        total=_count(conn, "SELECT COUNT(*) FROM todo_items WHERE is_deleted = 0"),
        todo_count=_count(conn, by_status, ("todo",)),
        in_progress_count=_count(conn, by_status, ("in_progress",)),
        done_count=_count(conn, by_status, ("done",)),
        overdue_count=_count(
            conn,
            "SELECT COUNT(*) FROM todo_items WHERE due_date IS NOT NULL AND due_date < ?"
            " AND status != 'done'",
            (now_text,),
        ),
        due_today_count=_count(conn, due_between, (today_start, today_end)),
        due_this_week_count=_count(conn, due_between, (week_start, week_end)),
        completed_today=_count(conn, completed_between, (today_start, today_end)),
        completed_this_week=_count(conn, completed_between, (week_start, week_end)),
        high_priority_count=_count(
            conn,
            "SELECT COUNT(*) FROM todo_items WHERE priority = 'high' AND status != 'done'",
        ),
        projects=projects,
    )


def search_tasks_fts(
    conn: sqlite3.Connection, query: str, limit: int
) -> list[FtsSearchResult]:
    """Full-text search over summary, description, project and tags, best match first."""
    rows = _rows(
        conn,
        "SELECT f.todo_id, f.summary, f.project, rank FROM todo_fts f"
        " WHERE todo_fts MATCH ? ORDER BY rank LIMIT ?",
        (query, limit),
    )
    results = []
    for row in rows:
        task_id = row["todo_id"]
        summary = row["summary"]
        rank = float(row["rank"])
        snippet_row = conn.execute(
            "SELECT snippet(todo_fts, 1, '<b>', '</b>', '...', 20) AS snippet"
            " FROM todo_fts WHERE todo_fts MATCH ? AND todo_id = ?",
            (query, task_id),
        ).fetchone()
        snippet = snippet_row[0] if snippet_row is not None and snippet_row[0] is not None else summary
        results.append(
            FtsSearchResult(
                id=uuid.UUID(task_id),
                summary=summary,
                project=row["project"],
                score=min(1.0 / (1.0 + abs(rank)), 1.0),
                snippet=snippet,
            )
        )
    return results