"""Batch changes, recurring tasks, the trash and the archive."""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .models import Priority, RecurrencePattern, TaskStatus, TodoItem
from .store import (
    _BASE_COLUMNS,
    _FULL_COLUMNS,
    TaskNotFoundError,
    _insert_tags,
    _normalize_time,
    _now,
    _rows,
    _select_tasks,
    _tags_for,
    format_rfc3339,
    get_task,
    parse_rfc3339,
)

_RECURRENCE_STEP = {
    RecurrencePattern.DAILY: timedelta(days=1),
    RecurrencePattern.WEEKLY: timedelta(weeks=1),
    RecurrencePattern.BIWEEKLY: timedelta(weeks=2),
    RecurrencePattern.MONTHLY: timedelta(days=30),
    RecurrencePattern.YEARLY: timedelta(days=365),
}


@dataclass
class BatchResult:
    """How many rows a batch operation changed and which ids it targeted."""

    affected_count: int = 0
    affected_ids: list[str] = field(default_factory=list)


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _filtered_ids(
    conn: sqlite3.Connection,
    base_clauses: Sequence[str],
    status: str | None,
    project: str | None,
    tags: Sequence[str] | None,
) -> list[str]:
    clauses = list(base_clauses)
    params: list[Any] = []
    if status is not None:
        clauses.append("status = ?")
        params.append(status)
    if project is not None:
        clauses.append("project = ?")
        params.append(project)
    if tags:
        clauses.append(
            f"id IN (SELECT todo_id FROM tags WHERE name IN ({_placeholders(tags)}))"
        )
        params.extend(tags)
    sql = f"SELECT id FROM todo_items WHERE {' AND '.join(clauses)}"
    return [row[0] for row in conn.execute(sql, params)]


def _update_ids(conn: sqlite3.Connection, sql_head: str, stamps: Sequence[str],
                ids: Sequence[str], extra: str = "") -> int:
    sql = f"{sql_head} WHERE id IN ({_placeholders(ids)}){extra}"
    with conn:
        cursor = conn.execute(sql, (*stamps, *ids))
    return cursor.rowcount


def batch_complete_tasks(
    conn: sqlite3.Connection,
    ids: Sequence[str] | None = None,
    status: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
) -> BatchResult:
    """Mark tasks done, either those in ``ids`` or the open live tasks matching the filters."""
    now = format_rfc3339(_now())
    head = "UPDATE todo_items SET status = 'done', updated_at = ?, completed_at = ?"
    if ids is not None:
        targets = list(ids)
    else:
        targets = _filtered_ids(
            conn, ("status != 'done'", "is_deleted = 0"), status, project, tags
        )
    if not targets:
        return BatchResult()
    affected = _update_ids(conn, head, (now, now), targets)
    return BatchResult(affected_count=affected, affected_ids=targets)


def batch_delete_tasks(
    conn: sqlite3.Connection,
    ids: Sequence[str] | None = None,
    status: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
) -> BatchResult:
    """Move tasks to the trash, either those in ``ids`` or the live tasks matching the filters."""
    now = format_rfc3339(_now())
    head = "UPDATE todo_items SET is_deleted = 1, deleted_at = ?, updated_at = ?"
    if ids is not None:
        targets = list(ids)
        if not targets:
            return BatchResult()
        affected = _update_ids(conn, head, (now, now), targets, " AND is_deleted = 0")
    else:
        targets = _filtered_ids(conn, ("is_deleted = 0",), status, project, tags)
        if not targets:
            return BatchResult()
        affected = _update_ids(conn, head, (now, now), targets)
    return BatchResult(affected_count=affected, affected_ids=targets)


def create_recurring_task(
    conn: sqlite3.Connection,
    summary: str,
    recurrence_pattern: str,
    description: str | None = None,
    priority: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
    due_date: str | None = None,
    recurrence_end: str | None = None,
) -> TodoItem:
    """Insert a task template that repeats with ``recurrence_pattern`` and return it."""
    task_id = str(uuid.uuid4())
    now = format_rfc3339(_now())
    level = (Priority.parse(priority) if priority is not None else None) or Priority.MEDIUM
    due = _normalize_time(due_date)
    end = _normalize_time(recurrence_end)

    with conn:
        conn.execute(
            "INSERT INTO todo_items (id, summary, description, status, priority, project,"
            " due_date, created_at, updated_at, recurrence_pattern, recurrence_end)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (task_id, summary, description, TaskStatus.TODO.value, level.value, project,
             due, now, now, recurrence_pattern, end),
        )
        if tags is not None:
            _insert_tags(conn, task_id, tags)

    return get_task(conn, task_id)


def get_recurring_tasks(conn: sqlite3.Connection) -> list[TodoItem]:
    """Live recurring templates, newest first."""
    return _select_tasks(
        conn,
        f"SELECT {_FULL_COLUMNS} FROM todo_items t WHERE t.is_deleted = 0"
        " AND t.recurrence_pattern IS NOT NULL ORDER BY t.created_at DESC",
    )


def delete_recurring_task(conn: sqlite3.Connection, task_id: str) -> None:
    """Remove a recurring template for good; ``task_id`` must be a valid UUID."""
    uuid.UUID(task_id)
    with conn:
        conn.execute(
            "DELETE FROM tags WHERE todo_id IN (SELECT id FROM todo_items"
            " WHERE id = ? AND recurrence_pattern IS NOT NULL)",
            (task_id,),
        )
        conn.execute(
            "DELETE FROM todo_items WHERE id = ? AND recurrence_pattern IS NOT NULL",
            (task_id,),
        )


def _has_instance_since(conn: sqlite3.Connection, summary: str, template_id: str,
                        since: str) -> bool:
    row = conn.execute(
        "SELECT MAX(created_at) FROM todo_items"
        " WHERE summary = ? AND id != ? AND created_at >= ?",
        (summary, template_id, since),
    ).fetchone()
    return row is not None and row[0] is not None


def process_recurring_tasks(conn: sqlite3.Connection) -> list[TodoItem]:
    """Create today's instance of every active recurring template that lacks one."""
    now = _now()
    today_start = format_rfc3339(datetime.combine(now.date(), datetime.min.time(),
                                                  tzinfo=now.tzinfo))
    templates = _rows(
        conn,
        f"SELECT {_FULL_COLUMNS} FROM todo_items t WHERE t.is_deleted = 0"
        " AND t.recurrence_pattern IS NOT NULL AND t.recurrence_pattern != ''",
    )

    created: list[TodoItem] = []
    for row in templates:
        template_id = row["id"]
        summary = row["summary"]

        end_text = row["recurrence_end"]
        if end_text is not None:
            try:
                if parse_rfc3339(end_text) < now:
                    continue
            except ValueError:
                pass

        pattern = RecurrencePattern.parse(row["recurrence_pattern"]) or RecurrencePattern.DAILY

        if _has_instance_since(conn, summary, template_id, today_start):
            continue

        due_text = row["due_date"]
        new_due = None
        if due_text is not None:
            new_due = format_rfc3339(parse_rfc3339(due_text) + _RECURRENCE_STEP[pattern])

        new_id = str(uuid.uuid4())
        tags = _tags_for(conn, template_id)
        stamp = format_rfc3339(now)
        with conn:
            conn.execute(
                "INSERT INTO todo_items (id, summary, description, status, priority, project,"
                " due_date, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (new_id, summary, row["description"], TaskStatus.TODO.value,
                 row["priority"], row["project"], new_due, stamp, stamp),
            )
            _insert_tags(conn, new_id, tags)

        try:
            created.append(get_task(conn, new_id))
        except (TaskNotFoundError, ValueError):
            pass

    return created


def undo_delete(conn: sqlite3.Connection, task_id: str) -> TodoItem:
    """Take a task out of the trash and return it."""
    now = format_rfc3339(_now())
    with conn:
        conn.execute(
            "UPDATE todo_items SET is_deleted = 0, deleted_at = NULL, updated_at = ?"
            " WHERE id = ?",
            (now, task_id),
        )
    return get_task(conn, task_id)


def list_deleted(conn: sqlite3.Connection) -> list[TodoItem]:
    """Tasks in the trash, most recently deleted first."""
    return _select_tasks(
        conn,
        f"SELECT {_FULL_COLUMNS}, t.deleted_at FROM todo_items t WHERE t.is_deleted = 1"
        " ORDER BY t.deleted_at DESC",
    )


def _delete_rows(conn: sqlite3.Connection, ids: Sequence[str], extra: str) -> int:
    marks = _placeholders(ids)
    with conn:
        conn.execute(
            f"DELETE FROM tags WHERE todo_id IN"
            f" (SELECT id FROM todo_items WHERE id IN ({marks}){extra})",
            tuple(ids),
        )
        cursor = conn.execute(
            f"DELETE FROM todo_items WHERE id IN ({marks}){extra}", tuple(ids)
        )
    return cursor.rowcount


def purge_deleted(conn: sqlite3.Connection, ids: Sequence[str] | None = None) -> BatchResult:
    """Remove trashed tasks for good: those in ``ids``, or all of them."""
    if ids is not None:
        targets = list(ids)
        if not targets:
            return BatchResult()
        affected = _delete_rows(conn, targets, " AND is_deleted = 1")
    else:
        targets = [row[0] for row in conn.execute(
            "SELECT id FROM todo_items WHERE is_deleted = 1")]
        if not targets:
            return BatchResult()
        affected = _delete_rows(conn, targets, "")
    return BatchResult(affected_count=affected, affected_ids=targets)


def archive_task(conn: sqlite3.Connection, task_id: str) -> None:
    """Hide a live task from normal lists."""
    now = format_rfc3339(_now())
    with conn:
        cursor = conn.execute(
            "UPDATE todo_items SET is_archived = 1, archived_at = ?, updated_at = ?"
            " WHERE id = ? AND is_deleted = 0 AND is_archived = 0",
            (now, now, task_id),
        )
    if cursor.rowcount == 0:
        raise TaskNotFoundError("Task not found or already archived")


def unarchive_task(conn: sqlite3.Connection, task_id: str) -> None:
    """Return an archived task to normal lists."""
    now = format_rfc3339(_now())
    with conn:
        cursor = conn.execute(
            "UPDATE todo_items SET is_archived = 0, archived_at = NULL, updated_at = ?"
            " WHERE id = ? AND is_archived = 1",
            (now, task_id),
        )
    if cursor.rowcount == 0:
        raise TaskNotFoundError("Task not found or not archived")


def list_archived(conn: sqlite3.Connection) -> list[TodoItem]:
    """Archived tasks, most recently archived first."""
    return _select_tasks(
        conn,
        f"SELECT {_BASE_COLUMNS} FROM todo_items t WHERE t.is_archived = 1"
        " ORDER BY t.archived_at DESC",
    )