"""Tools for creating, changing, reading and listing single tasks."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from datetime import datetime, timezone

from . import store
from .models import DuplicateCandidate, Priority, TaskStatus, TodoItem
from .natural_date import format_relative_time, parse_natural_date

_DUPLICATE_THRESHOLD = 0.7
_DEFAULT_LIMIT = 50

_STATUS_ICONS = {TaskStatus.TODO: "⬜", TaskStatus.IN_PROGRESS: "🔄", TaskStatus.DONE: "✅"}
_PRIORITY_ICONS = {Priority.HIGH: "🔴", Priority.MEDIUM: "🟡", Priority.LOW: "🟢"}


def _stamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M")


def _resolve_date(text: str | None) -> str | None:
    if text is None:
        return None
    parsed = parse_natural_date(text)
    return store.format_rfc3339(parsed) if parsed is not None else text


def _format_duplicates(duplicates: Sequence[DuplicateCandidate]) -> str:
    return "\n".join(
        f"- {d.summary} (similarity: {d.similarity * 100:.0f}%, id: {d.id})" for d in duplicates
    )


def _header_lines(title: str, task: TodoItem) -> list[str]:
    return [
        title,
        "",
        f"ID: {task.id}",
        f"Status: {task.status.label}",
        f"Priority: {task.priority.label}",
    ]


def create_task(
    conn: sqlite3.Connection,
    summary: str,
    description: str | None = None,
    priority: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
    due_date: str | None = None,
) -> str:
    """Create a task unless similar open tasks exist, in which case list them instead."""
    duplicates = store.find_similar_tasks(conn, summary, _DUPLICATE_THRESHOLD)
    if duplicates:
        return (
            f"⚠️ Potential duplicates found:\n{_format_duplicates(duplicates)}\n\n"
            "Do you want to create this task anyway? Reply with the same parameters to confirm."
        )

    task = store.create_task(
        conn,
        summary,
        description=description,
        priority=priority,
        project=project,
        tags=tags,
        due_date=_resolve_date(due_date),
    )

    lines = _header_lines(f"✅ Task created: {task.summary}", task)
    if task.project is not None:
        lines.append(f"Project: {task.project}")
    if task.tags:
        lines.append(f"Tags: {', '.join(task.tags)}")
    if task.due_date is not None:
        lines.append(f"Due: {_stamp(task.due_date)} ({format_relative_time(task.due_date)})")
    return "\n".join(lines)


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
) -> str:
    """Change a task and describe the result."""
    task = store.update_task(
        conn,
        task_id,
        summary=summary,
        description=description,
        status=status,
        priority=priority,
        project=project,
        tags=tags,
        due_date=due_date,
    )
    lines = _header_lines(f"✅ Task updated: {task.summary}", task)
    if task.project is not None:
        lines.append(f"Project: {task.project}")
    if task.tags:
        lines.append(f"Tags: {', '.join(task.tags)}")
    if task.due_date is not None:
        lines.append(f"Due: {_stamp(task.due_date)}")
    if task.completed_at is not None:
        lines.append(f"Completed: {_stamp(task.completed_at)}")
    return "\n".join(lines)


def delete_task(conn: sqlite3.Connection, task_id: str) -> str:
    """Move a task to the trash."""
    store.delete_task(conn, task_id)
    return (
        "🗑️ Task moved to trash. Use 'undo_delete' to restore or "
        "'purge_deleted' to permanently delete."
    )


def get_task(conn: sqlite3.Connection, task_id: str) -> str:
    """Describe one task in full."""
    task = store.get_task(conn, task_id)
    lines = _header_lines(f"📋 {task.summary}", task)
    if task.description is not None:
        lines.append(f"Description: {task.description}")
    if task.project is not None:
        lines.append(f"Project: {task.project}")
    if task.tags:
        lines.append(f"Tags: {', '.join(task.tags)}")
    if task.due_date is not None:
        lines.append(f"Due: {_stamp(task.due_date)}")
    lines.append(f"Created: {_stamp(task.created_at)}")
    if task.completed_at is not None:
        lines.append(f"Completed: {_stamp(task.completed_at)}")
    return "\n".join(lines)


def complete_task(conn: sqlite3.Connection, task_id: str) -> str:
    """Mark a task done and report when."""
    task = store.complete_task(conn, task_id)
    completed = _stamp(task.completed_at) if task.completed_at is not None else "unknown"
    return f"✅ Task completed: {task.summary}\n\nID: {task.id}\nCompleted at: {completed}"


def _format_tasks(tasks: Sequence[TodoItem]) -> str:
    lines = [f"📋 Found {len(tasks)} task(s):\n"]
    for task in tasks:
        lines.append(
            f"{_STATUS_ICONS[task.status]} {_PRIORITY_ICONS[task.priority]} "
            f"{task.summary} (ID: {task.id})"
        )
        if task.project is not None:
            lines.append(f"   Project: {task.project}")
        if task.tags:
            lines.append(f"   Tags: {', '.join(task.tags)}")
        if task.due_date is not None:
            lines.append(
                f"   Due: {_stamp(task.due_date)} ({format_relative_time(task.due_date)})"
            )
        if task.completed_at is not None:
            lines.append(f"   Completed: {_stamp(task.completed_at)}")
        lines.append("")
    return "\n".join(lines)


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
    include_archived: bool | None = None,
) -> str:
    """List tasks matching the filters; dates may be natural phrases."""
    tasks = store.list_tasks(
        conn,
        status=status,
        priority=priority,
        project=project,
        tags=tags,
        due_before=_resolve_date(due_before),
        due_after=_resolve_date(due_after),
        created_before=_resolve_date(created_before),
        created_after=_resolve_date(created_after),
        completed_before=_resolve_date(completed_before),
        completed_after=_resolve_date(completed_after),
        search=search,
        limit=limit if limit is not None else _DEFAULT_LIMIT,
        include_archived=bool(include_archived),
    )
    if not tasks:
        return "No tasks found."
    return _format_tasks(tasks)