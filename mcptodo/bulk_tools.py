"""Tools for recurring tasks, batch changes, the trash, the archive and export/import."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Sequence
from datetime import datetime, timezone

from . import exchange, lifecycle
from .models import Priority, RecurrencePattern
from .natural_date import format_relative_time
from .task_tools import _resolve_date, _stamp

_VALID_PATTERNS = tuple(pattern.value for pattern in RecurrencePattern)
_PRIORITY_ICONS = {Priority.HIGH: "🔴", Priority.MEDIUM: "🟡", Priority.LOW: "🟢"}
_SHOWN_IDS = 10
_MISSING_FILTER = (
    "❌ Must provide either 'ids' or at least one filter (status, project, tags)."
)
_NO_MATCH = "No tasks matched the criteria."


def _day(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d")


def _pattern_label(pattern: RecurrencePattern | None) -> str:
    return pattern.label if pattern is not None else "unknown"


def _id_lines(result: lifecycle.BatchResult) -> list[str]:
    if result.affected_count <= _SHOWN_IDS:
        return [f"  - {task_id}" for task_id in result.affected_ids]
    lines = [f"(Showing first {_SHOWN_IDS} of {result.affected_count} tasks)"]
    lines.extend(f"  - {task_id}" for task_id in result.affected_ids[:_SHOWN_IDS])
    return lines


def create_recurring_task(
    conn: sqlite3.Connection,
    summary: str,
    recurrence: str,
    description: str | None = None,
    priority: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
    due_date: str | None = None,
    recurrence_end: str | None = None,
) -> str:
    """Create a recurring task template; dates may be natural phrases."""
    pattern = recurrence.lower()
    if pattern not in _VALID_PATTERNS:
        return (
            f"❌ Invalid recurrence pattern: '{recurrence}'. "
            f"Valid options: {', '.join(_VALID_PATTERNS)}"
        )

    task = lifecycle.create_recurring_task(
        conn,
        summary,
        pattern,
        description=description,
        priority=priority,
        project=project,
        tags=tags,
        due_date=_resolve_date(due_date),
        recurrence_end=_resolve_date(recurrence_end),
    )

    lines = [
        f"🔄 Recurring task created: {task.summary}",
        "",
        f"ID: {task.id}",
        f"Pattern: {_pattern_label(task.recurrence_pattern)}",
        f"Priority: {task.priority.label}",
    ]
    if task.project is not None:
        lines.append(f"Project: {task.project}")
    if task.due_date is not None:
        lines.append(
            f"Next due: {_stamp(task.due_date)} ({format_relative_time(task.due_date)})"
        )
    if task.recurrence_end is not None:
        lines.append(f"Ends: {_stamp(task.recurrence_end)}")
    lines.append("")
    lines.append(
        "💡 When you complete this task, a new instance will be created automatically."
    )
    return "\n".join(lines)


def list_recurring_tasks(
    conn: sqlite3.Connection, generate_instances: bool | None = None
) -> str:
    """List recurring templates, first generating today's instances if asked to."""
    new_instances = lifecycle.process_recurring_tasks(conn) if generate_instances else []
    recurring = lifecycle.get_recurring_tasks(conn)

    lines: list[str] = []
    if new_instances:
        lines.append(f"✅ Generated {len(new_instances)} new instance(s):\n")
        for task in new_instances:
            lines.append(f"  - {task.summary}")
            if task.due_date is not None:
                lines.append(
                    f"    Due: {_day(task.due_date)} ({format_relative_time(task.due_date)})"
                )
        lines.append("")

    if not recurring:
        lines.append("No recurring tasks configured.")
    else:
        lines.append(f"🔄 {len(recurring)} recurring task(s):\n")
        for task in recurring:
            lines.append(
                f"{_PRIORITY_ICONS[task.priority]} {task.summary} "
                f"({_pattern_label(task.recurrence_pattern)})"
            )
            if task.project is not None:
                lines.append(f"   Project: {task.project}")
            if task.due_date is not None:
                lines.append(
                    f"   Next due: {_day(task.due_date)} "
                    f"({format_relative_time(task.due_date)})"
                )
            if task.recurrence_end is not None:
                lines.append(f"   Ends: {_day(task.recurrence_end)}")
            lines.append("")
    return "\n".join(lines)


def batch_complete(
    conn: sqlite3.Connection,
    ids: Sequence[str] | None = None,
    status: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
) -> str:
    """Complete tasks by id or by filter."""
    if ids is None and status is None and project is None and tags is None:
        return _MISSING_FILTER
    result = lifecycle.batch_complete_tasks(
        conn, ids=ids, status=status, project=project, tags=tags
    )
    if result.affected_count == 0:
        return _NO_MATCH
    how = "by ID" if ids is not None else "by filter"
    lines = [f"✅ {result.affected_count} task(s) completed {how}", ""]
    lines.extend(_id_lines(result))
    return "\n".join(lines)


def batch_delete(
    conn: sqlite3.Connection,
    ids: Sequence[str] | None = None,
    status: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
) -> str:
    """Move tasks to the trash by id or by filter."""
    if ids is None and status is None and project is None and tags is None:
        return _MISSING_FILTER
    result = lifecycle.batch_delete_tasks(
        conn, ids=ids, status=status, project=project, tags=tags
    )
    if result.affected_count == 0:
        return _NO_MATCH
    how = "by ID" if ids is not None else "by filter"
    lines = [f"🗑️ {result.affected_count} task(s) deleted {how}", ""]
    lines.extend(_id_lines(result))
    return "\n".join(lines)


def undo_delete(conn: sqlite3.Connection, task_id: str) -> str:
    """Restore a task from the trash."""
    task = lifecycle.undo_delete(conn, task_id)
    project = task.project if task.project is not None else "none"
    return (
        f"♻️ Task restored: {task.summary}\n\nID: {task.id}\n"
        f"Status: {task.status.label}\nProject: {project}"
    )


def purge_deleted(conn: sqlite3.Connection, ids: Sequence[str] | None = None) -> str:
    """Permanently remove trashed tasks, the given ones or all."""
    result = lifecycle.purge_deleted(conn, ids)
    if result.affected_count == 0:
        return "No deleted tasks to purge."
    if ids is not None:
        scope = f"{result.affected_count} task(s) permanently deleted by ID"
    else:
        scope = f"{result.affected_count} deleted task(s) permanently purged"
    lines = [f"🗑️ {scope}"]
    lines.extend(_id_lines(result))
    lines.append("")
    lines.append("⚠️ This action cannot be undone.")
    return "\n".join(lines)


def export_tasks(
    conn: sqlite3.Connection,
    include_deleted: bool | None = None,
    status: str | None = None,
    project: str | None = None,
    tags: Sequence[str] | None = None,
) -> str:
    """Export matching tasks as a pretty-printed JSON document."""
    data = exchange.export_tasks(
        conn,
        include_deleted=bool(include_deleted),
        status=status,
        project=project,
        tags=tags,
    )
    document = json.dumps(data.to_dict(), indent=2, ensure_ascii=False)
    deleted_info = " (including deleted)" if include_deleted else ""
    return (
        f"📦 Exported {len(data.tasks)} task(s){deleted_info}:\n\n"
        f"```json\n{document}\n```"
    )


def import_tasks(
    conn: sqlite3.Connection, data: str, skip_duplicates: bool | None = None
) -> str:
    """Import an export document and report what happened."""
    skip = True if skip_duplicates is None else skip_duplicates
    result = exchange.import_tasks(conn, data, skip)

    lines = [
        "📥 Import complete:",
        "",
        f"✅ Imported: {result.imported}",
        f"⏭️ Skipped (duplicates): {result.skipped}",
    ]
    if result.errors:
        lines.append("")
        lines.append(f"❌ Errors ({len(result.errors)}):")
        lines.extend(f"  - {error}" for error in result.errors)
    if result.imported > 0 or result.skipped > 0:
        lines.append("")
        lines.append(f"Total processed: {result.imported + result.skipped}")
    return "\n".join(lines)


def archive_task(conn: sqlite3.Connection, task_id: str) -> str:
    """Hide a task from normal lists."""
    lifecycle.archive_task(conn, task_id)
    return (
        "📦 Task archived. Use 'unarchive_task' to restore or "
        "'list_archived' to view archived tasks."
    )


def unarchive_task(conn: sqlite3.Connection, task_id: str) -> str:
    """Bring an archived task back to normal lists."""
    lifecycle.unarchive_task(conn, task_id)
    return "♻️ Task restored from archive. It is now visible in normal task lists."