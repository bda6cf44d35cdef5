"""Tools that report on tasks: overdue items, statistics, search, the archive and the trash."""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence

from . import lifecycle, store
from .models import FtsSearchResult, Priority, TaskStatus, TodoItem
from .natural_date import format_relative_time
from .task_tools import _stamp

_DEFAULT_SEARCH_LIMIT = 20

_PRIORITY_ICONS = {Priority.HIGH: "🔴", Priority.MEDIUM: "🟡", Priority.LOW: "🟢"}
_ARCHIVE_STATUS_ICONS = {
    TaskStatus.TODO: "📋",
    TaskStatus.IN_PROGRESS: "🔄",
    TaskStatus.DONE: "✅",
}


def _format_overdue(tasks: Sequence[TodoItem]) -> str:
    lines = [f"⚠️ {len(tasks)} overdue task(s):\n"]
    for task in tasks:
        overdue = (
            format_relative_time(task.due_date) if task.due_date is not None else "unknown"
        )
        lines.append(f"{_PRIORITY_ICONS[task.priority]} {task.summary} (was due: {overdue})")
        if task.project is not None:
            lines.append(f"   Project: {task.project}")
        if task.due_date is not None:
            lines.append(f"   Due date: {_stamp(task.due_date)}")
        lines.append("")
    return "\n".join(lines)


def overdue_tasks(conn: sqlite3.Connection) -> str:
    """List unfinished tasks whose due date has passed."""
    tasks = store.get_overdue_tasks(conn)
    if not tasks:
        return "🎉 No overdue tasks! You're all caught up."
    return _format_overdue(tasks)


def _format_stats(stats: store.TaskStats) -> str:
    lines = ["📊 Task Statistics\n", "**Overview**"]
    lines.append(f"Total tasks: {stats.total}")
    lines.append(
        f"Todo: {stats.todo_count} | In Progress: {stats.in_progress_count} "
        f"| Done: {stats.done_count}"
    )
    lines.append("")

    if stats.total > 0:
        completion_rate = stats.done_count / stats.total * 100.0
        lines.append(f"Completion rate: {completion_rate:.1f}%")
        lines.append("")

    lines.append("**Urgent**")
    if stats.overdue_count > 0:
        lines.append(f"⚠️ Overdue: {stats.overdue_count}")
    else:
        lines.append("✅ No overdue tasks")
    lines.append(f"Due today: {stats.due_today_count}")
    lines.append(f"Due this week: {stats.due_this_week_count}")
    if stats.high_priority_count > 0:
        lines.append(f"High priority (active): {stats.high_priority_count}")
    lines.append("")

    lines.append("**Completed**")
    lines.append(f"Completed today: {stats.completed_today}")
    lines.append(f"Completed this week: {stats.completed_this_week}")
    lines.append("")

    if stats.projects:
        lines.append("**By Project**")
        lines.extend(f"  {project}: {count} active tasks" for project, count in stats.projects)

    return "\n".join(lines)


def task_stats(conn: sqlite3.Connection) -> str:
    """Summarise totals, urgency, completions and the project breakdown."""
    return _format_stats(store.get_task_stats(conn))


def _format_search_results(results: Sequence[FtsSearchResult], query: str) -> str:
    lines = [f'🔍 Found {len(results)} result(s) for "{query}":\n']
    for position, result in enumerate(results, start=1):
        if result.score > 0.8:
            relevance = "🟢"
        elif result.score > 0.5:
            relevance = "🟡"
        else:
            relevance = "🔴"
        lines.append(f"{relevance} {position}. {result.summary} (ID: {result.id})")
        if result.project is not None:
            lines.append(f"   Project: {result.project}")
        lines.append(f"   Relevance: {result.score * 100.0:.0f}%")
        lines.append(f"   Context: {result.snippet}")
        lines.append("")
    return "\n".join(lines)


def search_tasks(conn: sqlite3.Connection, query: str, limit: int | None = None) -> str:
    """Full-text search over summary, description, project and tags."""
    results = store.search_tasks_fts(
        conn, query, limit if limit is not None else _DEFAULT_SEARCH_LIMIT
    )
    if not results:
        return f'No tasks found for query: "{query}"'
    return _format_search_results(results, query)


def list_archived(conn: sqlite3.Connection) -> str:
    """List archived tasks, one line each."""
    tasks = lifecycle.list_archived(conn)
    if not tasks:
        return "📭 No archived tasks."

    lines = [f"📦 Archived tasks ({len(tasks)}):", ""]
    for task in tasks:
        line = (
            f"{_ARCHIVE_STATUS_ICONS[task.status]} {_PRIORITY_ICONS[task.priority]} "
            f"{task.summary} ({task.id})"
        )
        if task.project is not None:
            line += f" | 📁 {task.project}"
        if task.tags:
            line += f" | 🏷️ {', '.join(task.tags)}"
        if task.due_date is not None:
            line += f" | 📅 {task.due_date.strftime('%Y-%m-%d')}"
        lines.append(line)
    return "\n".join(lines)


def _format_deleted(tasks: Sequence[TodoItem]) -> str:
    lines = [f"🗑️ {len(tasks)} deleted task(s) in trash:\n"]
    for task in tasks:
        lines.append(f"{_PRIORITY_ICONS[task.priority]} {task.summary} (ID: {task.id})")
        lines.append(f"   Deleted at: {_stamp(task.updated_at)}")
        if task.project is not None:
            lines.append(f"   Project: {task.project}")
        lines.append("")
    lines.append("Use 'undo_delete' to restore or 'purge_deleted' to permanently delete.")
    return "\n".join(lines)


def list_deleted(conn: sqlite3.Connection) -> str:
    """List the tasks in the trash."""
    tasks = lifecycle.list_deleted(conn)
    if not tasks:
        return "🗑️ Trash is empty."
    return _format_deleted(tasks)