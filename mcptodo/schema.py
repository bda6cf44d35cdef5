"""Database schema: tables, full-text index, triggers and indexes."""

from __future__ import annotations

import sqlite3

_TEXT = "TEXT"
_REQUIRED_TEXT = "TEXT NOT NULL"
_FLAG = "INTEGER NOT NULL DEFAULT 0"

_ITEM_COLUMNS: dict[str, str] = {
    "id": "TEXT PRIMARY KEY",
    "summary": _REQUIRED_TEXT,
    "description": _TEXT,
    "status": "TEXT NOT NULL DEFAULT 'todo'",
    "priority": "TEXT NOT NULL DEFAULT 'medium'",
    "project": _TEXT,
    "due_date": _TEXT,
    "created_at": _REQUIRED_TEXT,
    "updated_at": _REQUIRED_TEXT,
    "completed_at": _TEXT,
    "recurrence_pattern": _TEXT,
    "recurrence_end": _TEXT,
    "is_deleted": _FLAG,
    "deleted_at": _TEXT,
    "is_archived": _FLAG,
    "archived_at": _TEXT,
}

# Columns added after the first release; older databases gain them on start-up.
_LATE_COLUMNS = ("is_archived", "archived_at")

_TAG_COLUMNS: dict[str, str] = {
    "id": "INTEGER PRIMARY KEY AUTOINCREMENT",
    "todo_id": _REQUIRED_TEXT,
    "name": _REQUIRED_TEXT,
}

_FTS_TEXT_COLUMNS = ("summary", "description", "project", "tags")

_INDEXES = (
    ("idx_todo_status", "todo_items", "status"),
    ("idx_todo_priority", "todo_items", "priority"),
    ("idx_todo_project", "todo_items", "project"),
    ("idx_todo_due_date", "todo_items", "due_date"),
    ("idx_todo_recurrence", "todo_items", "recurrence_pattern"),
    ("idx_todo_deleted", "todo_items", "is_deleted"),
    ("idx_todo_archived", "todo_items", "is_archived"),
    ("idx_tags_todo_id", "tags", "todo_id"),
    ("idx_tags_name", "tags", "name"),
)


def _column_list(columns: dict[str, str]) -> str:
    return ", ".join(f"{name} {kind}" for name, kind in columns.items())


def _joined_tags(ref: str) -> str:
    """Space-separated tag names of the task ``ref``, or an empty string."""
    return (
        "COALESCE((SELECT GROUP_CONCAT(name, ' ') "
        f"FROM tags WHERE todo_id = {ref}), '')"
    )


def _index_new_row() -> str:
    targets = ", ".join(("todo_id",) + _FTS_TEXT_COLUMNS)
    values = ", ".join(
        ["new.id"] + [f"new.{col}" for col in _FTS_TEXT_COLUMNS[:-1]] + [_joined_tags("new.id")]
    )
    return f"INSERT INTO todo_fts({targets}) VALUES ({values});"


def _drop_indexed_row(ref: str) -> str:
    return f"DELETE FROM todo_fts WHERE todo_id = {ref};"


def _refresh_tags(ref: str) -> str:
    return f"UPDATE todo_fts SET tags = {_joined_tags(ref)} WHERE todo_id = {ref};"


def _trigger(name: str, event: str, table: str, *body: str) -> str:
    return (
        f"CREATE TRIGGER IF NOT EXISTS {name} AFTER {event} ON {table} "
        f"BEGIN {' '.join(body)} END"
    )


def _statements() -> list[str]:
    fts_columns = ", ".join(("todo_id UNINDEXED",) + _FTS_TEXT_COLUMNS)
    tag_table = (
        f"CREATE TABLE IF NOT EXISTS tags ({_column_list(_TAG_COLUMNS)}, "
        "FOREIGN KEY (todo_id) REFERENCES todo_items(id) ON DELETE CASCADE)"
    )
    statements = [
        tag_table,
        f"CREATE VIRTUAL TABLE IF NOT EXISTS todo_fts USING fts5({fts_columns})",
        _trigger("todo_items_ai", "INSERT", "todo_items", _index_new_row()),
        _trigger("todo_items_ad", "DELETE", "todo_items", _drop_indexed_row("old.id")),
        _trigger(
            "todo_items_au",
            "UPDATE",
            "todo_items",
            _drop_indexed_row("old.id"),
            _index_new_row(),
        ),
        _trigger("tags_ai", "INSERT", "tags", _refresh_tags("new.todo_id")),
        _trigger("tags_ad", "DELETE", "tags", _refresh_tags("old.todo_id")),
    ]
    statements.extend(
        f"CREATE INDEX IF NOT EXISTS {name} ON {table}({column})"
        for name, table, column in _INDEXES
    )
    return statements


def init_db(conn: sqlite3.Connection) -> None:
    """Create every table, trigger and index that is missing; safe to run repeatedly."""
    conn.execute(f"CREATE TABLE IF NOT EXISTS todo_items ({_column_list(_ITEM_COLUMNS)})")
    for column in _LATE_COLUMNS:
        try:
            conn.execute(
                f"ALTER TABLE todo_items ADD COLUMN {column} {_ITEM_COLUMNS[column]}"
            )
        except sqlite3.OperationalError:
            pass  # column already present
    for statement in _statements():
        conn.execute(statement)
    conn.commit()