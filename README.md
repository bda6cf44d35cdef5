# mcptodo

A TODO list server that speaks the Model Context Protocol (MCP) over JSON-RPC.
Tasks are kept in a SQLite database. The server offers full-text search,
natural-language due dates, recurring tasks, a trash bin and an archive. When
you create a task whose summary looks like that of an open task you already
have, it lists the likely duplicates instead of adding it.

It needs nothing beyond the Python standard library. Full-text search uses
SQLite's FTS5 extension, which the `sqlite3` module of most Python builds
includes.

## Installation

```
pip install .
```

## Running the server

```
mcptodo
```

The server is set up through environment variables:

| Variable        | Default     | Meaning                                           |
|-----------------|-------------|---------------------------------------------------|
| `TODO_DB_PATH`  | `todo.db`   | Path of the SQLite database file                  |
| `MCP_TRANSPORT` | `stdio`     | `stdio` for JSON-RPC over stdin/stdout, or `http` |
| `MCP_HOST`      | `127.0.0.1` | Address the HTTP transport listens on             |
| `MCP_PORT`      | `3003`      | Port the HTTP transport listens on                |
| `LOG_LEVEL`     | `INFO`      | Level of the log written to stderr                |

An MCP client starts `mcptodo` and exchanges newline-delimited JSON-RPC
messages with it over stdin and stdout. To listen over HTTP instead:

```
MCP_TRANSPORT=http MCP_PORT=3003 mcptodo
```

The database and its tables are created on first start. An unknown transport
name, or a database that cannot be opened, makes `mcptodo` exit with status 1.

## Tools

| Tool                    | What it does                                                     |
|-------------------------|------------------------------------------------------------------|
| `create_task`           | Create a task, or list likely duplicates instead                 |
| `update_task`           | Change the fields of an existing task                            |
| `delete_task`           | Move a task to the trash                                         |
| `get_task`              | Show one task                                                    |
| `list_tasks`            | List tasks, filtered by status, priority, project, tags, dates or text |
| `complete_task`         | Mark a task as done                                              |
| `overdue_tasks`         | List open tasks that are past their due date                     |
| `task_stats`            | Show totals, completion rate, due counts and a project breakdown |
| `search_tasks`          | Full-text search with FTS5 (AND, OR, NOT, "phrases")             |
| `create_recurring_task` | Create a daily, weekly, biweekly, monthly or yearly task         |
| `list_recurring_tasks`  | List recurring tasks and, if asked, create today's instances     |
| `batch_complete`        | Complete many tasks at once, by ID or by filter                  |
| `batch_delete`          | Move many tasks to the trash, by ID or by filter                 |
| `undo_delete`           | Restore a task from the trash                                    |
| `list_deleted`          | Show the tasks in the trash                                      |
| `purge_deleted`         | Delete tasks in the trash for good                               |
| `export_tasks`          | Export tasks as JSON                                             |
| `import_tasks`          | Import tasks from an export, skipping duplicates by default      |
| `archive_task`          | Hide a task from the normal lists                                |
| `unarchive_task`        | Bring an archived task back                                      |
| `list_archived`         | Show archived tasks                                              |

Date arguments of `create_task`, `list_tasks` and `create_recurring_task` take
RFC 3339 timestamps or phrases such as `today`, `tomorrow`, `yesterday`,
`next week`, `next month`, `end of week`, `end of month`, `in 3 days`,
`in 2 weeks`, `in 1 month`, `last 2 days`, `friday` or `next monday`
(Spanish day names work too). Calendar dates such as `2025-03-14`,
`14/03/2025` and `2025/03/14` are read as 09:00 UTC on that day. The due date
of `update_task` must be an RFC 3339 timestamp.

## Using the library

The storage functions can be used directly:

```python
from mcptodo import store, schema

conn = store.connect("todo.db")
schema.init_db(conn)
task = store.create_task(conn, "Buy milk", None, "high", "home", ["errands"], None)
print(store.get_task(conn, str(task.id)).summary)
```

- `mcptodo.store` creates, updates, lists, completes and searches tasks and
  computes statistics.
- `mcptodo.lifecycle` holds batch changes, recurring tasks, the trash and the
  archive.
- `mcptodo.exchange` exports tasks to a JSON document (version `1.0`) and
  imports such documents.
- `mcptodo.task_tools`, `mcptodo.bulk_tools` and `mcptodo.report_tools` hold the
  tool functions; each takes a connection and returns the text shown to the
  client.
- `mcptodo.natural_date` parses date phrases (`parse_natural_date`) and
  describes times relative to now (`format_relative_time`).
- `mcptodo.similarity.calculate_similarity` gives the case-insensitive
  normalized Levenshtein similarity used for duplicate detection.
- `mcptodo.server.TodoServer` answers one JSON-RPC message at a time through
  `handle`, so it can be built into other transports; `run_stdio` and
  `run_http` are the two transports `mcptodo` uses.

## What it does not do

- It offers tools only. Listing resources and resource templates returns empty
  lists; reading resources and argument completion answer "Method not found".
- The HTTP transport takes JSON-RPC messages as POST bodies and answers with
  plain JSON. It does not stream responses with server-sent events, keeps no
  sessions, and answers GET with 405.
- Recurring tasks do not produce new instances on their own or when completed.
  New instances are made only when `list_recurring_tasks` is called with
  `generate_instances` set.

## Running the tests

```
pip install .[test]
pytest
```