"""The MCP server: tool registry, JSON-RPC dispatch and the stdio and HTTP transports."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sqlite3
import sys
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, TextIO

from . import bulk_tools, report_tools, store, task_tools
from .schema import init_db

logger = logging.getLogger(__name__)

SERVER_NAME = "MCP Todo Server"
SERVER_VERSION = "0.1.0"
PROTOCOL_VERSION = "2025-11-25"
DEFAULT_PORT = 3003
DEFAULT_HOST = "127.0.0.1"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


@dataclass(frozen=True)
class _Param:
    name: str
    kind: str
    description: str
    required: bool = False
    target: str | None = None

    def schema(self) -> dict[str, Any]:
        entry: dict[str, Any] = {"type": self.kind, "description": self.description}
        if self.kind == "array":
            entry["items"] = {"type": "string"}
        return entry

    def accepts(self, value: Any) -> bool:
        if self.kind == "string":
            return isinstance(value, str)
        if self.kind == "boolean":
            return isinstance(value, bool)
        if self.kind == "integer":
            return isinstance(value, int) and not isinstance(value, bool)
        return isinstance(value, list) and all(isinstance(item, str) for item in value)


@dataclass(frozen=True)
class _Tool:
    name: str
    description: str
    handler: Callable[..., str]
    params: tuple[_Param, ...] = ()

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": {p.name: p.schema() for p in self.params},
                "required": [p.name for p in self.params if p.required],
            },
        }

    def bind(self, arguments: Any) -> dict[str, Any]:
        if not isinstance(arguments, Mapping):
            raise ValueError("tool arguments must be an object")
        bound: dict[str, Any] = {}
        for param in self.params:
            value = arguments.get(param.name)
            if value is None:
                if param.required:
                    raise ValueError(f"missing field `{param.name}`")
                continue
            if not param.accepts(value):
                raise ValueError(f"invalid type for field `{param.name}`: expected {param.kind}")
            bound[param.target or param.name] = value
        return bound


def _text(name: str, description: str, required: bool = False, target: str | None = None):
    return _Param(name, "string", description, required, target)


def _task_id(description: str = "Task ID (UUID)") -> _Param:
    return _text("id", description, required=True, target="task_id")


def _flag(name: str, description: str) -> _Param:
    return _Param(name, "boolean", description)


def _number(name: str, description: str) -> _Param:
    return _Param(name, "integer", description)


def _list(name: str, description: str) -> _Param:
    return _Param(name, "array", description)


_TOOLS: tuple[_Tool, ...] = (
    _Tool(
        "create_task",
        "Create a new todo task. Supports natural language dates like 'tomorrow', 'next week', "
        "'in 3 days', 'monday'. Returns potential duplicates with similarity scores for "
        "confirmation.",
        task_tools.create_task,
        (
            _text("summary", "Short summary of the task", required=True),
            _text("description", "Optional detailed description"),
            _text("priority", "Task priority (default: medium)"),
            _text("project", "Optional project name"),
            _list("tags", "List of tags"),
            _text("due_date", "Due date: RFC3339 format or natural language (tomorrow, next "
                  "week, monday, in 3 days, etc.)"),
        ),
    ),
    _Tool(
        "update_task",
        "Update an existing todo task by ID.",
        task_tools.update_task,
        (
            _task_id(),
            _text("summary", "New summary"),
            _text("description", "New description"),
            _text("status", "New status"),
            _text("priority", "New priority"),
            _text("project", "New project"),
            _list("tags", "New list of tags (replaces existing)"),
            _text("due_date", "New due date in RFC3339 format"),
        ),
    ),
    _Tool(
        "delete_task",
        "Soft-delete a todo task by ID. The task moves to trash and can be restored with "
        "undo_delete.",
        task_tools.delete_task,
        (_task_id(),),
    ),
    _Tool("get_task", "Get a single todo task by ID.", task_tools.get_task, (_task_id(),)),
    _Tool(
        "list_tasks",
        "List todo tasks with optional filters. Supports natural language dates (tomorrow, "
        "next week, monday, in 3 days). Filter by status, priority, project, tags, date "
        "ranges, and text search.",
        task_tools.list_tasks,
        (
            _text("status", "Filter by status"),
            _text("priority", "Filter by priority"),
            _text("project", "Filter by project name"),
            _list("tags", "Filter by tags (tasks must have at least one of these tags)"),
            _text("due_before", "Filter tasks due before this date (RFC3339 or natural: "
                  "tomorrow, next week)"),
            _text("due_after", "Filter tasks due after this date (RFC3339 or natural: "
                  "today, monday)"),
            _text("created_before", "Filter tasks created before this date (RFC3339 or "
                  "natural: yesterday)"),
            _text("created_after", "Filter tasks created after this date (RFC3339 or "
                  "natural: today)"),
            _text("completed_before", "Filter tasks completed before this date (RFC3339 or "
                  "natural: today)"),
            _text("completed_after", "Filter tasks completed after this date (RFC3339 or "
                  "natural: today)"),
            _text("search", "Search in summary and description"),
            _number("limit", "Maximum number of results (default: 50)"),
            _flag("include_archived", "Include archived tasks in results (default: false)"),
        ),
    ),
    _Tool(
        "complete_task",
        "Quickly mark a task as done by ID. Sets status to 'done' and records completion time.",
        task_tools.complete_task,
        (_task_id(),),
    ),
    _Tool(
        "overdue_tasks",
        "List all tasks that are past their due date and not yet completed.",
        report_tools.overdue_tasks,
    ),
    _Tool(
        "task_stats",
        "Get statistics about your tasks: totals, completion rates, overdue counts, and "
        "project breakdown.",
        report_tools.task_stats,
    ),
    _Tool(
        "search_tasks",
        "Full-text search across all tasks using SQLite FTS5. Searches summary, description, "
        "project, and tags. Supports boolean operators (AND, OR, NOT) and phrase matching "
        "with quotes.",
        report_tools.search_tasks,
        (
            _text("query", "Search query. Supports: plain words, phrases in quotes, "
                  "AND/OR/NOT operators.", required=True),
            _number("limit", "Maximum number of results (default: 20)"),
        ),
    ),
    _Tool(
        "create_recurring_task",
        "Create a recurring task that auto-generates new instances. Patterns: daily, weekly, "
        "biweekly, monthly, yearly. When marked done, a new instance is created automatically.",
        bulk_tools.create_recurring_task,
        (
            _text("summary", "Short summary of the recurring task", required=True),
            _text("recurrence", "Recurrence pattern: daily, weekly, biweekly, monthly, yearly",
                  required=True),
            _text("description", "Optional detailed description"),
            _text("priority", "Task priority (default: medium)"),
            _text("project", "Optional project name"),
            _list("tags", "List of tags"),
            _text("due_date", "Due date for first instance: RFC3339 or natural (tomorrow, "
                  "next monday)"),
            _text("recurrence_end", "Optional end date for recurrence: RFC3339 or natural "
                  "(in 3 months)"),
        ),
    ),
    _Tool(
        "list_recurring_tasks",
        "List all recurring task templates and optionally generate new instances for today.",
        bulk_tools.list_recurring_tasks,
        (_flag("generate_instances",
               "Generate new instances for today based on recurrence patterns"),),
    ),
    _Tool(
        "batch_complete",
        "Complete multiple tasks at once. Can complete by specific IDs or by filter (status, "
        "project, tags).",
        bulk_tools.batch_complete,
        (
            _list("ids", "List of task IDs to complete. If provided, filters are ignored."),
            _text("status", "Filter by status to complete (e.g., 'todo', 'in_progress')"),
            _text("project", "Filter by project to complete all tasks in that project"),
            _list("tags", "Filter by tags to complete tasks with any of these tags"),
        ),
    ),
    _Tool(
        "batch_delete",
        "Delete multiple tasks at once. Can delete by specific IDs or by filter (status, "
        "project, tags). Use with caution!",
        bulk_tools.batch_delete,
        (
            _list("ids", "List of task IDs to delete. If provided, filters are ignored."),
            _text("status", "Filter by status to delete (e.g., 'done' to clean up completed "
                  "tasks)"),
            _text("project", "Filter by project to delete all tasks in that project"),
            _list("tags", "Filter by tags to delete tasks with any of these tags"),
        ),
    ),
    _Tool(
        "undo_delete",
        "Restore a soft-deleted task from the trash. The task will be marked as active again.",
        bulk_tools.undo_delete,
        (_task_id("Task ID (UUID) of the deleted task to restore"),),
    ),
    _Tool(
        "list_deleted",
        "List all soft-deleted tasks in the trash/recycle bin. These tasks can be restored "
        "with undo_delete or permanently deleted with purge_deleted.",
        report_tools.list_deleted,
    ),
    _Tool(
        "purge_deleted",
        "Permanently delete soft-deleted tasks from the trash. This action cannot be undone! "
        "Provide specific IDs or omit to purge all deleted tasks.",
        bulk_tools.purge_deleted,
        (_list("ids", "List of deleted task IDs to permanently delete. If omitted, all "
               "deleted tasks are purged."),),
    ),
    _Tool(
        "export_tasks",
        "Export tasks to JSON format for backup or migration. Supports filters to export "
        "specific subsets of tasks.",
        bulk_tools.export_tasks,
        (
            _flag("include_deleted", "Include soft-deleted tasks in export (default: false)"),
            _text("status", "Filter by status (todo, in_progress, done)"),
            _text("project", "Filter by project name"),
            _list("tags", "Filter by tags (tasks with any of these tags)"),
        ),
    ),
    _Tool(
        "import_tasks",
        "Import tasks from JSON export data. Validates structure, detects duplicates, and "
        "reports import results.",
        bulk_tools.import_tasks,
        (
            _text("data", "JSON string from export_tasks output", required=True),
            _flag("skip_duplicates",
                  "Skip tasks that are similar to existing ones (default: true)"),
        ),
    ),
    _Tool(
        "archive_task",
        "Archive a todo task by ID. Archived tasks are hidden from normal lists but can be "
        "restored.",
        bulk_tools.archive_task,
        (_task_id(),),
    ),
    _Tool(
        "unarchive_task",
        "Restore an archived todo task by ID. The task returns to normal active lists.",
        bulk_tools.unarchive_task,
        (_task_id(),),
    ),
    _Tool(
        "list_archived",
        "List all archived tasks. Archived tasks are hidden from normal lists.",
        report_tools.list_archived,
    ),
)

_TOOLS_BY_NAME = {tool.name: tool for tool in _TOOLS}


def all_tools() -> list[dict[str, Any]]:
    """Definitions of every tool, as listed to clients."""
    return [tool.describe() for tool in _TOOLS]


def server_details() -> dict[str, Any]:
    """The result of the initialize handshake."""
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}},
        "serverInfo": {
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
            "title": SERVER_NAME,
            "description": "A TODO list MCP server with SQLite storage and duplicate detection.",
        },
        "instructions": (
            "Use this server to manage TODO items. You can create, update, delete, and list "
            "tasks with various filters."
        ),
    }


def _tool_result(text: str, is_error: bool = False) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


class TodoServer:
    """Answers MCP requests against one task database."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.Lock()

    def list_tools(self) -> list[dict[str, Any]]:
        return all_tools()

    def call_tool(self, name: str, arguments: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Run a tool; failures come back as a result flagged with isError."""
        tool = _TOOLS_BY_NAME.get(name)
        if tool is None:
            return _tool_result(f"Unknown tool: {name}", is_error=True)
        try:
            kwargs = tool.bind(arguments if arguments is not None else {})
            with self._lock:
                text = tool.handler(self.conn, **kwargs)
        except (ValueError, LookupError, TypeError, sqlite3.Error) as exc:
            return _tool_result(str(exc), is_error=True)
        return _tool_result(text)

    def handle(self, message: Any) -> dict[str, Any] | None:
        """Answer one JSON-RPC message; notifications and responses get None."""
        if not isinstance(message, Mapping):
            return _error(None, INVALID_REQUEST, "Invalid Request")
        method = message.get("method")
        if method is None and ("result" in message or "error" in message):
            return None
        request_id = message.get("id")
        if not isinstance(method, str):
            return _error(request_id, INVALID_REQUEST, "Invalid Request")
        if "id" not in message:
            return None

        params = message.get("params") or {}
        if not isinstance(params, Mapping):
            return _error(request_id, INVALID_PARAMS, "Invalid params")
        try:
            result = self._dispatch(method, params)
        except _RpcError as exc:
            return _error(request_id, exc.code, exc.message)
        except Exception:  # noqa: BLE001 - reported to the client
            logger.exception("Failed to handle %s", method)
            return _error(request_id, INTERNAL_ERROR, "Internal error")
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    def _dispatch(self, method: str, params: Mapping[str, Any]) -> dict[str, Any]:
        if method == "initialize":
            return server_details()
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": self.list_tools()}
        if method == "tools/call":
            name = params.get("name")
            if not isinstance(name, str):
                raise _RpcError(INVALID_PARAMS, "Invalid params: missing tool name")
            return self.call_tool(name, params.get("arguments") or {})
        if method == "resources/list":
            return {"resources": []}
        if method == "resources/templates/list":
            return {"resourceTemplates": []}
        raise _RpcError(METHOD_NOT_FOUND, "Method not found")


class _RpcError(Exception):
    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def _answer(server: TodoServer, payload: Any) -> Any:
    if isinstance(payload, list):
        if not payload:
            return _error(None, INVALID_REQUEST, "Invalid Request")
        replies = [reply for reply in map(server.handle, payload) if reply is not None]
        return replies or None
    return server.handle(payload)


def run_stdio(server: TodoServer, stdin: TextIO | None = None,
              stdout: TextIO | None = None) -> None:
    """Serve newline-delimited JSON-RPC messages until the input ends."""
    stdin = stdin if stdin is not None else sys.stdin
    stdout = stdout if stdout is not None else sys.stdout
    logger.info("Starting MCP Todo server (stdio transport)")
    for line in stdin:
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            reply: Any = _error(None, PARSE_ERROR, "Parse error")
        else:
            reply = _answer(server, payload)
        if reply is not None:
            stdout.write(json.dumps(reply, ensure_ascii=False) + "\n")
            stdout.flush()


def _make_http_server(server: TodoServer, host: str, port: int) -> HTTPServer:
    class _Handler(BaseHTTPRequestHandler):
        def do_POST(self) -> None:  # noqa: N802
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length)
            try:
                payload = json.loads(body.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                self._send(400, _error(None, PARSE_ERROR, "Parse error"))
                return
            reply = _answer(server, payload)
            if reply is None:
                self.send_response(202)
                self.send_header("Content-Length", "0")
                self.end_headers()
                return
            self._send(200, reply)

        def do_GET(self) -> None:  # noqa: N802
            self.send_response(405)
            self.send_header("Allow", "POST")
            self.send_header("Content-Length", "0")
            self.end_headers()

        def _send(self, status: int, document: Any) -> None:
            data = json.dumps(document, ensure_ascii=False).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            logger.debug("%s - %s", self.address_string(), format % args)

    return HTTPServer((host, port), _Handler)


def run_http(server: TodoServer, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Serve JSON-RPC over HTTP POST until interrupted."""
    logger.info("Starting MCP Todo server (HTTP transport) on %s:%s", host, port)
    with _make_http_server(server, host, port) as httpd:
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            pass


def _port_from_env() -> int:
    try:
        port = int(os.environ.get("MCP_PORT", ""))
    except ValueError:
        return DEFAULT_PORT
    return port if 0 <= port <= 65535 else DEFAULT_PORT


def main(argv: list[str] | None = None) -> int:
    """Start the server; settings come from TODO_DB_PATH, MCP_TRANSPORT, MCP_HOST, MCP_PORT."""
    parser = argparse.ArgumentParser(
        prog="mcptodo",
        description="A TODO list MCP server with SQLite storage and duplicate detection.",
    )
    parser.parse_args(argv)

    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, stream=sys.stderr,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    db_path = os.environ.get("TODO_DB_PATH", "todo.db")
    try:
        conn = store.connect(db_path)
    except sqlite3.Error as exc:
        logger.error("Failed to create database connection: %s", exc)
        return 1
    try:
        try:
            init_db(conn)
        except sqlite3.Error as exc:
            logger.error("Failed to initialize database: %s", exc)
            return 1

        server = TodoServer(conn)
        transport = os.environ.get("MCP_TRANSPORT", "stdio")
        if transport == "stdio":
            run_stdio(server, sys.stdin, sys.stdout)
        elif transport == "http":
            host = os.environ.get("MCP_HOST", DEFAULT_HOST)
            try:
                run_http(server, host, _port_from_env())
            except OSError as exc:
                logger.error("Server error: %s", exc)
                return 1
        else:
            print(f"Unknown transport: {transport}. Use 'stdio' or 'http'", file=sys.stderr)
            return 1
    finally:
        conn.close()
    return 0