import io
import json
import threading
import urllib.request
import uuid

import pytest

from mcptodo import schema, server, store


@pytest.fixture
def conn():
    connection = store.connect(":memory:")
    schema.init_db(connection)
    yield connection
    connection.close()


@pytest.fixture
def todo(conn):
    return server.TodoServer(conn)


def _text(result):
    return result["content"][0]["text"]


def test_all_tools_names():
    names = [tool["name"] for tool in server.all_tools()]
    assert len(names) == 21
    assert len(set(names)) == len(names)
    assert names[0] == "create_task"
    assert names[-1] == "list_archived"
    assert "search_tasks" in names


def test_tool_schema_required_fields():
    tools = {tool["name"]: tool for tool in server.all_tools()}
    assert tools["create_task"]["inputSchema"]["required"] == ["summary"]
    assert tools["get_task"]["inputSchema"]["required"] == ["id"]
    assert tools["overdue_tasks"]["inputSchema"]["properties"] == {}


def test_server_details():
    details = server.server_details()
    assert details["serverInfo"]["name"] == "MCP Todo Server"
    assert details["serverInfo"]["version"] == "0.1.0"
    assert "tools" in details["capabilities"]


def test_initialize_echoes_id(todo):
    reply = todo.handle({"jsonrpc": "2.0", "id": 7, "method": "initialize", "params": {}})
    assert reply["id"] == 7
    assert reply["result"] == server.server_details()


def test_notification_has_no_reply(todo):
    assert todo.handle({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None


def test_tools_list(todo):
    reply = todo.handle({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
    assert reply["result"]["tools"] == server.all_tools()


def test_unknown_method_and_resource_read(todo):
    for method in ("no/such", "resources/read", "completion/complete"):
        reply = todo.handle({"jsonrpc": "2.0", "id": 2, "method": method})
        assert reply["error"]["code"] == server.METHOD_NOT_FOUND


def test_empty_resource_lists(todo):
    reply = todo.handle({"jsonrpc": "2.0", "id": 3, "method": "resources/list"})
    assert reply["result"] == {"resources": []}
    reply = todo.handle({"jsonrpc": "2.0", "id": 4, "method": "resources/templates/list"})
    assert reply["result"] == {"resourceTemplates": []}


def test_invalid_request(todo):
    assert todo.handle("hello")["error"]["code"] == server.INVALID_REQUEST
    assert todo.handle({"id": 5, "method": 12})["error"]["code"] == server.INVALID_REQUEST


def test_call_tool_create_and_list(todo):
    created = todo.call_tool("create_task", {"summary": "Write report", "tags": ["work"]})
    assert created["isError"] is False
    assert _text(created).startswith("✅ Task created: Write report")
    listed = todo.call_tool("list_tasks", {})
    assert "Write report" in _text(listed)


def test_call_tool_through_handle(todo):
    reply = todo.handle({
        "jsonrpc": "2.0", "id": 9, "method": "tools/call",
        "params": {"name": "task_stats", "arguments": {}},
    })
    assert _text(reply["result"]).startswith("📊 Task Statistics")


def test_call_tool_errors(todo):
    assert todo.call_tool("no_such_tool", {})["isError"] is True
    missing = todo.call_tool("create_task", {})
    assert missing["isError"] is True
    assert "summary" in _text(missing)
    wrong_type = todo.call_tool("list_tasks", {"limit": "ten"})
    assert wrong_type["isError"] is True
    not_found = todo.call_tool("get_task", {"id": str(uuid.uuid4())})
    assert not_found["isError"] is True


def test_run_stdio(todo):
    stdin = io.StringIO(
        json.dumps({"jsonrpc": "2.0", "id": 1, "method": "ping"}) + "\n"
        + "\n"
        + "{not json\n"
        + json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}) + "\n"
    )
    stdout = io.StringIO()
    server.run_stdio(todo, stdin, stdout)
    replies = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert len(replies) == 2
    assert replies[0] == {"jsonrpc": "2.0", "id": 1, "result": {}}
    assert replies[1]["error"]["code"] == server.PARSE_ERROR


def test_http_transport(todo):
    httpd = server._make_http_server(todo, "127.0.0.1", 0)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        port = httpd.server_address[1]
        body = json.dumps({"jsonrpc": "2.0", "id": 11, "method": "tools/list"}).encode()
        request = urllib.request.Request(
            f"http://127.0.0.1:{port}/mcp", data=body,
            headers={"Content-Type": "application/json"}, method="POST",
        )
        with urllib.request.urlopen(request, timeout=5) as response:
            reply = json.loads(response.read().decode())
        assert reply["id"] == 11
        assert len(reply["result"]["tools"]) == len(server.all_tools())
    finally:
        httpd.shutdown()
        httpd.server_close()


def test_main_unknown_transport(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("TODO_DB_PATH", str(tmp_path / "todo.db"))
    monkeypatch.setenv("MCP_TRANSPORT", "carrier-pigeon")
    assert server.main([]) == 1
    assert "Unknown transport: carrier-pigeon" in capsys.readouterr().err


def test_main_stdio(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("TODO_DB_PATH", str(tmp_path / "todo.db"))
    monkeypatch.setenv("MCP_TRANSPORT", "stdio")
    monkeypatch.setattr(
        "sys.stdin", io.StringIO(json.dumps({"jsonrpc": "2.0", "id": 3, "method": "ping"}) + "\n")
    )
    assert server.main([]) == 0
    out = capsys.readouterr().out.strip()
    assert json.loads(out) == {"jsonrpc": "2.0", "id": 3, "result": {}}
    assert (tmp_path / "todo.db").exists()