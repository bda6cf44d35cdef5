import pytest

from mcptodo import lifecycle, report_tools, schema, store


@pytest.fixture
def conn():
    connection = store.connect(":memory:")
    schema.init_db(connection)
    yield connection
    connection.close()


def test_overdue_empty(conn):
    assert report_tools.overdue_tasks(conn) == "🎉 No overdue tasks! You're all caught up."


def test_overdue_lists_past_due_only(conn):
    store.create_task(conn, "Pay rent", project="home", due_date="2020-01-01T09:00:00+00:00")
    store.create_task(conn, "Far future", due_date="2999-01-01T09:00:00+00:00")
    text = report_tools.overdue_tasks(conn)
    assert text.startswith("⚠️ 1 overdue task(s):\n")
    assert "🟡 Pay rent (was due: " in text
    assert "days ago" in text
    assert "   Project: home" in text
    assert "   Due date: 2020-01-01 09:00" in text
    assert "Far future" not in text


def test_overdue_ignores_done(conn):
    task = store.create_task(conn, "Old chore", due_date="2020-01-01T09:00:00+00:00")
    store.complete_task(conn, str(task.id))
    assert report_tools.overdue_tasks(conn).startswith("🎉")


def test_stats_empty(conn):
    text = report_tools.task_stats(conn)
    assert text.startswith("📊 Task Statistics\n")
    assert "Total tasks: 0" in text
    assert "Completion rate" not in text
    assert "✅ No overdue tasks" in text
    assert "**By Project**" not in text


def test_stats_counts(conn):
    first = store.create_task(conn, "Alpha", project="work")
    store.create_task(conn, "Beta", project="work", priority="high")
    store.complete_task(conn, str(first.id))
    text = report_tools.task_stats(conn)
    assert "Total tasks: 2" in text
    assert "Todo: 1 | In Progress: 0 | Done: 1" in text
    assert "Completion rate: 50.0%" in text
    assert "High priority (active): 1" in text
    assert "  work: 1 active tasks" in text


def test_stats_overdue(conn):
    store.create_task(conn, "Late", due_date="2020-01-01T09:00:00+00:00")
    assert "⚠️ Overdue: 1" in report_tools.task_stats(conn)


def test_search_no_results(conn):
    store.create_task(conn, "Buy milk and eggs")
    assert report_tools.search_tasks(conn, "zebra") == 'No tasks found for query: "zebra"'


def test_search_finds_and_highlights(conn):
    task = store.create_task(conn, "Buy milk and eggs", project="errands")
    store.create_task(conn, "Write report")
    text = report_tools.search_tasks(conn, "milk")
    assert text.startswith('🔍 Found 1 result(s) for "milk":\n')
    assert f"1. Buy milk and eggs (ID: {task.id})" in text
    assert "   Project: errands" in text
    assert "<b>milk</b>" in text
    assert "Write report" not in text


def test_search_respects_limit(conn):
    for name in ("milk one", "milk two", "milk three"):
        store.create_task(conn, name)
    text = report_tools.search_tasks(conn, "milk", limit=2)
    assert text.startswith('🔍 Found 2 result(s)')
    assert "3. " not in text


def test_list_archived(conn):
    assert report_tools.list_archived(conn) == "📭 No archived tasks."
    task = store.create_task(conn, "Old idea", project="someday", tags=["maybe"])
    lifecycle.archive_task(conn, str(task.id))
    text = report_tools.list_archived(conn)
    assert text.startswith("📦 Archived tasks (1):")
    assert f"📋 🟡 Old idea ({task.id}) | 📁 someday | 🏷️ maybe" in text


def test_list_deleted(conn):
    assert report_tools.list_deleted(conn) == "🗑️ Trash is empty."
    task = store.create_task(conn, "Scrap this", priority="low", project="misc")
    store.delete_task(conn, str(task.id))
    text = report_tools.list_deleted(conn)
    assert text.startswith("🗑️ 1 deleted task(s) in trash:\n")
    assert f"🟢 Scrap this (ID: {task.id})" in text
    assert "   Deleted at: " in text
    assert "   Project: misc" in text
    assert text.endswith(
        "Use 'undo_delete' to restore or 'purge_deleted' to permanently delete."
    )