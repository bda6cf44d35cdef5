import json
from datetime import timedelta

import pytest

from mcptodo import store
from mcptodo.exchange import (
    ExportData,
    ExportTask,
    export_tasks,
    import_tasks,
)
from mcptodo.schema import init_db


def _open():
    conn = store.connect(":memory:")
    init_db(conn)
    return conn


@pytest.fixture
def conn():
    c = _open()
    yield c
    c.close()


def _populate(conn):
    report = store.create_task(
        conn,
        "Write quarterly report",
        description="Q3 numbers",
        priority="high",
        project="work",
        tags=["office", "finance"],
        due_date="2030-05-01T09:00:00Z",
    )
    plants = store.create_task(conn, "Water the plants", tags=[])
    store.complete_task(conn, str(plants.id))
    return report, plants


def test_empty_export_has_version():
    c = _open()
    data = export_tasks(c)
    assert data.version == "1.0"
    assert data.tasks == []
    assert store.parse_rfc3339(data.exported_at).utcoffset() == timedelta(0)


def test_task_dict_omits_missing_dates():
    task = ExportTask(summary="x", status="todo", priority="low")
    assert task.to_dict() == {
        "summary": "x",
        "description": None,
        "status": "todo",
        "priority": "low",
        "project": None,
        "tags": [],
    }


def test_data_dict_uses_camel_case():
    data = ExportData(version="1.0", exported_at="stamp", tasks=[])
    assert data.to_dict() == {"version": "1.0", "exportedAt": "stamp", "tasks": []}


def test_export_content(conn):
    _populate(conn)
    data = export_tasks(conn)
    by_summary = {task.summary: task for task in data.tasks}
    report = by_summary["Write quarterly report"]
    assert report.tags == ["office", "finance"]
    assert report.project == "work"
    assert report.to_dict()["dueDate"] == "2030-05-01T09:00:00+00:00"
    assert "dueDate" not in by_summary["Water the plants"].to_dict()
    assert by_summary["Water the plants"].status == "done"


def test_round_trip(conn):
    _populate(conn)
    text = json.dumps(export_tasks(conn).to_dict())
    other = _open()
    result = import_tasks(other, text)
    assert (result.imported, result.skipped, result.errors) == (2, 0, [])

    def key(task):
        return task["summary"]

    before = sorted((t.to_dict() for t in export_tasks(conn).tasks), key=key)
    after = sorted((t.to_dict() for t in export_tasks(other).tasks), key=key)
    assert before == after


def test_export_deleted_only_on_request(conn):
    report, _ = _populate(conn)
    store.delete_task(conn, str(report.id))
    assert len(export_tasks(conn).tasks) == 1
    assert len(export_tasks(conn, include_deleted=True).tasks) == 2


def test_import_skips_duplicates(conn):
    store.create_task(conn, "Water the plants")
    document = json.dumps(
        {
            "version": "1.0",
            "exportedAt": "2030-01-01T00:00:00+00:00",
            "tasks": [
                {"summary": "Water the plants", "status": "todo", "priority": "low", "tags": []}
            ],
        }
    )
    skipped = import_tasks(conn, document)
    assert (skipped.imported, skipped.skipped) == (0, 1)
    forced = import_tasks(conn, document, skip_duplicates=False)
    assert (forced.imported, forced.skipped) == (1, 0)
    assert len(store.list_tasks(conn)) == 2


def test_import_skips_repeats_within_document(conn):
    task = {"summary": "Call the bank", "status": "todo", "priority": "medium", "tags": ["home"]}
    document = json.dumps({"version": "1.0", "exportedAt": "now", "tasks": [task, task]})
    result = import_tasks(conn, document)
    assert (result.imported, result.skipped) == (1, 1)
    assert store.list_tasks(conn)[0].tags == ["home"]


def test_import_rejects_bad_json(conn):
    with pytest.raises(ValueError, match="Invalid JSON format"):
        import_tasks(conn, "{not json")


def test_import_rejects_missing_field(conn):
    document = json.dumps(
        {"version": "1.0", "exportedAt": "now",
         "tasks": [{"summary": "a", "status": "todo", "priority": "low"}]}
    )
    with pytest.raises(ValueError, match="missing field `tags`"):
        import_tasks(conn, document)


def test_import_rejects_other_version(conn):
    document = json.dumps({"version": "2.0", "exportedAt": "now", "tasks": []})
    with pytest.raises(ValueError, match=r"Unsupported export version: 2\.0\. Expected 1\.0"):
        import_tasks(conn, document)