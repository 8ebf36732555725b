# tests/test_utils.py
from datetime import date, datetime

from utils.progress import is_overdue, project_progress, task_stats
from utils.timeline import timeline_df

TODAY = date(2025, 6, 15)


def task(id, status="todo", priority="medium", due=None, created=datetime(2025, 6, 1, 9, 30), **extra):
    row = {
        "id": id,
        "title": f"Task {id}",
        "status": status,
        "priority": priority,
        "due_date": due,
        "created_at": created,
        "assignee": None,
        "project": {"id": 1, "name": "Demo", "key": "DEMO"},
    }
    row.update(extra)
    return row


def test_task_stats():
    tasks = [
        task(1, "done", "high", due=date(2025, 6, 1)),
        task(2, "todo", "highest", due=date(2025, 6, 14)),
        task(3, "in-progress", "low", due=date(2025, 6, 15)),
        task(4, "review", "medium"),
    ]
    stats = task_stats(tasks, TODAY)
    assert stats["total"] == 4
    assert stats["by_status"] == {"todo": 1, "in-progress": 1, "review": 1, "done": 1}
    assert stats["high_priority"] == 2
    # done tasks and tasks due today are not overdue
    assert stats["overdue"] == 1
    assert stats["completion_rate"] == 25.0


def test_task_stats_empty():
    stats = task_stats([], TODAY)
    assert stats["total"] == 0
    assert stats["completion_rate"] == 0.0
    assert set(stats["by_status"].values()) == {0}


def test_is_overdue_accepts_iso_strings():
    assert is_overdue(task(1, due="2025-06-01"), TODAY)
    assert not is_overdue(task(1, due=None), TODAY)


def test_project_progress():
    assert project_progress([]) == 0.0
    assert project_progress([task(1, "done"), task(2), task(3, "done"), task(4)]) == 0.5


def test_timeline_skips_undated_tasks():
    df = timeline_df([
        task(1, due=date(2025, 6, 20), assignee={"name": "Bob"}),
        task(2),
        task(3, due=date(2025, 5, 1)),
    ])
    assert list(df["Item"]) == ["DEMO-3: Task 3", "DEMO-1: Task 1"]
    first = df.iloc[0]
    # created after its due date: the bar collapses onto the due date
    assert first["Start"] == first["Finish"] == date(2025, 5, 1)
    assert df.iloc[1]["Start"] == date(2025, 6, 1)
    assert df.iloc[1]["Assignee"] == "Bob"
    assert df.iloc[0]["Assignee"] == "Unassigned"


def test_timeline_empty():
    df = timeline_df([task(1)])
    assert df.empty
    assert list(df.columns) == ["Item", "Start", "Finish", "Status", "Priority", "Assignee"]
