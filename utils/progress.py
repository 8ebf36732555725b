# utils/progress.py
from datetime import date
from typing import Iterable, Optional

from models.task import STATUS_ORDER, TaskPriority, TaskStatus

HIGH_PRIORITIES = {TaskPriority.HIGH.value, TaskPriority.HIGHEST.value}


def _as_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def is_overdue(task: dict, today: date) -> bool:
    due = _as_date(task.get("due_date"))
    return due is not None and due < today and task.get("status") != TaskStatus.DONE.value


def task_stats(tasks: Iterable[dict], today: date) -> dict:
    """Dashboard counters for a list of task views."""
    tasks = list(tasks)
    by_status = {status: 0 for status in STATUS_ORDER}
    for t in tasks:
        by_status[t["status"]] = by_status.get(t["status"], 0) + 1
    total = len(tasks)
    done = by_status.get(TaskStatus.DONE.value, 0)
    return {
        "total": total,
        "by_status": by_status,
        "high_priority": sum(1 for t in tasks if t.get("priority") in HIGH_PRIORITIES),
        "overdue": sum(1 for t in tasks if is_overdue(t, today)),
        "completion_rate": round(done * 100.0 / total, 1) if total else 0.0,
    }


def project_progress(tasks: Iterable[dict]) -> float:
    """Share of done tasks, 0.0 for an empty project."""
    tasks = list(tasks)
    if not tasks:
        return 0.0
    done = sum(1 for t in tasks if t["status"] == TaskStatus.DONE.value)
    return float(done / len(tasks))
