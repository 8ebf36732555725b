# utils/timeline.py
from datetime import date, datetime
from typing import Iterable

import pandas as pd

COLUMNS = ["Item", "Start", "Finish", "Status", "Priority", "Assignee"]


def _day(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.to_datetime(value).date()


def timeline_df(tasks: Iterable[dict]) -> pd.DataFrame:
    """One bar per task from its creation day to its due date; undated tasks are left out."""
    rows = []
    for t in tasks:
        finish = _day(t.get("due_date"))
        if finish is None:
            continue
        start = _day(t.get("created_at")) or finish
        if start > finish:
            start = finish
        assignee = t.get("assignee") or {}
        key = (t.get("project") or {}).get("key")
        rows.append({
            "Item": f"{key}-{t['id']}: {t['title']}" if key else t["title"],
            "Start": start,
            "Finish": finish,
            "Status": t["status"],
            "Priority": t["priority"],
            "Assignee": assignee.get("name") or "Unassigned",
        })
    df = pd.DataFrame(rows, columns=COLUMNS)
    if not df.empty:
        df = df.sort_values(["Start", "Finish"]).reset_index(drop=True)
    return df
