# ui/tasks_panel.py
from datetime import date

import pandas as pd
import streamlit as st

from models.task import STATUS_ORDER, TaskPriority, TaskType
from ui.feedback import report

PRIORITY_OPTIONS = [p.value for p in TaskPriority]
TYPE_OPTIONS = [t.value for t in TaskType]
STATUS_LABELS = {"todo": "To-Do", "in-progress": "In Progress", "review": "Review", "done": "Done"}


def _member_options(project: dict) -> dict:
    options = {None: "Unassigned"}
    options.update({m["id"]: f"{m['name']} <{m['email']}>" for m in project["members"]})
    return options


def _labels(raw: str) -> list:
    return [x.strip() for x in raw.split(",") if x.strip()]


def _task_table(tasks) -> pd.DataFrame:
    rows = [{
        "Key": f"{(t['project'] or {}).get('key', '')}-{t['id']}",
        "Title": t["title"],
        "Status": STATUS_LABELS.get(t["status"], t["status"]),
        "Priority": t["priority"],
        "Type": t["type"],
        "Assignee": (t["assignee"] or {}).get("name", "Unassigned"),
        "Due": t["due_date"],
    } for t in tasks]
    return pd.DataFrame(rows, columns=["Key", "Title", "Status", "Priority", "Type", "Assignee", "Due"])


def render_new_task(sync, project: dict):
    members = _member_options(project)
    with st.form(f"new_task_{project['id']}", clear_on_submit=True):
        title = st.text_input("Task title")
        description = st.text_area("Description")
        c1, c2, c3 = st.columns(3)
        status = c1.selectbox("Status", STATUS_ORDER, format_func=STATUS_LABELS.get)
        priority = c2.selectbox("Priority", PRIORITY_OPTIONS, index=PRIORITY_OPTIONS.index("medium"))
        task_type = c3.selectbox("Type", TYPE_OPTIONS, index=TYPE_OPTIONS.index("task"))
        c4, c5, c6 = st.columns(3)
        assignee = c4.selectbox("Assignee", list(members), format_func=members.get)
        has_due = c5.checkbox("Has due date")
        due = c5.date_input("Due", value=date.today())
        estimate = c6.number_input("Estimated hours", min_value=0.0, step=0.5, value=0.0)
        labels = st.text_input("Labels (comma-separated)")
        submitted = st.form_submit_button("Add task")
    if submitted:
        if not title.strip():
            st.warning("Please enter a task title.")
            return
        report(sync.create_task(
            project["id"],
            title,
            description=description,
            status=status,
            priority=priority,
            type=task_type,
            assignee=assignee,
            due_date=due.isoformat() if has_due else None,
            estimated_hours=estimate or None,
            labels=_labels(labels),
        ), "Task added.")


def render_task_editor(sync, project: dict, t: dict):
    members = _member_options(project)
    assignee_ids = list(members)
    with st.form(f"edit_task_{t['id']}"):
        title = st.text_input("Title", value=t["title"])
        description = st.text_area("Description", value=t["description"] or "")
        c1, c2, c3 = st.columns(3)
        status = c1.selectbox("Status", STATUS_ORDER, index=STATUS_ORDER.index(t["status"]),
                              format_func=STATUS_LABELS.get)
        priority = c2.selectbox("Priority", PRIORITY_OPTIONS, index=PRIORITY_OPTIONS.index(t["priority"]))
        assignee = c3.selectbox(
            "Assignee", assignee_ids,
            index=assignee_ids.index(t["assignee_id"]) if t["assignee_id"] in assignee_ids else 0,
            format_func=members.get,
        )
        c4, c5 = st.columns(2)
        has_due = c4.checkbox("Has due date", value=t["due_date"] is not None)
        due = c4.date_input("Due", value=t["due_date"] or date.today())
        actual = c5.number_input("Actual hours", min_value=0.0, step=0.5, value=float(t["actual_hours"] or 0.0))
        labels = st.text_input("Labels", value=", ".join(t["labels"]))
        save = st.form_submit_button("Save task")
    if save:
        report(sync.update_task(
            t["id"],
            title=title,
            description=description,
            status=status,
            priority=priority,
            assignee=assignee,
            due_date=due.isoformat() if has_due else None,
            actual_hours=actual or None,
            labels=_labels(labels),
        ), "Task saved.")

    st.markdown("**Comments**")
    for c in t["comments"]:
        author = (c["author"] or {}).get("name", "Deleted user")
        st.markdown(f"**{author}** · {c['created_at']:%Y-%m-%d %H:%M}  \n{c['content']}")
    with st.form(f"comment_{t['id']}", clear_on_submit=True):
        content = st.text_area("Add a comment", key=f"comment_text_{t['id']}")
        post = st.form_submit_button("Post")
    if post and content.strip():
        report(sync.add_comment(t["id"], content))

    if st.button("Delete task", key=f"del_task_{t['id']}"):
        report(sync.delete_task(t["id"]), "Task deleted.")


def render_tasks_panel(sync, project: dict):
    st.subheader("Tasks")
    with st.expander("New task"):
        render_new_task(sync, project)

    tasks = sync.tasks
    c1, c2 = st.columns([2, 1])
    search = c1.text_input("Search", key=f"task_search_{project['id']}").strip().lower()
    statuses = c2.multiselect("Status", STATUS_ORDER, format_func=STATUS_LABELS.get,
                              key=f"task_status_{project['id']}")
    if search:
        tasks = [t for t in tasks if search in t["title"].lower() or search in (t["description"] or "").lower()]
    if statuses:
        tasks = [t for t in tasks if t["status"] in statuses]

    if not tasks:
        st.info("No tasks yet.")
        return
    st.dataframe(_task_table(tasks), use_container_width=True, hide_index=True)
    for t in tasks:
        with st.expander(f"{t['title']} - {STATUS_LABELS.get(t['status'], t['status'])}"):
            render_task_editor(sync, project, t)
