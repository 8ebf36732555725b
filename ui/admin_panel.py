# ui/admin_panel.py
import pandas as pd
import streamlit as st

from models.user import UserRole
from ui.feedback import report

ROLE_OPTIONS = [r.value for r in UserRole]


def _render_counts(sync):
    outcome = sync.dashboard()
    if not outcome.ok:
        st.error(outcome.message)
        return
    counts = outcome.data["counts"]
    cols = st.columns(6)
    for col, (label, name) in zip(cols, [
        ("Users", "total_users"), ("Admins", "admin_users"), ("Projects", "total_projects"),
        ("Tasks", "total_tasks"), ("Completed", "completed_tasks"), ("Overdue", "overdue_tasks"),
    ]):
        with col:
            st.metric(label, counts[name])
    recent = outcome.data["recent"]
    c1, c2 = st.columns(2)
    with c1:
        st.markdown("**Recent users**")
        st.dataframe(pd.DataFrame([{"Name": u["name"], "Email": u["email"], "Joined": u["created_at"]}
                                   for u in recent["users"]]), hide_index=True, use_container_width=True)
    with c2:
        st.markdown("**Recent projects**")
        st.dataframe(pd.DataFrame([{"Key": p["key"], "Name": p["name"], "Owner": (p["owner"] or {}).get("name")}
                                   for p in recent["projects"]]), hide_index=True, use_container_width=True)


def _render_users(sync):
    me = sync.current_user
    users = sync.users
    st.dataframe(pd.DataFrame([{
        "Name": u["name"], "Email": u["email"], "Role": u["role"], "Active": u["is_active"],
    } for u in users]), hide_index=True, use_container_width=True)
    if not users:
        return
    by_id = {u["id"]: u for u in users}
    picked = st.selectbox("Edit user", list(by_id), format_func=lambda i: f"{by_id[i]['name']} <{by_id[i]['email']}>")
    u = by_id[picked]
    is_me = u["id"] == me["id"]
    with st.form(f"admin_user_{u['id']}"):
        name = st.text_input("Name", value=u["name"])
        email = st.text_input("Email", value=u["email"])
        role = st.selectbox("Role", ROLE_OPTIONS, index=ROLE_OPTIONS.index(u["role"]))
        active = st.checkbox("Active", value=u["is_active"], disabled=is_me,
                             help="You cannot deactivate your own account" if is_me else None)
        save = st.form_submit_button("Save user")
    if save:
        report(sync.update_user(u["id"], name=name, email=email, role=role, is_active=active), "User saved.")
    if not is_me and st.button("Delete user", key=f"admin_del_user_{u['id']}"):
        report(sync.delete_user(u["id"]), "User deleted; their work was reassigned to you.")


def _render_projects(sync):
    projects = sync.admin_projects
    st.dataframe(pd.DataFrame([{
        "Key": p["key"], "Name": p["name"], "Status": p["status"],
        "Owner": (p["owner"] or {}).get("name"), "Members": len(p["members"]),
    } for p in projects]), hide_index=True, use_container_width=True)
    if projects:
        by_id = {p["id"]: p for p in projects}
        picked = st.selectbox("Project", list(by_id), format_func=lambda i: f"{by_id[i]['key']} · {by_id[i]['name']}",
                              key="admin_project_pick")
        if st.button("Delete project", key=f"admin_del_project_{picked}"):
            report(sync.delete_project(picked), "Project deleted.")


def _render_tasks(sync):
    tasks = sync.admin_tasks
    st.dataframe(pd.DataFrame([{
        "Project": (t["project"] or {}).get("key"), "Title": t["title"], "Status": t["status"],
        "Priority": t["priority"], "Assignee": (t["assignee"] or {}).get("name", "Unassigned"),
        "Reporter": (t["reporter"] or {}).get("name"), "Due": t["due_date"],
    } for t in tasks]), hide_index=True, use_container_width=True)
    if tasks:
        by_id = {t["id"]: t for t in tasks}
        picked = st.selectbox("Task", list(by_id), format_func=lambda i: by_id[i]["title"], key="admin_task_pick")
        if st.button("Delete task", key=f"admin_del_task_{picked}"):
            report(sync.delete_task(picked), "Task deleted.")


def render_admin_panel(sync):
    st.subheader("Admin")
    if not sync.session.is_admin:
        st.info("Admin-only area")
        return
    _render_counts(sync)
    users_tab, projects_tab, tasks_tab = st.tabs(["Users", "Projects", "Tasks"])
    with users_tab:
        _render_users(sync)
    with projects_tab:
        _render_projects(sync)
    with tasks_tab:
        _render_tasks(sync)
