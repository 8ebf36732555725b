# ui/projects_panel.py

import streamlit as st

from models.project import ProjectStatus, Visibility
from ui.feedback import report

__all__ = ["render_project_picker", "render_new_project", "render_project_settings"]

STATUS_OPTIONS = [s.value for s in ProjectStatus]
VISIBILITY_OPTIONS = [v.value for v in Visibility]


def _tags(raw: str) -> list:
    return [t.strip() for t in raw.split(",") if t.strip()]


def render_project_picker(sync):
    """Sidebar dropdown over the projects the user belongs to."""
    projects = sync.projects
    with st.sidebar:
        st.subheader("Projects")
        if not projects:
            st.caption("You don't belong to any projects yet.")
            return None
        ids = [p["id"] for p in projects]
        labels = {p["id"]: f"{p['key']} · {p['name']}" for p in projects}
        current = sync.session.current_project_id
        chosen = st.selectbox(
            "Current project",
            ids,
            index=ids.index(current) if current in ids else 0,
            format_func=labels.get,
        )
        if chosen != current:
            sync.select_project(chosen)
    return sync.session.current_project_id


def render_new_project(sync, key: str = "new_project"):
    st.subheader("New Project")
    with st.form(key, clear_on_submit=True):
        name = st.text_input("Project name", placeholder="Website Redesign")
        proj_key = st.text_input("Key (optional)", max_chars=10, help="Derived from the name when left empty")
        description = st.text_area("Description")
        c1, c2 = st.columns(2)
        with c1:
            status = st.selectbox("Status", STATUS_OPTIONS)
        with c2:
            visibility = st.selectbox("Visibility", VISIBILITY_OPTIONS)
        tags = st.text_input("Tags (comma-separated)")
        submitted = st.form_submit_button("Create project")
    if submitted:
        if not name.strip():
            st.warning("Please enter a project name.")
            return
        outcome = sync.create_project(
            name,
            key=proj_key.strip() or None,
            description=description,
            status=status,
            visibility=visibility,
            tags=_tags(tags),
        )
        if outcome.ok:
            report(outcome, f"Created project {outcome.data['key']}.")
        else:
            report(outcome)


def render_project_settings(sync, project: dict):
    st.subheader(f"{project['key']} · {project['name']}")
    owner = project.get("owner") or {}
    st.caption(f"Owner: {owner.get('name', 'unknown')}")
    with st.form(f"edit_project_{project['id']}"):
        name = st.text_input("Name", value=project["name"])
        description = st.text_area("Description", value=project["description"] or "")
        c1, c2 = st.columns(2)
        with c1:
            status = st.selectbox("Status", STATUS_OPTIONS, index=STATUS_OPTIONS.index(project["status"]))
        with c2:
            visibility = st.selectbox(
                "Visibility", VISIBILITY_OPTIONS, index=VISIBILITY_OPTIONS.index(project["visibility"])
            )
        tags = st.text_input("Tags", value=", ".join(project["tags"]))
        save = st.form_submit_button("Save project")
    if save:
        report(sync.update_project(
            project["id"],
            name=name,
            description=description,
            status=status,
            visibility=visibility,
            tags=_tags(tags),
        ), "Project saved.")

    st.markdown("**Danger zone**")
    confirm = st.checkbox("I understand this deletes every task and comment", key=f"confirm_del_{project['id']}")
    if st.button("Delete project (irreversible)", disabled=not confirm, key=f"del_project_{project['id']}"):
        report(sync.delete_project(project["id"]), "Project deleted.")
