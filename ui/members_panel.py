# ui/members_panel.py
import pandas as pd
import streamlit as st

from models.project_member import MemberRole
from ui.feedback import report

ROLE_OPTIONS = [r.value for r in MemberRole]


def render_members_panel(sync, project: dict):
    st.subheader("Project Members")
    me = sync.current_user
    can_manage = project["owner_id"] == me["id"] or sync.session.is_admin

    data = [{"Name": m["name"], "Email": m["email"], "Role": m["role"], "Joined": m["joined_at"]}
            for m in project["members"]]
    st.dataframe(
        pd.DataFrame(data) if data else pd.DataFrame(columns=["Name", "Email", "Role", "Joined"]),
        use_container_width=True, hide_index=True,
    )
    if not can_manage:
        st.caption("Only the project owner or an admin can manage members.")
        return

    with st.form(f"invite_member_{project['id']}", clear_on_submit=True):
        inv_email = st.text_input("Add by email")
        role_new = st.selectbox("Role", ROLE_OPTIONS, index=ROLE_OPTIONS.index("member"))
        add_btn = st.form_submit_button("Add")
    if add_btn and inv_email:
        report(sync.add_member(project["id"], role=role_new, email=inv_email), f"Added {inv_email} as {role_new}")

    removable = {m["id"]: m["email"] for m in project["members"] if m["id"] != project["owner_id"]}
    if removable:
        c1, c2 = st.columns([3, 1])
        target = c1.selectbox("Remove member", list(removable), format_func=removable.get,
                              key=f"remove_pick_{project['id']}")
        if c2.button("Remove", key=f"remove_member_{project['id']}"):
            report(sync.remove_member(project["id"], target), "Member removed.")
