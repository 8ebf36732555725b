# main.py

#============================================================#
#                         Crewboard                          #
#============================================================#
# Purpose     : Team project and task tracker with member    #
#               roles, comments, an admin console and Plotly #
#               timelines (SQLite/Postgres powered)          #
#============================================================#

import logging

import streamlit as st

from db import default_engine
from services.coordinator import build_coordinator
from services.sync import Synchronizer
from settings import configure_logging, load_settings
from ui.admin_panel import render_admin_panel
from ui.analytics_panel import render_analytics_panel
from ui.feedback import force_rerun, report
from ui.members_panel import render_members_panel
from ui.projects_panel import render_new_project, render_project_picker, render_project_settings
from ui.tasks_panel import render_tasks_panel

logger = logging.getLogger(__name__)


st.set_page_config(
    page_title="Crewboard",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ======================  GLOBAL CSS  ======================
st.markdown("""
<style>
:root{
  --tab-active:#2563eb;
  --tab-bg:#f6f7fb;
  --tab-text:#374151;
}
.stTabs [role="tablist"]{gap:10px;padding:6px 2px 14px 2px;border-bottom:0;}
.stTabs [role="tab"]{
  background:var(--tab-bg); color:var(--tab-text);
  border:1px solid #e5e7eb; border-radius:999px; padding:10px 16px;
  font-weight:600; transition:all .18s;
}
.stTabs [role="tab"][aria-selected="true"]{
  background:var(--tab-active); color:#fff; border-color:transparent;
  box-shadow:0 10px 24px rgba(37,99,235,.25);
}
</style>
""", unsafe_allow_html=True)


# ======================  WIRING  ======================
@st.cache_resource
def _backend():
    settings = load_settings()
    configure_logging(settings)
    engine = default_engine(settings)
    logger.info("Crewboard started on %s", engine.url.render_as_string(hide_password=True))
    return build_coordinator(engine, settings)


def get_sync() -> Synchronizer:
    """One Synchronizer per browser session.

    The server process is shared by every browser, so the credential lives only
    in this session's memory and never in a server-side file.
    """
    if "sync" not in st.session_state:
        sync = Synchronizer(_backend())
        sync.start()
        st.session_state["sync"] = sync
    return st.session_state["sync"]


# ======================  AUTH GATE  ======================
def full_screen_login(sync: Synchronizer):
    st.markdown("""
    <style>
      [data-testid="stSidebar"] { display:none!important; }
      .main > div { padding-top: 6vh !important; }
    </style>
    """, unsafe_allow_html=True)
    _, col, _ = st.columns([1, 2.2, 1])
    with col:
        st.markdown("<h2 style='text-align:center;'>Crewboard</h2>", unsafe_allow_html=True)
        login_tab, signup_tab = st.tabs(["Sign in", "Create account"])
        with login_tab:
            with st.form("login_form"):
                email = st.text_input("Email", placeholder="you@example.com")
                password = st.text_input("Password", type="password")
                submitted = st.form_submit_button("Sign in", use_container_width=True)
            if submitted:
                if not email or not password:
                    st.warning("Please enter your email and password.")
                else:
                    outcome = sync.login(email, password)
                    if outcome.ok:
                        force_rerun()
                    else:
                        st.error(outcome.message)
        with signup_tab:
            with st.form("signup_form"):
                name = st.text_input("Name")
                new_email = st.text_input("Email", key="signup_email")
                new_password = st.text_input("Password", type="password", key="signup_password")
                confirm = st.text_input("Confirm password", type="password")
                created = st.form_submit_button("Create account", use_container_width=True)
            if created:
                if new_password != confirm:
                    st.warning("Passwords do not match.")
                else:
                    outcome = sync.signup(name, new_email, new_password)
                    if outcome.ok:
                        force_rerun()
                    else:
                        st.error(outcome.message)


def render_account_sidebar(sync: Synchronizer):
    user = sync.current_user
    with st.sidebar:
        st.markdown(f"**{user['name']}**  \n{user['email']}")
        if st.button("Sign out", use_container_width=True):
            sync.logout()
            force_rerun()
        with st.expander("Profile"):
            with st.form("profile_form"):
                name = st.text_input("Name", value=user["name"])
                avatar = st.text_input("Avatar URL", value=user.get("avatar") or "")
                save = st.form_submit_button("Save profile")
            if save:
                report(sync.update_user(user["id"], name=name, avatar=avatar or None), "Profile saved.")
            with st.form("password_form", clear_on_submit=True):
                current = st.text_input("Current password", type="password")
                new = st.text_input("New password", type="password")
                change = st.form_submit_button("Change password")
            if change:
                report(sync.change_password(current, new), "Password changed.", rerun=False)


# ======================  PAGE  ======================
sync = get_sync()
if sync.current_user is None:
    full_screen_login(sync)
    st.stop()

render_account_sidebar(sync)
render_project_picker(sync)

with st.sidebar:
    if st.button("Refresh", use_container_width=True):
        outcome = sync.refresh()
        if not outcome.ok:
            st.error(outcome.message)

if sync.current_user is None:
    force_rerun()

labels = ["Tasks", "Analytics", "Members", "Project"]
if sync.session.is_admin:
    labels.append("Admin")
tabs = st.tabs(labels)

project = sync.current_project
with tabs[0]:
    if project is None:
        st.info("Create or pick a project to start tracking tasks.")
        render_new_project(sync)
    else:
        render_tasks_panel(sync, project)
with tabs[1]:
    render_analytics_panel(sync, project)
with tabs[2]:
    if project is not None:
        render_members_panel(sync, project)
with tabs[3]:
    if project is not None:
        render_project_settings(sync, project)
    render_new_project(sync, key="new_project_tab")
if sync.session.is_admin:
    with tabs[4]:
        render_admin_panel(sync)
