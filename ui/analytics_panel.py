# ui/analytics_panel.py
from datetime import date

import pandas as pd
import plotly.express as px
import streamlit as st

from ui.tasks_panel import STATUS_LABELS
from utils.progress import task_stats
from utils.timeline import timeline_df

STATUS_COLORS = {
    "To-Do": "#9CA3AF",
    "In Progress": "#2563EB",
    "Review": "#D97706",
    "Done": "#16A34A",
}


def render_analytics_panel(sync, project=None):
    scope_all = project is None or st.toggle("All my projects", value=False, key="analytics_scope")
    tasks = sync.all_tasks if scope_all else sync.tasks
    st.subheader("All projects" if scope_all else f"{project['name']} analytics")

    stats = task_stats(tasks, date.today())
    c1, c2, c3, c4 = st.columns(4)
    with c1: st.metric("Tasks", stats["total"])
    with c2: st.metric("High priority", stats["high_priority"])
    with c3: st.metric("Overdue", stats["overdue"])
    with c4: st.metric("Complete", f"{stats['completion_rate']}%")

    st.markdown("---")
    col1, col2 = st.columns(2, gap="medium")
    with col1:
        st.markdown("**Distribution by Status**")
        status_counts = pd.DataFrame(
            [{"status": STATUS_LABELS[s], "count": n} for s, n in stats["by_status"].items() if s in STATUS_LABELS]
        )
        fig_status = px.bar(status_counts, y="status", x="count", text="count", orientation="h",
                            color="status", color_discrete_map=STATUS_COLORS)
        fig_status.update_traces(textposition="outside")
        fig_status.update_layout(margin=dict(l=10, r=10, t=10, b=10), yaxis_title="", xaxis_title="",
                                 showlegend=False)
        st.plotly_chart(fig_status, use_container_width=True, config={"displaylogo": False})
    with col2:
        st.markdown("**Workload by Assignee**")
        names = [(t["assignee"] or {}).get("name", "Unassigned") for t in tasks]
        if names:
            workload = pd.Series(names).value_counts(ascending=True).rename_axis("assignee").reset_index(name="count")
            fig_assignee = px.bar(workload, y="assignee", x="count", text="count", orientation="h")
            fig_assignee.update_traces(textposition="outside")
            fig_assignee.update_layout(margin=dict(l=10, r=10, t=10, b=10), yaxis_title="", xaxis_title="")
            st.plotly_chart(fig_assignee, use_container_width=True, config={"displaylogo": False})
        else:
            st.info("No tasks to chart.")

    st.markdown("---")
    st.markdown("### Timeline")
    df = timeline_df(tasks)
    if df.empty:
        st.info("Add due dates to tasks to see the timeline.")
    else:
        df["Status"] = df["Status"].map(lambda s: STATUS_LABELS.get(s, s))
        fig = px.timeline(df, x_start="Start", x_end="Finish", y="Item",
                          color="Status", color_discrete_map=STATUS_COLORS,
                          hover_data=["Priority", "Assignee"])
        fig.update_yaxes(autorange="reversed")
        st.plotly_chart(fig, use_container_width=True)
