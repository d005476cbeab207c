"""
Task Desk - Admin Dashboard
===========================
Streamlit-based admin dashboard for the task intake API.

Features:
- Task request list with status/service filters and pagination
- Status breakdown
- Task detail view with status update
- API health

Run: streamlit run admin/dashboard.py
"""

import os
import sys
from typing import Optional, List, Dict, Any

import streamlit as st
import pandas as pd

sys.path.insert(0, os.path.dirname(__file__))

from api_client import IntakeApiClient, IntakeApiError


# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Task Intake - Task Desk",
    page_icon="🗂️",
    layout="wide",
    initial_sidebar_state="expanded",
)


# =============================================================================
# CONSTANTS
# =============================================================================

STATUSES = ["pending", "in-progress", "completed", "cancelled", "on-hold"]
UPDATABLE_STATUSES = ["pending", "in-progress", "completed", "cancelled"]

STATUS_EMOJI = {
    "pending": "⏳",
    "in-progress": "⚙️",
    "completed": "✅",
    "cancelled": "🚫",
    "on-hold": "⏸️",
}

SERVICE_FILTERS = {
    "All": None,
    "Administrative Support": "administrative_tasks",
    "Calendar Management": "meeting_management",
    "Email Management": "email_management",
    "Research & Analysis": "research_data_collection",
    "Travel Planning": "travel_planning",
    "Project Management": "project_management",
    "Social Media Management": "social_media_management",
    "Content Creation": "content_creation",
    "Data Processing": "data_processing",
    "Customer Support": "customer_support",
    "Financial Tasks": "financial_tasks",
    "General Support": "general_support",
}

TABLE_COLUMNS = ["id", "createdAt", "name", "email", "taskCategory", "priority", "deadline", "status"]


# =============================================================================
# DATA FETCHING
# =============================================================================

@st.cache_resource
def get_client() -> IntakeApiClient:
    return IntakeApiClient()


@st.cache_data(ttl=10)
def fetch_tasks(page: int, limit: int, status: Optional[str], task_type: Optional[str]) -> Dict[str, Any]:
    """Fetch one page of tasks with 10s cache."""
    try:
        return get_client().list_tasks(page=page, limit=limit, status=status, task_type=task_type)
    except IntakeApiError as e:
        return {"success": False, "message": str(e)}


@st.cache_data(ttl=30)
def fetch_status_counts() -> Dict[str, int]:
    """Totals per status, read from the pagination metadata."""
    counts = {}
    for status in STATUSES:
        try:
            body = get_client().list_tasks(page=1, limit=1, status=status)
        except IntakeApiError:
            return {}
        counts[status] = body.get("pagination", {}).get("total", 0)
    return counts


@st.cache_data(ttl=30)
def fetch_health() -> Dict[str, Any]:
    try:
        return get_client().health()
    except IntakeApiError as e:
        return {"status": "DOWN", "message": str(e)}


def fetch_task(task_id: str) -> Dict[str, Any]:
    try:
        return get_client().get_task(task_id)
    except IntakeApiError as e:
        return {"success": False, "message": str(e)}


# =============================================================================
# SIDEBAR
# =============================================================================

def render_sidebar():
    """Render sidebar with navigation and quick stats."""
    st.sidebar.title("🗂️ Task Desk")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigation",
        ["📋 Task Requests", "🔎 Task Detail", "💚 Service Health"],
        label_visibility="collapsed"
    )

    st.sidebar.markdown("---")
    st.sidebar.subheader("Quick Stats")

    counts = fetch_status_counts()
    if counts:
        st.sidebar.metric("Pending", counts.get("pending", 0))
        st.sidebar.metric("In Progress", counts.get("in-progress", 0))
    else:
        st.sidebar.warning("API unreachable")

    st.sidebar.markdown("---")

    if st.sidebar.button("🔄 Refresh Data"):
        st.cache_data.clear()
        st.rerun()

    return page


# =============================================================================
# TASK LIST
# =============================================================================

def tasks_frame(tasks: List[Dict[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(tasks)
    for column in TABLE_COLUMNS:
        if column not in df.columns:
            df[column] = None
    df["createdAt"] = pd.to_datetime(df["createdAt"]).dt.strftime("%Y-%m-%d %H:%M")
    df["status"] = df["status"].apply(lambda s: f"{STATUS_EMOJI.get(s, '')} {s}")
    return df[TABLE_COLUMNS]


def render_task_list():
    """Render the task request list page."""
    st.title("📋 Task Requests")
    st.markdown("Newest submissions first")

    counts = fetch_status_counts()
    if counts:
        cols = st.columns(len(counts))
        for i, (status, count) in enumerate(counts.items()):
            with cols[i]:
                st.metric(f"{STATUS_EMOJI.get(status, '')} {status.title()}", count)
        st.markdown("---")

    col1, col2, col3 = st.columns(3)
    with col1:
        status_filter = st.selectbox("Status", ["All"] + STATUSES)
    with col2:
        service_filter = st.selectbox("Service", list(SERVICE_FILTERS.keys()))
    with col3:
        limit = st.selectbox("Per page", [10, 25, 50, 100])

    page = st.number_input("Page", min_value=1, value=1, step=1)

    body = fetch_tasks(
        int(page),
        int(limit),
        None if status_filter == "All" else status_filter,
        SERVICE_FILTERS[service_filter],
    )

    if not body.get("success"):
        st.error(f"Error fetching tasks: {body.get('message', 'unknown error')}")
        return

    tasks = body.get("data", [])
    pagination = body.get("pagination", {})
    st.caption(
        f"Page {pagination.get('current', page)} of {max(pagination.get('pages', 1), 1)} "
        f"· {pagination.get('total', 0)} requests"
    )

    if not tasks:
        st.info("No task requests match these filters")
        return

    st.dataframe(tasks_frame(tasks), use_container_width=True, hide_index=True)


# =============================================================================
# TASK DETAIL
# =============================================================================

def render_task_detail():
    """Render one task with a status update control."""
    st.title("🔎 Task Detail")

    task_id = st.text_input("Task request ID").strip()
    if not task_id:
        st.info("Paste a task request ID from the list")
        return

    body = fetch_task(task_id)
    if not body.get("success"):
        st.error(body.get("message", "Task request not found"))
        return

    task = body["data"]
    status = task.get("status", "pending")

    col1, col2 = st.columns([3, 1])
    with col1:
        st.subheader(f"{task.get('name')} · {task.get('email')}")
        st.write(f"**Service:** {task.get('taskCategory')} ({task.get('taskType')})")
        st.write(f"**Company:** {task.get('company') or '-'}")
        st.write(f"**Priority:** {task.get('priority')}")
        st.write(f"**Deadline:** {task.get('deadline') or '-'}")
        st.write(f"**Budget:** {task.get('budget') or '-'}")
        st.write(f"**Contact via:** {task.get('communicationMethod')}")
        st.write("**Description:**")
        st.write(task.get("description", ""))
        if task.get("additionalDetails"):
            st.write(f"**Additional details:** {task['additionalDetails']}")

    with col2:
        st.metric("Status", f"{STATUS_EMOJI.get(status, '')} {status}")
        new_status = st.selectbox(
            "Change status",
            UPDATABLE_STATUSES,
            index=UPDATABLE_STATUSES.index(status) if status in UPDATABLE_STATUSES else 0,
        )
        if st.button("💾 Update status", disabled=new_status == status):
            try:
                result = get_client().update_status(task_id, new_status)
            except IntakeApiError as e:
                st.error(str(e))
                return
            if result.get("success"):
                st.success(result.get("message", "Status updated"))
                st.cache_data.clear()
                st.rerun()
            else:
                st.error(result.get("message", "Status update failed"))

    conversation = task.get("conversationData")
    if conversation:
        with st.expander("View conversation data"):
            st.json(conversation)

    st.caption(
        f"Created {task.get('createdAt')} · Updated {task.get('updatedAt')} · "
        f"From {task.get('ipAddress') or 'unknown'}"
    )


# =============================================================================
# SERVICE HEALTH
# =============================================================================

def render_service_health():
    """Render API health."""
    st.title("💚 Service Health")

    health = fetch_health()
    healthy = health.get("status") == "OK"

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("API", "🟢 Up" if healthy else "🔴 Down")
    with col2:
        st.metric("Task store", health.get("storage", "-"))
    with col3:
        st.metric("Chat engine", health.get("assistant", "-"))

    st.write(health.get("message", ""))
    if health.get("timestamp"):
        st.caption(f"Checked at {health['timestamp']}")
    if health.get("storage") == "memory":
        st.warning("Task requests are held in memory and will be lost on restart")


# =============================================================================
# MAIN
# =============================================================================

def main():
    """Main dashboard entry point."""
    page = render_sidebar()

    if page == "📋 Task Requests":
        render_task_list()
    elif page == "🔎 Task Detail":
        render_task_detail()
    elif page == "💚 Service Health":
        render_service_health()


if __name__ == "__main__":
    main()
