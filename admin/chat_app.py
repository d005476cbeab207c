"""
Intake Chat - Client Chat UI
============================
Streamlit chat front-end for the task intake assistant.

Features:
- Conversational intake driven by POST /api/ai/chat
- Service shortcut buttons (category pre-selected)
- Collected-data summary with progress
- Submission to POST /api/tasks once the assistant reports ready

Run: streamlit run admin/chat_app.py
"""

import os
import sys
from typing import Dict, Any, List

import streamlit as st

sys.path.insert(0, os.path.dirname(__file__))

from api_client import IntakeApiClient, IntakeApiError


# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Virtual Assistant - Task Intake",
    page_icon="🤝",
    layout="wide",
    initial_sidebar_state="expanded",
)


# =============================================================================
# CONSTANTS
# =============================================================================

GREETING = (
    "Hello! I'm your Professional Virtual Assistant. I'm here to help you with business "
    "tasks like administrative support, scheduling, email management, research, and much "
    "more. What can I assist you with today?"
)
SUBMITTED_MESSAGE = (
    "Perfect! Your business request has been successfully submitted. Our team will review "
    "your requirements and get back to you within 24 hours with a detailed proposal and next "
    "steps. Thank you for choosing our virtual assistant services!"
)
FOLLOW_UP_MESSAGE = (
    "Is there another business task I can help you with today? I'm here to support all your "
    "professional needs!"
)
CHAT_ERROR_MESSAGE = (
    "I apologize for the technical difficulty. Could you please try again? Our system is "
    "working to resolve this issue."
)
SUBMIT_ERROR_MESSAGE = (
    "I apologize, but there was an error submitting your request. Please try again, or "
    "contact our support team directly if the issue persists."
)

SERVICES = [
    ("💼", "Administrative Support"),
    ("📅", "Calendar Management"),
    ("📧", "Email Management"),
    ("🔍", "Research & Analysis"),
    ("✈️", "Travel Planning"),
    ("📊", "Data Processing"),
    ("📞", "Customer Support"),
    ("💰", "Financial Tasks"),
]

# Fields counted in the progress summary
TRACKED_FIELDS = [
    ("name", "Name"),
    ("email", "Email"),
    ("company", "Company"),
    ("taskCategory", "Service"),
    ("description", "Description"),
    ("priority", "Priority"),
    ("deadline", "Deadline"),
    ("budget", "Budget"),
]

HISTORY_LIMIT = 20


# =============================================================================
# SESSION STATE
# =============================================================================

def get_client() -> IntakeApiClient:
    if "client" not in st.session_state:
        st.session_state.client = IntakeApiClient()
    return st.session_state.client


def init_state():
    if "messages" not in st.session_state:
        st.session_state.messages = [{"role": "assistant", "content": GREETING}]
    if "collected" not in st.session_state:
        st.session_state.collected = {}
    if "ready" not in st.session_state:
        st.session_state.ready = False


def add_message(role: str, content: str):
    st.session_state.messages.append({"role": role, "content": content})


def history() -> List[Dict[str, str]]:
    """Prior turns in wire shape, newest HISTORY_LIMIT only."""
    return [
        {"role": msg["role"], "content": msg["content"]}
        for msg in st.session_state.messages[-HISTORY_LIMIT:]
    ]


def collected_count(collected: Dict[str, Any]) -> int:
    return sum(1 for key, _ in TRACKED_FIELDS if collected.get(key))


# =============================================================================
# ACTIONS
# =============================================================================

def send_message(text: str, collected: Dict[str, Any]):
    """One chat turn; the server's collectedData becomes the new field-set."""
    prior = history()
    add_message("user", text)

    try:
        body = get_client().chat(text, prior, collected)
    except IntakeApiError:
        add_message("assistant", CHAT_ERROR_MESSAGE)
        return

    data = body.get("data") if body.get("success") else None
    if not data:
        add_message("assistant", CHAT_ERROR_MESSAGE)
        return

    if data.get("message"):
        add_message("assistant", data["message"])
    if isinstance(data.get("collectedData"), dict):
        st.session_state.collected = data["collectedData"]
    if isinstance(data.get("ready"), bool):
        st.session_state.ready = data["ready"]


def select_service(service: str):
    collected = {
        **st.session_state.collected,
        "taskCategory": service,
        "servicePreSelected": True,
    }
    send_message(f"I need help with {service}", collected)


def submit_request():
    if not st.session_state.ready:
        return

    payload = {key: value for key, value in st.session_state.collected.items() if value not in (None, "")}
    payload["conversationData"] = dict(st.session_state.collected)
    payload.pop("servicePreSelected", None)

    try:
        body = get_client().submit_task(payload)
    except IntakeApiError:
        add_message("assistant", SUBMIT_ERROR_MESSAGE)
        return

    if not body.get("success"):
        add_message("assistant", SUBMIT_ERROR_MESSAGE)
        return

    add_message("assistant", SUBMITTED_MESSAGE)
    add_message("assistant", FOLLOW_UP_MESSAGE)
    st.session_state.collected = {}
    st.session_state.ready = False


def reset_conversation():
    st.session_state.messages = [{"role": "assistant", "content": GREETING}]
    st.session_state.collected = {}
    st.session_state.ready = False


# =============================================================================
# SIDEBAR
# =============================================================================

def render_sidebar():
    """Progress summary and service shortcuts."""
    collected = st.session_state.collected

    st.sidebar.title("🤝 Session")
    col1, col2 = st.sidebar.columns(2)
    with col1:
        st.metric("Data Collected", f"{collected_count(collected)}/{len(TRACKED_FIELDS)}")
    with col2:
        st.metric("Status", "Ready" if st.session_state.ready else "In Progress")

    with st.sidebar.expander("Collected details", expanded=False):
        for key, label in TRACKED_FIELDS:
            st.write(f"**{label}:** {collected.get(key) or '-'}")

    st.sidebar.markdown("---")
    st.sidebar.subheader("Services")
    for icon, service in SERVICES:
        if st.sidebar.button(f"{icon} {service}", key=f"service_{service}", use_container_width=True):
            select_service(service)
            st.rerun()

    st.sidebar.markdown("---")
    if st.sidebar.button("🔄 New conversation"):
        reset_conversation()
        st.rerun()


# =============================================================================
# MAIN
# =============================================================================

def main():
    """Chat page entry point."""
    init_state()
    render_sidebar()

    st.title("Professional Virtual Assistant")

    for msg in st.session_state.messages:
        with st.chat_message(msg["role"]):
            st.markdown(msg["content"])

    if st.session_state.ready:
        st.success("All the details are in. Submit your request when you're ready.")
        if st.button("📨 Submit request", type="primary"):
            with st.spinner("Submitting..."):
                submit_request()
            st.rerun()

    prompt = st.chat_input("Type your message...")
    if prompt and prompt.strip():
        with st.spinner("Thinking..."):
            send_message(prompt.strip()[:1000], dict(st.session_state.collected))
        st.rerun()


if __name__ == "__main__":
    main()
