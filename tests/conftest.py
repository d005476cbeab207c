import pytest
from fastapi.testclient import TestClient

from agents.assistant_bridge import AssistantBridge, AssistantConfig, get_assistant_bridge
from api.server import app
from schemas.task_definitions import ConversationState, TaskCreate, TaskRequest
from storage.task_store import InMemoryTaskStore, get_task_store


@pytest.fixture(autouse=True)
def no_outbound_email(monkeypatch):
    """Tests never talk to SendGrid unless they pass their own client."""
    monkeypatch.setenv("EMAIL_ENABLED", "false")
    monkeypatch.delenv("SENDGRID_API_KEY", raising=False)


@pytest.fixture
def store():
    return InMemoryTaskStore()


@pytest.fixture
def rules_bridge():
    """Bridge with no API key: every turn uses the rule-based extractor."""
    return AssistantBridge(config=AssistantConfig(openai_api_key="", anthropic_api_key=""))


@pytest.fixture
def client(store, rules_bridge):
    app.dependency_overrides[get_task_store] = lambda: store
    app.dependency_overrides[get_assistant_bridge] = lambda: rules_bridge
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def contact_state():
    return ConversationState(name="Jane Doe", email="jane@example.com")


@pytest.fixture
def complete_state():
    return ConversationState(
        name="Jane Doe",
        email="jane@example.com",
        task_category="Research & Analysis",
        description="Competitor pricing analysis for our Q3 planning",
        deadline="next Friday",
        priority="medium",
    )


def make_task(**overrides) -> TaskRequest:
    body = {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "taskCategory": "Travel Planning",
        "description": "Book flights and a hotel for the Berlin summit",
        "deadline": "next Friday",
    }
    body.update(overrides)
    return TaskRequest.from_submission(TaskCreate.model_validate(body))


@pytest.fixture
def task_factory():
    return make_task


@pytest.fixture
def valid_task_body():
    return {
        "name": "Jane Doe",
        "email": "Jane.Doe@Example.com",
        "company": "Acme Corp",
        "taskCategory": "Travel Planning",
        "description": "Book flights and a hotel for the Berlin summit in May",
        "priority": "high",
        "deadline": "next Friday",
        "budget": "$2,000",
        "communicationMethod": "Zoom calls",
        "conversationData": {"name": "Jane Doe", "servicePreSelected": False},
    }
