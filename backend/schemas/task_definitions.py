# schemas/task_definitions.py
# ============================================================================
# TASK INTAKE ASSISTANT — TASK & CONVERSATION SCHEMAS
# ============================================================================
# Purpose: Type-safe definitions for submitted task requests, the
# conversation field-set round-tripped by the chat UI, and chat wire types.
#
# WIRE FORMAT:
# - Python attributes are snake_case
# - JSON bodies are camelCase (alias generator), both accepted on input
# ============================================================================

from typing import Dict, Any, List, Optional, Literal
from datetime import datetime, timezone
from enum import Enum
import json
import re
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# SECTION 1: ENUMS
# ============================================================================

class TaskCategory(str, Enum):
    ADMINISTRATIVE_TASKS = "administrative_tasks"
    MEETING_MANAGEMENT = "meeting_management"
    EMAIL_MANAGEMENT = "email_management"
    RESEARCH_DATA_COLLECTION = "research_data_collection"
    TRAVEL_PLANNING = "travel_planning"
    PROJECT_MANAGEMENT = "project_management"
    CLIENT_RELATIONSHIP_MANAGEMENT = "client_relationship_management"
    SOCIAL_MEDIA_MANAGEMENT = "social_media_management"
    CONTENT_CREATION = "content_creation"
    TECHNICAL_SUPPORT = "technical_support"
    DATA_PROCESSING = "data_processing"
    CUSTOMER_SUPPORT = "customer_support"
    FINANCIAL_TASKS = "financial_tasks"
    GENERAL_SUPPORT = "general_support"
    # Legacy support
    MEETING = "meeting"
    REMINDER = "reminder"
    SUPPORT = "support"
    SCHEDULING = "scheduling"
    OTHER = "other"


class LegacyTaskType(str, Enum):
    MEETING = "meeting"
    REMINDER = "reminder"
    SUPPORT = "support"
    SCHEDULING = "scheduling"
    OTHER = "other"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on-hold"


# Values accepted by the status-update endpoint (on-hold is set elsewhere)
UPDATABLE_STATUSES = (
    TaskStatus.PENDING,
    TaskStatus.IN_PROGRESS,
    TaskStatus.COMPLETED,
    TaskStatus.CANCELLED,
)


class CommunicationMethod(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    VIDEO_CALL = "video_call"
    SLACK = "slack"
    TEAMS = "teams"
    OTHER = "other"


# ============================================================================
# SECTION 2: CATEGORY LABELS & NORMALIZATION
# ============================================================================

# Display labels used in conversation (chat UI buttons, extractor prompts)
CATEGORY_LABELS: Dict[TaskCategory, str] = {
    TaskCategory.ADMINISTRATIVE_TASKS: "Administrative Support",
    TaskCategory.MEETING_MANAGEMENT: "Calendar Management",
    TaskCategory.EMAIL_MANAGEMENT: "Email Management",
    TaskCategory.RESEARCH_DATA_COLLECTION: "Research & Analysis",
    TaskCategory.TRAVEL_PLANNING: "Travel Planning",
    TaskCategory.PROJECT_MANAGEMENT: "Project Management",
    TaskCategory.CLIENT_RELATIONSHIP_MANAGEMENT: "Client Relationship Management",
    TaskCategory.SOCIAL_MEDIA_MANAGEMENT: "Social Media Management",
    TaskCategory.CONTENT_CREATION: "Content Creation",
    TaskCategory.TECHNICAL_SUPPORT: "Technical Support",
    TaskCategory.DATA_PROCESSING: "Data Processing",
    TaskCategory.CUSTOMER_SUPPORT: "Customer Support",
    TaskCategory.FINANCIAL_TASKS: "Financial Tasks",
    TaskCategory.GENERAL_SUPPORT: "General Support",
}

LEGACY_TYPE_FOR_CATEGORY: Dict[TaskCategory, LegacyTaskType] = {
    TaskCategory.MEETING_MANAGEMENT: LegacyTaskType.MEETING,
    TaskCategory.TECHNICAL_SUPPORT: LegacyTaskType.SUPPORT,
    TaskCategory.CUSTOMER_SUPPORT: LegacyTaskType.SUPPORT,
    TaskCategory.GENERAL_SUPPORT: LegacyTaskType.SUPPORT,
    TaskCategory.MEETING: LegacyTaskType.MEETING,
    TaskCategory.REMINDER: LegacyTaskType.REMINDER,
    TaskCategory.SUPPORT: LegacyTaskType.SUPPORT,
    TaskCategory.SCHEDULING: LegacyTaskType.SCHEDULING,
    TaskCategory.OTHER: LegacyTaskType.OTHER,
}

_LABEL_LOOKUP = {label.lower(): category for category, label in CATEGORY_LABELS.items()}


def normalize_category(value: Optional[str]) -> Optional[TaskCategory]:
    """Map a category code or display label (any case) to a TaskCategory."""
    if not value:
        return None
    key = value.strip().lower()
    if key in _LABEL_LOOKUP:
        return _LABEL_LOOKUP[key]
    try:
        return TaskCategory(key.replace(" ", "_"))
    except ValueError:
        return None


def category_label(value: Optional[str]) -> Optional[str]:
    """Display label for a code or label; None when unrecognized."""
    category = normalize_category(value)
    if category is None:
        return None
    return CATEGORY_LABELS.get(category, category.value.replace("_", " ").title())


def legacy_type_for(category: TaskCategory) -> LegacyTaskType:
    return LEGACY_TYPE_FOR_CATEGORY.get(category, LegacyTaskType.OTHER)


_COMMUNICATION_KEYWORDS = [
    (CommunicationMethod.VIDEO_CALL, ("video", "zoom", "meet", "webex", "facetime")),
    (CommunicationMethod.SLACK, ("slack",)),
    (CommunicationMethod.TEAMS, ("teams",)),
    (CommunicationMethod.PHONE, ("phone", "call", "text", "sms", "whatsapp")),
    (CommunicationMethod.EMAIL, ("email", "e-mail", "mail")),
]


def normalize_communication_method(value: Optional[str]) -> CommunicationMethod:
    """Map free text ("weekly zoom calls") onto a CommunicationMethod."""
    if not value:
        return CommunicationMethod.EMAIL
    text = value.strip().lower()
    try:
        return CommunicationMethod(text)
    except ValueError:
        pass
    for method, keywords in _COMMUNICATION_KEYWORDS:
        if any(kw in text for kw in keywords):
            return method
    return CommunicationMethod.OTHER


def normalize_priority(value: Optional[str]) -> Optional[Priority]:
    """Read a priority from text like "high - client demo on Friday"."""
    if not value:
        return None
    text = value.strip().lower()
    for priority in (Priority.URGENT, Priority.HIGH, Priority.MEDIUM, Priority.LOW):
        if text.startswith(priority.value):
            return priority
    return None


EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}$")


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value or ""))


def _blank_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


# ============================================================================
# SECTION 3: SHARED BASE
# ============================================================================

class CamelModel(BaseModel):
    """Snake_case attributes, camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# SECTION 4: CONVERSATION STATE (FIELD-SET)
# ============================================================================

class ConversationState(CamelModel):
    """
    Field-set accumulated turn by turn and round-tripped by the chat UI.

    Immutable: each turn produces a new state via ``model_copy(update=...)``.
    Unknown keys sent by the client are ignored.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    task_category: Optional[str] = None
    task_subtype: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    deadline: Optional[str] = None
    budget: Optional[str] = None
    communication_method: Optional[str] = None
    additional_details: Optional[str] = None
    service_pre_selected: bool = False

    @field_validator(
        "name", "email", "company", "task_category", "task_subtype", "description",
        "priority", "deadline", "budget", "communication_method", "additional_details",
        mode="before",
    )
    @classmethod
    def _strip_blank(cls, value: Any) -> Any:
        # Client-side state is loosely typed; structured values become JSON text
        value = _blank_to_none(value)
        if isinstance(value, bool):
            return None
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False) if value else None
        if value is not None and not isinstance(value, str):
            return str(value)
        return value

    @field_validator("service_pre_selected", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return value is True or value == 1

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    def to_task_payload(self) -> Dict[str, Any]:
        """Submission body for POST /api/tasks."""
        payload = self.model_dump(by_alias=True, exclude_none=True, exclude={"service_pre_selected"})
        payload["conversationData"] = self.to_wire()
        return payload


# ============================================================================
# SECTION 5: TASK REQUEST (SUBMISSION + STORED RECORD)
# ============================================================================

class TaskCreate(CamelModel):
    """
    Body of POST /api/tasks.

    Accepts the current field names plus the legacy aliases
    taskType/message/schedule. Blank strings count as absent.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    name: str = Field(min_length=2, max_length=100)
    email: str
    company: Optional[str] = Field(default=None, max_length=200)
    task_category: Optional[str] = None
    task_subtype: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10, max_length=2000)
    priority: Optional[Priority] = None
    deadline: Optional[str] = Field(default=None, max_length=200)
    budget: Optional[str] = Field(default=None, max_length=100)
    communication_method: Optional[str] = None
    additional_details: Optional[str] = Field(default=None, max_length=1000)

    # Legacy fields
    task_type: Optional[LegacyTaskType] = None
    message: Optional[str] = Field(default=None, min_length=10, max_length=1000)
    schedule: Optional[str] = Field(default=None, max_length=200)

    conversation_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator(
        "name", "company", "task_category", "task_subtype", "description", "priority",
        "deadline", "budget", "communication_method", "additional_details", "task_type",
        "message", "schedule",
        mode="before",
    )
    @classmethod
    def _strip_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _lower_priority(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def _validate_email(cls, value: Any) -> str:
        email = (value or "").strip() if isinstance(value, str) else ""
        if not is_valid_email(email):
            raise ValueError("Please provide a valid email address")
        return email.lower()

    @field_validator("task_category")
    @classmethod
    def _validate_category(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        category = normalize_category(value)
        if category is None:
            raise ValueError("Invalid task category")
        return category.value

    @field_validator("conversation_data", mode="before")
    @classmethod
    def _default_conversation(cls, value: Any) -> Any:
        return {} if value is None else value

    @model_validator(mode="after")
    def _require_description(self) -> "TaskCreate":
        if not (self.description or self.message):
            raise ValueError("Description must be between 10 and 2000 characters")
        return self

    def resolved_category(self) -> TaskCategory:
        if self.task_category:
            return TaskCategory(self.task_category)
        if self.task_type:
            return TaskCategory(self.task_type.value)
        return TaskCategory.GENERAL_SUPPORT


class TaskRequest(CamelModel):
    """A submitted lead. ``id`` and ``created_at`` never change after creation."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    email: str
    company: Optional[str] = None
    task_category: TaskCategory = TaskCategory.GENERAL_SUPPORT
    task_subtype: Optional[str] = None
    description: str
    deadline: Optional[str] = None
    budget: Optional[str] = None
    communication_method: CommunicationMethod = CommunicationMethod.EMAIL
    additional_details: Optional[str] = None
    task_type: LegacyTaskType = LegacyTaskType.OTHER
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    conversation_data: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_submission(
        cls,
        payload: TaskCreate,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> "TaskRequest":
        """Map a validated submission (legacy names included) onto a record."""
        category = payload.resolved_category()
        return cls(
            name=payload.name,
            email=payload.email,
            company=payload.company,
            task_category=category,
            task_subtype=payload.task_subtype,
            description=payload.description or payload.message,
            deadline=payload.deadline or payload.schedule,
            budget=payload.budget,
            communication_method=normalize_communication_method(payload.communication_method),
            additional_details=payload.additional_details,
            task_type=payload.task_type or legacy_type_for(category),
            priority=payload.priority or Priority.MEDIUM,
            conversation_data=payload.conversation_data,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def with_status(self, status: TaskStatus) -> "TaskRequest":
        return self.model_copy(update={"status": status, "updated_at": utcnow()})

    @property
    def category_label(self) -> str:
        return CATEGORY_LABELS.get(self.task_category, self.task_category.value.replace("_", " ").title())

    def to_full(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_public(self) -> Dict[str, Any]:
        """Listing view: internal audit fields stripped."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"conversation_data", "ip_address", "user_agent"},
        )

    def to_summary(self) -> Dict[str, Any]:
        return self.model_dump(
            mode="json",
            by_alias=True,
            include={"id", "name", "email", "task_type", "task_category", "status", "created_at"},
        )


class TaskStatusUpdate(BaseModel):
    """Body of PATCH /api/tasks/{id}/status."""
    status: TaskStatus

    @field_validator("status", mode="before")
    @classmethod
    def _validate_status(cls, value: Any) -> TaskStatus:
        allowed = [s.value for s in UPDATABLE_STATUSES]
        if value not in allowed:
            raise ValueError(f"Status must be one of: {', '.join(allowed)}")
        return TaskStatus(value)


# ============================================================================
# SECTION 6: CHAT WIRE TYPES
# ============================================================================

class ChatHistoryTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(max_length=4000)


class ChatRequest(CamelModel):
    """Body of POST /api/ai/chat."""
    message: str = Field(min_length=1, max_length=1000)
    conversation_history: List[ChatHistoryTurn] = Field(default_factory=list, max_length=20)
    conversation_data: ConversationState = Field(default_factory=ConversationState)

    @field_validator("message", mode="before")
    @classmethod
    def _strip_message(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("conversation_history", "conversation_data", mode="before")
    @classmethod
    def _null_as_default(cls, value: Any, info) -> Any:
        if value is None:
            return [] if info.field_name == "conversation_history" else {}
        return value


class ChatTurnResult(CamelModel):
    """One chat turn, whether produced by the language model or the rules."""
    message: str
    needs_more_info: bool = True
    collected_data: ConversationState = Field(default_factory=ConversationState)
    missing_fields: List[str] = Field(default_factory=list)
    ready: bool = False
    suggested_next_steps: List[str] = Field(default_factory=list)
    estimated_timeline: str = ""
    source: Literal["assistant", "rules"] = "rules"

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# ============================================================================
# SECTION 7: EXPORTS
# ============================================================================

__all__ = [
    # Enums
    "TaskCategory",
    "LegacyTaskType",
    "Priority",
    "TaskStatus",
    "CommunicationMethod",
    "UPDATABLE_STATUSES",

    # Normalization
    "CATEGORY_LABELS",
    "normalize_category",
    "category_label",
    "legacy_type_for",
    "normalize_communication_method",
    "normalize_priority",
    "is_valid_email",
    "utcnow",

    # Models
    "CamelModel",
    "ConversationState",
    "TaskCreate",
    "TaskRequest",
    "TaskStatusUpdate",
    "ChatHistoryTurn",
    "ChatRequest",
    "ChatTurnResult",
]
