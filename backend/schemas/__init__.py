# schemas/__init__.py
from schemas.task_definitions import (
    TaskCategory,
    TaskStatus,
    Priority,
    ConversationState,
    TaskCreate,
    TaskRequest,
    ChatRequest,
    ChatTurnResult,
)

__all__ = [
    "TaskCategory",
    "TaskStatus",
    "Priority",
    "ConversationState",
    "TaskCreate",
    "TaskRequest",
    "ChatRequest",
    "ChatTurnResult",
]
