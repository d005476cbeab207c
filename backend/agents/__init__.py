# agents/__init__.py
from agents.intake_extractor import (
    ExtractionRule,
    extract_fields,
    get_missing_fields,
    is_conversation_complete,
    next_prompt,
    generate_rule_based_response,
)

from agents.assistant_bridge import (
    AssistantBridge,
    AssistantConfig,
    AssistantUnavailableError,
    get_assistant_bridge,
    respond,
)

__all__ = [
    # Rule-based extractor
    "ExtractionRule",
    "extract_fields",
    "get_missing_fields",
    "is_conversation_complete",
    "next_prompt",
    "generate_rule_based_response",
    # Assistant bridge (language model delegate)
    "AssistantBridge",
    "AssistantConfig",
    "AssistantUnavailableError",
    "get_assistant_bridge",
    "respond",
]
