# agents/assistant_bridge.py
# ============================================================================
# TASK INTAKE ASSISTANT — ASSISTANT BRIDGE
# ============================================================================
# Purpose: Run one chat turn through an external language model
#
# ARCHITECTURE:
# - Builds the transcript (persona prompt, collected-data context, history)
# - Calls the model through LangChain, bounded by a fixed timeout
# - Parses the strict JSON reply into a ChatTurnResult
#
# FAILURE HANDLING:
# - No API key, timeout, transport error or malformed JSON all fall back
#   to the rule-based extractor on the same utterance and field-set
# - Never raises to the caller
# ============================================================================

import logging
import asyncio
import json
import os
import re
from dataclasses import dataclass
from typing import Dict, Any, Optional, List, Sequence

from langchain_core.messages import BaseMessage, SystemMessage, HumanMessage, AIMessage
from langchain_anthropic import ChatAnthropic
from langchain_openai import ChatOpenAI
from pydantic.alias_generators import to_camel

from schemas.task_definitions import (
    ConversationState,
    ChatHistoryTurn,
    ChatTurnResult,
    category_label,
    normalize_priority,
    is_valid_email,
)
from agents.intake_extractor import (
    ASSISTANT_NAME,
    CATEGORY_QUESTIONS,
    generate_rule_based_response,
    get_missing_fields,
    suggested_next_steps,
    estimate_timeline,
)

logger = logging.getLogger("TaskIntake.AssistantBridge")


class AssistantUnavailableError(Exception):
    """The language model cannot be called (no key, no client)."""


# ============================================================================
# SECTION 1: CONFIGURATION
# ============================================================================

@dataclass
class AssistantConfig:
    """Configuration for the language model delegate."""
    model: str = "gpt-4o-mini"
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    timeout_seconds: float = 10.0
    temperature: float = 0.7
    max_tokens: int = 500

    @classmethod
    def from_env(cls) -> "AssistantConfig":
        return cls(
            model=os.getenv("ASSISTANT_MODEL", "gpt-4o-mini"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            timeout_seconds=float(os.getenv("ASSISTANT_TIMEOUT", "10")),
            temperature=float(os.getenv("ASSISTANT_TEMPERATURE", "0.7")),
            max_tokens=int(os.getenv("ASSISTANT_MAX_TOKENS", "500")),
        )

    @property
    def api_key(self) -> str:
        """Key for the configured model family."""
        if self.model.startswith("claude"):
            return self.anthropic_api_key
        return self.openai_api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


def get_llm(model: str, temperature: float = 0.7, max_tokens: int = 500, api_key: Optional[str] = None):
    """Factory for LLM instances."""
    if model.startswith("claude"):
        return ChatAnthropic(model=model, temperature=temperature, max_tokens=max_tokens, api_key=api_key)
    elif model.startswith("gpt"):
        return ChatOpenAI(model=model, temperature=temperature, max_tokens=max_tokens, api_key=api_key)
    raise ValueError(f"Unknown model: {model}")


# ============================================================================
# SECTION 2: PROMPTS
# ============================================================================

_SERVICE_QUESTIONS = "\n".join(
    f"{category}: \"{question}\"" for category, question in CATEGORY_QUESTIONS.items()
)

SYSTEM_PROMPT = f"""You are {ASSISTANT_NAME} (Advanced Responsive Intelligence Assistant), a Virtual Assistant for business support and task management. You gather the details of a client's task request through a friendly, professional conversation.

SERVICES:
1. Administrative Support (correspondence, document management, data entry)
2. Calendar Management (scheduling, conflict resolution, agenda preparation)
3. Email Management (inbox organization, response drafting, campaigns)
4. Research & Analysis (market research, competitor analysis, data compilation)
5. Travel Planning (trip coordination, venue booking, logistics)
6. Project Management (timelines, resource coordination, progress tracking)
7. Client Relationship Management (follow-ups, contact databases)
8. Content Creation (social media, blogs, presentations)
9. Technical Support (software setup, workflow automation)
10. Financial Tasks (expense tracking, invoices, budget analysis)

REQUIRED BEFORE ready=true: name, email, taskCategory, a description of at least 15 characters, deadline.
Also collect when offered: company, taskSubtype, priority (urgent/high/medium/low), budget, communicationMethod, additionalDetails.

RULES:
- Ask for one missing item at a time, in this order: name, email, taskCategory, description, deadline.
- Never ask for information already present in the collected data or the conversation history.
- Urgency words (urgent, ASAP, immediately, critical) mean priority "urgent"; a deadline of "ASAP" is acceptable.
- When servicePreSelected is true, skip the category question and ask about the service requirements directly.
- Never invent values the client did not state or strongly imply.

SERVICE-SPECIFIC QUESTIONS:
{_SERVICE_QUESTIONS}

Respond with JSON only, no prose around it:
{{
  "message": "your reply to the client",
  "needsMoreInfo": true,
  "collectedData": {{
    "name": "", "email": "", "company": "", "taskCategory": "", "taskSubtype": "",
    "description": "", "priority": "", "deadline": "", "budget": "",
    "communicationMethod": "", "additionalDetails": ""
  }},
  "missingFields": ["fields still needed"],
  "ready": false,
  "suggestedNextSteps": ["short actionable steps"],
  "estimatedTimeline": "realistic timeline"
}}"""


def build_context_message(state: ConversationState) -> SystemMessage:
    """Collected-data context, re-sent on every turn."""
    return SystemMessage(content=(
        f"CONVERSATION CONTEXT: Current collected data: {json.dumps(state.to_wire())}. "
        "Always check this data before asking questions. "
        "Never ask for information that's already been provided."
    ))


def build_messages(
    message: str,
    history: Sequence[ChatHistoryTurn],
    state: ConversationState,
) -> List[BaseMessage]:
    messages: List[BaseMessage] = [SystemMessage(content=SYSTEM_PROMPT), build_context_message(state)]
    for turn in history:
        if turn.role == "assistant":
            messages.append(AIMessage(content=turn.content))
        else:
            messages.append(HumanMessage(content=turn.content))
    messages.append(HumanMessage(content=message))
    return messages


# ============================================================================
# SECTION 3: REPLY PARSING
# ============================================================================

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

_STATE_FIELDS = [name for name in ConversationState.model_fields if name != "service_pre_selected"]


def _content_text(content: Any) -> str:
    """Chat model content may be a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


def parse_json_reply(raw: str) -> Dict[str, Any]:
    """Decode the model reply, tolerating a Markdown code fence."""
    text = raw.strip()
    fenced = _FENCE_PATTERN.match(text)
    if fenced:
        text = fenced.group(1)
    reply = json.loads(text)
    if not isinstance(reply, dict):
        raise ValueError("Assistant reply is not a JSON object")
    return reply


def _clean_value(field: str, value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value:
        return None

    if field == "email":
        return value if is_valid_email(value) else None
    if field == "priority":
        priority = normalize_priority(value)
        return priority.value if priority else None
    if field == "task_category":
        return category_label(value)
    return value


def merge_collected_data(state: ConversationState, collected: Any) -> ConversationState:
    """
    Overlay the model's collectedData on the incoming field-set.

    A blank or unrecognized value never erases what the client already
    holds; servicePreSelected always comes from the client.
    """
    if not isinstance(collected, dict):
        return state

    updates: Dict[str, Any] = {}
    for field in _STATE_FIELDS:
        raw = collected.get(to_camel(field), collected.get(field))
        value = _clean_value(field, raw)
        if value is not None and value != getattr(state, field):
            updates[field] = value

    if not updates:
        return state
    return state.model_copy(update=updates)


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float)) and str(item).strip()]


def build_turn_result(reply: Dict[str, Any], state: ConversationState) -> ChatTurnResult:
    """
    Turn a decoded reply into a ChatTurnResult.

    ``ready`` needs both the model's say-so and a field-set that passes the
    same completeness check as the rules, so the UI never submits a record
    the task endpoint would reject.
    """
    message = reply.get("message")
    if not isinstance(message, str) or not message.strip():
        raise ValueError("Assistant reply has no message")

    collected = merge_collected_data(state, reply.get("collectedData"))
    rule_missing = get_missing_fields(collected)
    ready = reply.get("ready") is True and not rule_missing

    if ready:
        missing: List[str] = []
    else:
        missing = rule_missing or _string_list(reply.get("missingFields"))

    next_steps = _string_list(reply.get("suggestedNextSteps")) or suggested_next_steps(ready)
    timeline = reply.get("estimatedTimeline")
    if not isinstance(timeline, str) or not timeline.strip():
        timeline = estimate_timeline(collected, ready)

    return ChatTurnResult(
        message=message.strip(),
        needs_more_info=not ready,
        collected_data=collected,
        missing_fields=missing,
        ready=ready,
        suggested_next_steps=next_steps,
        estimated_timeline=timeline,
        source="assistant",
    )


# ============================================================================
# SECTION 4: ASSISTANT BRIDGE CLASS
# ============================================================================

class AssistantBridge:
    """
    Language model first, rules second.

    Responsibilities:
    1. Hold the configured chat model (if any)
    2. Run a turn within the timeout
    3. Fall back to the rule-based extractor on any failure
    """

    def __init__(self, config: Optional[AssistantConfig] = None, llm: Any = None):
        self.config = config or AssistantConfig.from_env()
        self._llm = llm

    @property
    def available(self) -> bool:
        return self._llm is not None

    def initialize(self) -> bool:
        """Create the chat model; False leaves the bridge in rules-only mode."""
        if self._llm is not None:
            return True
        if not self.config.enabled:
            logger.warning(
                f"No API key for {self.config.model}, chat turns will use the rule-based extractor"
            )
            return False
        try:
            self._llm = get_llm(
                self.config.model,
                self.config.temperature,
                self.config.max_tokens,
                api_key=self.config.api_key,
            )
            logger.info(f"Assistant bridge initialized: {self.config.model}")
            return True
        except Exception as e:
            logger.error(f"Failed to initialize assistant model: {e}")
            return False

    async def _invoke(self, messages: List[BaseMessage]) -> str:
        if self._llm is None:
            raise AssistantUnavailableError("Assistant model is not configured")
        response = await asyncio.wait_for(
            self._llm.ainvoke(messages),
            timeout=self.config.timeout_seconds,
        )
        return _content_text(response.content)

    async def ask(
        self,
        message: str,
        history: Sequence[ChatHistoryTurn],
        state: ConversationState,
    ) -> ChatTurnResult:
        """One model turn. Raises on any failure; see respond()."""
        raw = await self._invoke(build_messages(message, history, state))
        return build_turn_result(parse_json_reply(raw), state)

    async def respond(
        self,
        message: str,
        history: Optional[Sequence[ChatHistoryTurn]] = None,
        state: Optional[ConversationState] = None,
    ) -> ChatTurnResult:
        """Best available answer for one chat turn."""
        state = state or ConversationState()
        history = history or []

        if not self.available:
            return generate_rule_based_response(message, state)

        try:
            result = await self.ask(message, history, state)
            logger.info(
                f"Assistant turn | ready={result.ready} | missing={result.missing_fields} | "
                f"history={len(history)}"
            )
            return result
        except asyncio.TimeoutError:
            logger.warning(
                f"Assistant timeout after {self.config.timeout_seconds}s, using rule-based extractor"
            )
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Malformed assistant reply ({e}), using rule-based extractor")
        except Exception as e:
            logger.warning(f"Assistant error ({type(e).__name__}: {e}), using rule-based extractor")

        return generate_rule_based_response(message, state)


# ============================================================================
# SECTION 5: SINGLETON & CONVENIENCE FUNCTIONS
# ============================================================================

_bridge: Optional[AssistantBridge] = None


def get_assistant_bridge() -> AssistantBridge:
    """Get or create singleton assistant bridge."""
    global _bridge
    if _bridge is None:
        _bridge = AssistantBridge()
        _bridge.initialize()
    return _bridge


def reset_assistant_bridge() -> None:
    global _bridge
    _bridge = None


async def respond(
    message: str,
    history: Optional[Sequence[ChatHistoryTurn]] = None,
    state: Optional[ConversationState] = None,
) -> ChatTurnResult:
    """Convenience function for one chat turn."""
    return await get_assistant_bridge().respond(message, history, state)


# ============================================================================
# SECTION 6: EXPORTS
# ============================================================================

__all__ = [
    "AssistantConfig",
    "AssistantBridge",
    "AssistantUnavailableError",
    "SYSTEM_PROMPT",
    "get_llm",
    "build_messages",
    "parse_json_reply",
    "merge_collected_data",
    "build_turn_result",
    "get_assistant_bridge",
    "reset_assistant_bridge",
    "respond",
]
