"""
Rule-Based Intake Extractor
===========================
Deterministic fallback for the chat endpoint. Reads the latest utterance,
merges what it can infer into the conversation field-set, and decides
which single question to ask next.

Extraction is driven by ordered rule tables; every rule is independent so
it can be tested on its own. Nothing here touches the network or storage.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Any, Optional, List, Tuple, Pattern

from schemas.task_definitions import (
    ConversationState,
    ChatTurnResult,
    category_label,
)

logger = logging.getLogger("TaskIntake.IntakeExtractor")


# =========================================================================
# RULE TABLES
# =========================================================================

@dataclass(frozen=True)
class ExtractionRule:
    """One pattern that can yield a value for one field."""
    field: str
    pattern: Pattern[str]
    confidence: float


# A rule must beat this to overwrite a value collected on an earlier turn
EXISTING_VALUE_CONFIDENCE = 0.75

_NAME_WORD = r"[A-Za-z][A-Za-z\-'.]*"

NAME_RULES = [
    ExtractionRule(
        "name",
        re.compile(
            r"\b(?:my name is|my name's)\s+"
            rf"({_NAME_WORD}(?:\s+{_NAME_WORD}){{0,3}})",
            re.IGNORECASE,
        ),
        0.9,
    ),
    # Ambiguous openers ("I am attaching the file"), below the overwrite threshold
    ExtractionRule(
        "name",
        re.compile(
            r"\b(?:i'm|i am|call me|this is)\s+"
            rf"({_NAME_WORD}(?:\s+{_NAME_WORD}){{0,3}})",
            re.IGNORECASE,
        ),
        0.7,
    ),
    ExtractionRule(
        "name",
        re.compile(
            rf"^\s*(?:(?:hi|hello|hey)\b,?\s*)?({_NAME_WORD}(?:\s+{_NAME_WORD}){{0,2}})\s+(?:here|from|at)\b",
            re.IGNORECASE,
        ),
        0.5,
    ),
]

# Words that end a captured name ("Jane Doe and I need...") or show the
# capture was not a name at all ("I'm looking for...")
NAME_STOP_WORDS = frozenset({
    "and", "from", "at", "with", "here", "i", "my", "we", "our", "but", "so",
    "need", "needs", "want", "wants", "looking", "interested", "trying", "working",
    "not", "just", "a", "an", "the", "in", "on", "for", "to", "of", "help",
    "hoping", "planning", "going", "currently", "also", "still", "really",
    "glad", "happy", "sorry", "fine", "good", "great", "ok", "okay", "sure",
    "very", "quite", "busy", "new", "ready", "having", "calling", "writing",
    "reaching", "wondering", "thinking", "contacting", "asking",
    "me", "you", "us", "it", "is", "are", "was", "be", "can", "could", "would",
    "will", "please", "thanks", "thank", "yes", "no", "contact", "reach", "email",
    "send", "write", "urgent", "important", "critical", "about", "regarding",
})

EMAIL_RULE = ExtractionRule(
    "email",
    re.compile(r"\b[A-Za-z0-9][A-Za-z0-9._%+-]*@[A-Za-z0-9][A-Za-z0-9.-]*\.[A-Za-z]{2,}\b"),
    1.0,
)

COMPANY_RULES = [
    ExtractionRule(
        "company",
        re.compile(
            r"(?:work at|working at|work for|working for|employed at|company is)\s+"
            r"([A-Za-z0-9&][A-Za-z0-9&.'\-]*(?:\s+[A-Za-z0-9&][A-Za-z0-9&.'\-]*){0,3}?)"
            r"(?=\s*(?:$|[.,!?;]|\s(?:and|for|as|where|in|on)\b))",
            re.IGNORECASE,
        ),
        0.8,
    ),
    ExtractionRule(
        "company",
        re.compile(
            r"\b((?:[A-Z][A-Za-z0-9&'\-]*\s+){0,3}[A-Z][A-Za-z0-9&'\-]*"
            r"\s+(?:Inc|LLC|Ltd|Corp|Corporation|Company|Co|GmbH|Solutions|Technologies|Group))\b\.?"
        ),
        0.6,
    ),
    ExtractionRule(
        "company",
        re.compile(r"\bfrom\s+((?:[A-Z][A-Za-z0-9&'\-]*)(?:\s+[A-Z][A-Za-z0-9&'\-]*){0,2})\b"),
        0.5,
    ),
]

_MONTHS = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
_WEEKDAYS = r"(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)"
_RELATIVE = (
    r"(?:tomorrow|today|tonight|next week|next month|this week|end of (?:the )?(?:day|week|month)"
    r"|asap|immediately)"
)

DEADLINE_RULES = [
    ExtractionRule(
        "deadline",
        re.compile(
            r"\b(?:by|before|until|deadline(?: is)?|due(?: by| on)?)\s+"
            rf"((?:next |this )?(?:{_WEEKDAYS}|{_RELATIVE}|{_MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?"
            r"|\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?|the end of (?:the )?(?:day|week|month)))",
            re.IGNORECASE,
        ),
        0.7,
    ),
    ExtractionRule(
        "deadline",
        re.compile(rf"\b({_MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s+\d{{4}})?)\b", re.IGNORECASE),
        0.7,
    ),
    ExtractionRule("deadline", re.compile(rf"\b({_RELATIVE})\b", re.IGNORECASE), 0.7),
    ExtractionRule(
        "deadline",
        re.compile(r"\b(within\s+(?:a|an|one|two|three|four|\d+)\s+(?:days?|weeks?|months?))\b", re.IGNORECASE),
        0.7,
    ),
    ExtractionRule("deadline", re.compile(r"\b(\d{1,2}/\d{1,2}(?:/\d{2,4})?)\b"), 0.7),
    ExtractionRule("deadline", re.compile(r"\b(\d{1,2}-\d{1,2}(?:-\d{2,4})?)\b"), 0.7),
]

URGENCY_KEYWORDS = ["urgent", "asap", "immediately", "critical", "emergency"]

# Checked in order; first hit wins
PRIORITY_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("urgent", URGENCY_KEYWORDS),
    ("high", ["high priority", "important", "soon", "quickly"]),
    ("low", ["low priority", "when possible", "no rush", "whenever"]),
]

# Checked in order; first matching keyword group decides the category
CATEGORY_KEYWORDS: List[Tuple[str, Pattern[str]]] = [
    ("Calendar Management", re.compile(r"\b(?:meeting|schedul\w*|calendar|appointment|call|conference|zoom|teams)")),
    ("Email Management", re.compile(r"\b(?:email|inbox|communication|newsletter|campaign|outreach|correspondence)")),
    ("Research & Analysis", re.compile(r"\b(?:research|find|search|analy[sz]\w*|investigat\w*|study|report)")),
    ("Travel Planning", re.compile(r"\b(?:travel|trip|booking|hotel|flight|accommodation|itinerary)")),
    ("Social Media Management", re.compile(r"\b(?:social media|facebook|twitter|instagram|linkedin|tiktok|post)")),
    ("Data Processing", re.compile(r"\b(?:data entry|spreadsheet|excel|database|data)")),
    ("Project Management", re.compile(r"\b(?:project|coordinat\w*|timeline|milestone|deliverable)")),
    ("Customer Support", re.compile(r"\b(?:customer|client|support|inquir\w*)")),
    ("Financial Tasks", re.compile(r"\b(?:invoice|expense|bookkeeping|budget analysis|accounting|payroll)")),
    ("Administrative Support", re.compile(r"\b(?:admin\w*|document|paperwork|filing|organi[sz]e)")),
    ("Content Creation", re.compile(r"\b(?:content|writing|blog|article|copy|marketing|website)")),
]

# Follow-up asked once the category is known but the description is thin
CATEGORY_QUESTIONS: Dict[str, str] = {
    "Administrative Support": "What type of administrative tasks do you need help with? (document management, correspondence, data entry, filing, scheduling) What's the volume and frequency? Any specific software or systems involved?",
    "Calendar Management": "What type of scheduling assistance do you need? (personal calendar, team coordination, client meetings, recurring events) Which calendar systems do you use? Any specific time zones or scheduling constraints?",
    "Email Management": "What email assistance do you need? (inbox organization, response drafting, campaign management, newsletter creation) What's your current email volume and main pain points?",
    "Research & Analysis": "What research topic and scope are you looking for? What type of deliverable do you need? (report, presentation, data compilation) What sources should be included and what's your target timeline?",
    "Travel Planning": "Where and when do you need to travel? What's your budget range? Any preferences for airlines, hotels, or special requirements? Is this business or leisure travel?",
    "Data Processing": "What type of data work do you need? (entry, analysis, spreadsheet creation, database management) What's the data source and desired output format? Any specific tools required?",
    "Customer Support": "What support channels need coverage? (email, phone, chat, social media) What's your customer base size? Any existing scripts or knowledge base? What are your response time expectations?",
    "Financial Tasks": "What financial assistance do you need? (expense tracking, invoice management, budget analysis, bookkeeping) Which software do you use? What's the scope and frequency of work needed?",
}

# Phrases stripped before category detection ("my email is ..." is not Email Management)
CATEGORY_NOISE = [
    EMAIL_RULE.pattern,
    re.compile(r"\b(?:my|the|our)?\s*e-?mail(?:\s+address)?\s*(?:is|:)", re.IGNORECASE),
    re.compile(r"\bcall me\b", re.IGNORECASE),
]

# Company rules below this confidence fill the field but do not mark the
# utterance as personal info
PERSONAL_COMPANY_CONFIDENCE = 0.6

GENERIC_CATEGORY_QUESTION = "What are the specific requirements, timeline, and expected outcomes?"

MIN_DESCRIPTION_LENGTH = 15
MAX_DESCRIPTION_LENGTH = 2000
PROGRESS_UPDATE_HOURS = 24

ASSISTANT_NAME = "ARIA"

SERVICES_SUMMARY = (
    "I specialize in meeting management, email support, research, travel planning, "
    "project coordination, content creation, and administrative tasks."
)

SHORTCUT_PREFIX = "i need help with"


# =========================================================================
# FIELD EXTRACTION
# =========================================================================

def _clean(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip().rstrip(".,!?;:'\"-").strip()


def _trim_name(candidate: str) -> Optional[str]:
    """Cut the capture at the first stop word; reject obvious non-names."""
    words = []
    for word in candidate.split():
        if word.lower().strip(".,'") in NAME_STOP_WORDS:
            break
        if "@" in word:
            break
        words.append(word)
    if not words:
        return None
    name = _clean(" ".join(words))
    if not (3 <= len(name) <= 49):
        return None
    return name


def extract_name(message: str) -> Optional[Tuple[str, float]]:
    """First introductory pattern whose capture is a plausible name."""
    for rule in NAME_RULES:
        match = rule.pattern.search(message)
        if not match:
            continue
        name = _trim_name(match.group(1))
        if name:
            return name, rule.confidence
    return None


def extract_email(message: str) -> Optional[Tuple[str, float]]:
    match = EMAIL_RULE.pattern.search(message)
    if match:
        return match.group(0), EMAIL_RULE.confidence
    return None


def extract_company(message: str) -> Optional[Tuple[str, float]]:
    for rule in COMPANY_RULES:
        match = rule.pattern.search(message)
        if not match:
            continue
        company = _clean(match.group(1))
        if 2 < len(company) < 100 and company.lower() not in NAME_STOP_WORDS:
            return company, rule.confidence
    return None


def extract_deadline(message: str) -> Optional[Tuple[str, float]]:
    """First deadline-looking phrase; bare urgency keywords mean ASAP."""
    for rule in DEADLINE_RULES:
        match = rule.pattern.search(message)
        if match:
            deadline = _clean(match.group(1))
            if deadline.lower() == "asap":
                deadline = "ASAP"
            return deadline, rule.confidence

    msg_lower = message.lower()
    if any(kw in msg_lower for kw in URGENCY_KEYWORDS):
        return "ASAP", 0.5
    return None


def detect_priority(message: str) -> Optional[str]:
    msg_lower = message.lower()
    for priority, keywords in PRIORITY_KEYWORDS:
        if any(kw in msg_lower for kw in keywords):
            return priority
    return None


def detect_category(message: str) -> Optional[str]:
    for noise in CATEGORY_NOISE:
        message = noise.sub(" ", message)
    msg_lower = message.lower()
    for category, pattern in CATEGORY_KEYWORDS:
        if pattern.search(msg_lower):
            return category
    return None


def _merge(
    updates: Dict[str, Any],
    state: ConversationState,
    field: str,
    found: Optional[Tuple[str, float]],
) -> bool:
    """Apply an extracted value if the field is empty or the rule is confident enough."""
    if not found:
        return False
    value, confidence = found
    current = getattr(state, field)
    if current and (current == value or confidence <= EXISTING_VALUE_CONFIDENCE):
        return False
    updates[field] = value
    return True


def _is_shortcut_message(message: str, state: ConversationState) -> bool:
    """The canned "I need help with <service>" sent by a service button."""
    if not state.service_pre_selected or not state.task_category:
        return False
    label = category_label(state.task_category) or state.task_category
    msg = message.lower().strip().rstrip(".!")
    return msg.startswith(SHORTCUT_PREFIX) and label.lower() in msg


def merge_description(current: Optional[str], message: str, name: Optional[str]) -> str:
    """Replace an empty (or name-only) description, otherwise append once."""
    text = message.strip()
    if not current or current == name:
        merged = text
    elif text in current:
        merged = current
    else:
        merged = f"{current} {text}"
    return merged[:MAX_DESCRIPTION_LENGTH]


def extract_fields(message: str, state: ConversationState) -> ConversationState:
    """Infer new field values from one utterance and return the updated field-set."""
    updates: Dict[str, Any] = {}

    personal_info = False
    personal_info |= _merge(updates, state, "name", extract_name(message))
    personal_info |= _merge(updates, state, "email", extract_email(message))

    company = extract_company(message)
    if _merge(updates, state, "company", company):
        personal_info |= company[1] >= PERSONAL_COMPANY_CONFIDENCE

    if not state.deadline:
        _merge(updates, state, "deadline", extract_deadline(message))

    priority = detect_priority(message)
    if priority:
        updates["priority"] = priority
    elif not state.priority:
        updates["priority"] = "medium"

    category = state.task_category
    if category:
        # Keep the canonical label when the client sent a code ("travel_planning")
        label = category_label(category)
        if label and label != category:
            updates["task_category"] = label
            category = label
    else:
        category = detect_category(message)
        if category:
            updates["task_category"] = category

    if category and not personal_info and not _is_shortcut_message(message, state):
        name = updates.get("name", state.name)
        updates["description"] = merge_description(state.description, message, name)

    if not updates:
        return state
    return state.model_copy(update=updates)


# =========================================================================
# TURN PROGRESSION
# =========================================================================

def _description_is_thin(state: ConversationState) -> bool:
    description = state.description or ""
    return len(description) < MIN_DESCRIPTION_LENGTH or description == state.name


def get_missing_fields(state: ConversationState) -> List[str]:
    """The single most important missing field, or [] when complete."""
    if not state.name:
        return ["name"]
    if not state.email:
        return ["email"]
    if not state.task_category:
        return ["taskCategory"]
    if _description_is_thin(state):
        return ["description"]
    if not state.deadline:
        return ["deadline"]
    return []


def is_conversation_complete(state: ConversationState) -> bool:
    return not get_missing_fields(state)


def format_category_question(category: str, pre_selected: bool) -> str:
    question = CATEGORY_QUESTIONS.get(category, GENERIC_CATEGORY_QUESTION)
    if pre_selected:
        return (
            f"Perfect! I see you need help with {category}. Let me gather the specific "
            f"details to provide you with the best assistance. {question}"
        )
    return (
        f"Excellent! For {category}, I'll need some more details to ensure I deliver "
        f"exactly what you need. Could you tell me about: {question}"
    )


def generate_completion_message(state: ConversationState) -> str:
    timeline_text = f" with a {state.deadline} deadline" if state.deadline else ""
    return (
        f"Perfect! I have all the information needed to get started on your "
        f"{state.task_category.lower()} request{timeline_text}. Based on what you've shared, "
        f"I'll begin working on this and provide regular updates via email at {state.email}. "
        f"You can expect an initial progress report within {PROGRESS_UPDATE_HOURS} hours."
    )


def next_prompt(state: ConversationState) -> str:
    missing = get_missing_fields(state)
    if not missing:
        return generate_completion_message(state)

    field = missing[0]
    if field == "name":
        return (
            f"Hello! I'm {ASSISTANT_NAME}, your Virtual Assistant. "
            "To get started, could you please tell me your name?"
        )
    if field == "email":
        return (
            f"Hi {state.name}! It's great to meet you. Could you please provide your "
            "email address so I can keep you updated on our progress?"
        )
    if field == "taskCategory":
        return (
            f"Perfect! I have your contact details, {state.name}. What can I help you with "
            f"today? {SERVICES_SUMMARY} What type of assistance do you need?"
        )
    if field == "description":
        return format_category_question(state.task_category, state.service_pre_selected)
    return (
        "Thank you for those details! To prioritize this properly, when do you need this "
        "completed? Is there a specific deadline or timeline I should be aware of?"
    )


def suggested_next_steps(ready: bool) -> List[str]:
    if ready:
        return [
            "Review and confirm project requirements",
            "Set up communication schedule",
            "Begin initial task execution",
            "Provide progress updates",
        ]
    return [
        "Provide missing information",
        "Clarify any requirements",
        "Confirm details and timeline",
    ]


def estimate_timeline(state: ConversationState, ready: bool) -> str:
    if not ready:
        return "Timeline will be provided once all requirements are gathered"
    if state.deadline:
        return f"Initial progress within {PROGRESS_UPDATE_HOURS} hours, completion by {state.deadline}"
    return (
        f"Initial progress within {PROGRESS_UPDATE_HOURS} hours, full completion timeline "
        "to be confirmed based on project scope"
    )


def generate_rule_based_response(
    message: str,
    state: Optional[ConversationState] = None,
) -> ChatTurnResult:
    """
    Run one chat turn without the language model.

    Pure function of its inputs. Malformed input simply yields no new
    fields; this never raises for any string message.
    """
    state = state or ConversationState()
    updated = extract_fields(message or "", state)
    missing = get_missing_fields(updated)
    ready = not missing

    logger.debug(
        f"Rule-based turn | missing={missing} | ready={ready} | "
        f"category={updated.task_category or '-'}"
    )

    return ChatTurnResult(
        message=next_prompt(updated),
        needs_more_info=not ready,
        collected_data=updated,
        missing_fields=missing,
        ready=ready,
        suggested_next_steps=suggested_next_steps(ready),
        estimated_timeline=estimate_timeline(updated, ready),
        source="rules",
    )


# =========================================================================
# EXPORTS
# =========================================================================

__all__ = [
    # Rules
    "ExtractionRule",
    "NAME_RULES",
    "EMAIL_RULE",
    "COMPANY_RULES",
    "DEADLINE_RULES",
    "PRIORITY_KEYWORDS",
    "CATEGORY_KEYWORDS",
    "CATEGORY_QUESTIONS",
    "EXISTING_VALUE_CONFIDENCE",

    # Extraction
    "extract_name",
    "extract_email",
    "extract_company",
    "extract_deadline",
    "detect_priority",
    "detect_category",
    "merge_description",
    "extract_fields",

    # Progression
    "get_missing_fields",
    "is_conversation_complete",
    "format_category_question",
    "generate_completion_message",
    "next_prompt",
    "generate_rule_based_response",
]
