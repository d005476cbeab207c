"""
Tests for the rule-based intake extractor.
"""
import pytest
from pydantic import ValidationError

from agents.intake_extractor import (
    CATEGORY_QUESTIONS,
    detect_category,
    detect_priority,
    extract_company,
    extract_deadline,
    extract_email,
    extract_fields,
    extract_name,
    generate_rule_based_response,
    get_missing_fields,
    merge_description,
)
from schemas.task_definitions import ConversationState, TaskCreate


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------

def test_name_from_introduction_strips_punctuation():
    result = generate_rule_based_response("Hi, my name is Jane Doe.")
    assert result.collected_data.name == "Jane Doe"


def test_name_capture_stops_at_filler_words():
    found = extract_name("my name is Jane Doe and I need help with travel")
    assert found is not None
    assert found[0] == "Jane Doe"


def test_leading_name_here_pattern():
    assert extract_name("Hilda Jones here")[0] == "Hilda Jones"


def test_implausible_names_are_rejected():
    assert extract_name("my name is Al") is None
    assert extract_name("I'm looking for an assistant") is None
    assert extract_name("This is urgent") is None


def test_email_is_kept_verbatim():
    result = generate_rule_based_response("You can reach me at Jane.Doe@Example.com")
    assert result.collected_data.email == "Jane.Doe@Example.com"


def test_email_message_does_not_look_like_a_name():
    updated = extract_fields("Contact me at JANE@EXAMPLE.COM", ConversationState())
    assert updated.email == "JANE@EXAMPLE.COM"
    assert updated.name is None


def test_name_length_bounds():
    assert extract_name("my name is Ann")[0] == "Ann"
    assert extract_name("my name is " + "A" * 49)[0] == "A" * 49
    assert extract_name("my name is " + "A" * 50) is None


def test_company_from_organisation_suffix():
    assert extract_company("Our team at Acme Solutions needs help") == ("Acme Solutions", 0.6)


def test_organisation_suffix_counts_as_personal_info(contact_state):
    state = contact_state.model_copy(update={"task_category": "Research & Analysis"})
    updated = extract_fields("Our team at Acme Solutions needs help", state)
    assert updated.company == "Acme Solutions"
    assert updated.description is None


def test_company_from_place_is_low_confidence(contact_state):
    state = contact_state.model_copy(update={"task_category": "Travel Planning"})
    updated = extract_fields("Flights from Boston to Denver next month", state)

    assert updated.name == "Jane Doe"
    assert updated.company == "Boston"
    assert updated.description == "Flights from Boston to Denver next month"
    assert updated.deadline == "next month"


@pytest.mark.parametrize("message,expected", [
    ("Please finish by 8/6/2025", "8/6/2025"),
    ("Target date 8/6/2025", "8/6/2025"),
    ("Target 8-6 works for us", "8-6"),
    ("We need it within two weeks", "within two weeks"),
    ("Ideally within 3 days", "within 3 days"),
])
def test_numeric_and_relative_deadlines(message, expected):
    assert extract_deadline(message)[0] == expected


def test_explicit_deadline():
    assert extract_deadline("Can this be done by next Friday please?")[0] == "next Friday"


def test_urgency_without_date_means_asap():
    assert extract_deadline("This is urgent")[0] == "ASAP"


@pytest.mark.parametrize("message,expected", [
    ("This is urgent", "urgent"),
    ("It's important to get right", "high"),
    ("No rush on this one", "low"),
    ("Just a normal request", None),
])
def test_priority_keywords(message, expected):
    assert detect_priority(message) == expected


def test_urgent_message_sets_priority_and_deadline():
    updated = extract_fields("This is urgent", ConversationState())
    assert updated.priority == "urgent"
    assert updated.deadline == "ASAP"


def test_category_first_matching_group_wins():
    assert detect_category("Can you schedule a meeting with my team?") == "Calendar Management"
    assert detect_category("Please research our competitors") == "Research & Analysis"
    assert detect_category("I need to book a flight and hotel in Berlin") == "Travel Planning"


def test_contact_details_do_not_imply_a_category():
    assert detect_category("my email is jane@example.com") is None


def test_category_is_not_reinferred_once_set(contact_state):
    state = contact_state.model_copy(update={"task_category": "Travel Planning"})
    updated = extract_fields("Also schedule a meeting about it", state)
    assert updated.task_category == "Travel Planning"


def test_category_code_is_shown_as_label(contact_state):
    state = contact_state.model_copy(update={"task_category": "travel_planning"})
    updated = extract_fields("Trip to Rome", state)
    assert updated.task_category == "Travel Planning"


# ---------------------------------------------------------------------------
# Confidence and merging
# ---------------------------------------------------------------------------

def test_low_confidence_rule_does_not_overwrite_name():
    state = ConversationState(name="Jane")
    assert extract_fields("Jane Smith here", state).name == "Jane"


def test_low_confidence_rule_fills_empty_name():
    assert extract_fields("Jane Smith here", ConversationState()).name == "Jane Smith"


def test_high_confidence_rule_overwrites_name():
    state = ConversationState(name="Jane")
    assert extract_fields("Sorry, my name is Janet Smith", state).name == "Janet Smith"


def test_ambiguous_opener_fills_empty_name():
    assert extract_fields("I'm Jane Doe", ConversationState()).name == "Jane Doe"
    assert extract_name("call me Hilda")[1] < 0.75


def test_ambiguous_opener_keeps_known_name(complete_state):
    result = generate_rule_based_response("I am attaching the hotel shortlist for Berlin", complete_state)

    assert result.collected_data.name == "Jane Doe"
    assert result.collected_data.description == (
        "Competitor pricing analysis for our Q3 planning I am attaching the hotel shortlist for Berlin"
    )


def test_deadline_is_never_overwritten(contact_state):
    state = contact_state.model_copy(update={"deadline": "tomorrow"})
    assert extract_fields("actually by Friday", state).deadline == "tomorrow"


def test_personal_info_is_not_description(contact_state):
    state = contact_state.model_copy(update={"task_category": "Research & Analysis"})
    updated = extract_fields("I work at Acme Corp", state)
    assert updated.company == "Acme Corp"
    assert updated.description is None


def test_merge_description_rules():
    assert merge_description(None, "Plan a trip", "Jane") == "Plan a trip"
    assert merge_description("Jane", "Plan a trip", "Jane") == "Plan a trip"
    assert merge_description("Plan a trip", "Plan a trip", "Jane") == "Plan a trip"
    assert merge_description("Plan a trip", "to Rome", "Jane") == "Plan a trip to Rome"
    assert len(merge_description("x" * 1990, "y" * 50, None)) == 2000


def test_state_is_immutable():
    state = ConversationState(name="Jane Doe")
    with pytest.raises(ValidationError):
        state.name = "Someone Else"


def test_state_coerces_structured_client_values():
    state = ConversationState.model_validate({
        "name": "Jane Doe",
        "budget": {"min": 500, "max": 1000},
        "additionalDetails": ["window seat", "late checkout"],
        "deadline": 2025,
        "company": True,
        "servicePreSelected": "yes",
    })

    assert state.budget == '{"min": 500, "max": 1000}'
    assert state.additional_details == '["window seat", "late checkout"]'
    assert state.deadline == "2025"
    assert state.company is None
    assert state.service_pre_selected is True


# ---------------------------------------------------------------------------
# Turn progression
# ---------------------------------------------------------------------------

def test_empty_state_asks_for_name():
    result = generate_rule_based_response("hello")
    assert result.missing_fields == ["name"]
    assert "your name" in result.message
    assert result.ready is False


def test_contact_known_asks_for_category(contact_state):
    result = generate_rule_based_response("hello", contact_state)
    assert result.missing_fields == ["taskCategory"]
    assert "What can I help you with today?" in result.message
    assert result.needs_more_info is True


def test_travel_category_gets_travel_question(contact_state):
    state = contact_state.model_copy(update={"task_category": "Travel Planning"})
    result = generate_rule_based_response("Trip to Rome", state)

    assert result.collected_data.description == "Trip to Rome"
    assert result.missing_fields == ["description"]
    assert CATEGORY_QUESTIONS["Travel Planning"] in result.message
    assert result.message.startswith("Excellent! For Travel Planning")


def test_preselected_service_shortcut(contact_state):
    state = contact_state.model_copy(update={
        "task_category": "Travel Planning",
        "service_pre_selected": True,
    })
    result = generate_rule_based_response("I need help with Travel Planning", state)

    assert result.collected_data.description is None
    assert result.missing_fields == ["description"]
    assert result.message.startswith("Perfect! I see you need help with Travel Planning")


def test_unknown_category_gets_generic_question(contact_state):
    state = contact_state.model_copy(update={"task_category": "Content Creation"})
    result = generate_rule_based_response("Blog", state)
    assert "specific requirements, timeline, and expected outcomes" in result.message


def test_missing_deadline_is_asked_last(complete_state):
    state = complete_state.model_copy(update={"deadline": None})
    assert get_missing_fields(state) == ["deadline"]


def test_complete_state_is_ready(complete_state):
    result = generate_rule_based_response("That's everything", complete_state)

    assert result.ready is True
    assert result.missing_fields == []
    assert result.needs_more_info is False
    assert "24 hours" in result.message
    assert "jane@example.com" in result.message
    assert "next Friday" in result.estimated_timeline
    assert result.source == "rules"


def test_full_conversation_reaches_ready():
    state = ConversationState()
    turns = [
        ("Hi, my name is Jane Doe", ["email"]),
        ("jane@example.com", ["taskCategory"]),
        ("I need to book a flight and hotel in Berlin", ["deadline"]),
        ("by next Friday please", []),
    ]
    for message, expected_missing in turns:
        result = generate_rule_based_response(message, state)
        assert result.missing_fields == expected_missing, message
        state = result.collected_data

    assert state.name == "Jane Doe"
    assert state.email == "jane@example.com"
    assert state.task_category == "Travel Planning"
    assert state.deadline == "next Friday"
    assert result.ready is True


def test_no_new_information_is_idempotent(contact_state):
    state = contact_state.model_copy(update={
        "task_category": "Travel Planning",
        "description": "I need to book a flight and hotel in Berlin",
        "priority": "medium",
    })
    first = generate_rule_based_response("I need to book a flight and hotel in Berlin", state)
    second = generate_rule_based_response("I need to book a flight and hotel in Berlin", first.collected_data)

    assert first.collected_data == state
    assert second.collected_data == state
    assert first.missing_fields == second.missing_fields == ["deadline"]


@pytest.mark.parametrize("message", ["", "   ", "@@@", "a" * 1000, "by by by", "my name is"])
def test_malformed_input_never_raises(message):
    result = generate_rule_based_response(message, ConversationState())
    assert result.message


def test_completed_conversation_is_a_valid_submission(complete_state):
    payload = complete_state.to_task_payload()
    submission = TaskCreate.model_validate(payload)

    assert submission.task_category == "research_data_collection"
    assert submission.deadline == "next Friday"
    assert "servicePreSelected" not in payload
    assert payload["conversationData"]["name"] == "Jane Doe"
