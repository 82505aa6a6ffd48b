"""Tests for boardroom/models.py dataclasses."""

from boardroom.models import (
    ACTIVE_STATUSES,
    TURN_CONTENT_TYPES,
    ContentType,
    Director,
    DirectorStatus,
    Meeting,
    MeetingStatus,
    ModelResponse,
    Statement,
)


def test_director_defaults():
    d = Director(id="d1", name="Ada Lovelace", title="Mathematician", system_prompt="You are Ada.")
    assert d.is_active is True
    assert d.status == DirectorStatus.ACTIVE
    assert d.personality_traits == []
    assert d.total_statements == 0


def test_list_defaults_are_not_shared():
    a = Director(id="a", name="A", title="T", system_prompt="p")
    b = Director(id="b", name="B", title="T", system_prompt="p")
    a.core_beliefs.append("truth")
    assert b.core_beliefs == []


def test_meeting_defaults():
    m = Meeting(id="m1", title="Board", topic="AI and work")
    assert m.status == MeetingStatus.PREPARING
    assert m.current_round == 0
    assert m.max_rounds == 10
    assert m.summary is None


def test_statement_defaults_to_not_ai_generated():
    s = Statement(
        id="s1", meeting_id="m1", director_id=None, content="Why?",
        content_type=ContentType.USER_QUESTION, round_number=0, sequence_in_round=1,
    )
    assert s.is_ai_generated is False
    assert s.tokens_used == 0


def test_model_response_optional_token_count():
    r = ModelResponse(provider="openai", model="gpt-4o-mini", content="Hi", latency_sec=0.5, token_count=None)
    assert r.token_count is None


def test_enums_compare_to_strings():
    assert MeetingStatus.DISCUSSING == "discussing"
    assert ContentType("user_question") is ContentType.USER_QUESTION


def test_turn_types_exclude_questions_and_closing():
    assert ContentType.USER_QUESTION not in TURN_CONTENT_TYPES
    assert ContentType.QUESTION_RESPONSE not in TURN_CONTENT_TYPES
    assert ContentType.CLOSING not in TURN_CONTENT_TYPES
    assert ContentType.STATEMENT in TURN_CONTENT_TYPES


def test_active_statuses():
    assert ACTIVE_STATUSES == {MeetingStatus.DISCUSSING, MeetingStatus.DEBATING}
