"""Tests for boardroom/prompts.py."""

from boardroom.models import ContentType, Director, Meeting, Statement
from boardroom.prompts import PromptComposer, format_recent_statements


def _director(name: str = "Ada", title: str = "Mathematician") -> Director:
    return Director(id=f"d-{name}", name=name, title=title, system_prompt=f"You are {name}.")


def _statement(director_id: str | None, content: str, sid: str = "s1") -> Statement:
    return Statement(
        id=sid, meeting_id="m1", director_id=director_id, content=content,
        content_type=ContentType.STATEMENT, round_number=1, sequence_in_round=1,
    )


def _meeting() -> Meeting:
    return Meeting(id="m1", title="Board", topic="Thinking machines", current_round=2)


def test_format_recent_statements_is_chronological():
    ada, alan = _director("Ada"), _director("Alan", "Logician")
    recent = [_statement(alan.id, "second", "s2"), _statement(ada.id, "first", "s1")]
    text = format_recent_statements(recent, {ada.id: ada, alan.id: alan})
    assert text.index("Ada(Mathematician): first") < text.index("Alan(Logician): second")


def test_format_recent_statements_empty():
    assert format_recent_statements([], {}) == ""


def test_format_recent_statements_labels_audience():
    text = format_recent_statements([_statement(None, "Why?")], {})
    assert "Audience: Why?" in text


def test_opening_prompt(sample_prompts_config):
    composer = PromptComposer(sample_prompts_config)
    prompt = composer.compose(_director(), _meeting(), ContentType.OPENING)
    assert "Thinking machines" in prompt.text
    assert "opening of the meeting" in prompt.text
    assert prompt.text.endswith("Under 200 words.")
    assert prompt.system == "You are Ada."


def test_closing_prompt(sample_prompts_config):
    composer = PromptComposer(sample_prompts_config)
    prompt = composer.compose(_director(), _meeting(), ContentType.CLOSING)
    assert "end of the meeting" in prompt.text


def test_regular_prompt_uses_round_and_sequence(sample_prompts_config):
    composer = PromptComposer(sample_prompts_config)
    prompt = composer.compose(_director(), _meeting(), ContentType.STATEMENT, sequence=3)
    assert "Round 2, speaker 3." in prompt.text


def test_regular_prompt_respects_context_window(sample_prompts_config):
    ada = _director()
    composer = PromptComposer(sample_prompts_config, context_window=2)
    recent = [_statement(ada.id, f"point {i}", f"s{i}") for i in range(5)]
    prompt = composer.compose(_director(), _meeting(), ContentType.STATEMENT, recent, {ada.id: ada})
    assert "point 0" in prompt.text
    assert "point 1" in prompt.text
    assert "point 2" not in prompt.text


def test_rebuttal_prompt_quotes_target(sample_prompts_config):
    ada, alan = _director("Ada"), _director("Alan", "Logician")
    target = _statement(alan.id, "Machines can think.", "t1")
    composer = PromptComposer(sample_prompts_config)
    prompt = composer.compose_rebuttal(ada, _meeting(), target, alan, [target], {alan.id: alan})
    assert 'Alan(Logician) said: "Machines can think."' in prompt.text
    # The target is not repeated in the context excerpt
    assert prompt.text.count("Machines can think.") == 1


def test_answer_prompt(sample_prompts_config):
    composer = PromptComposer(sample_prompts_config)
    prompt = composer.compose_answer(_director(), _meeting(), "Will they dream?")
    assert 'Audience asks: "Will they dream?"' in prompt.text
    assert prompt.text.endswith("Under 200 words.")
