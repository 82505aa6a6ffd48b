"""Tests for boardroom/summary.py."""

from boardroom.models import ContentType, Director, Meeting, Statement
from boardroom.summary import format_transcript, summarize_meeting


def _statements() -> list[Statement]:
    return [
        Statement(id="s1", meeting_id="m1", director_id="d1", content="Machines compute.",
                  content_type=ContentType.OPENING, round_number=1, sequence_in_round=1),
        Statement(id="s2", meeting_id="m1", director_id=None, content="Can they feel?",
                  content_type=ContentType.USER_QUESTION, round_number=0, sequence_in_round=1),
    ]


def _speakers() -> dict[str, Director]:
    return {"d1": Director(id="d1", name="Ada", title="Mathematician", system_prompt="p")}


def _meeting() -> Meeting:
    return Meeting(id="m1", title="Board", topic="Thinking machines", total_participants=1)


def test_format_transcript():
    text = format_transcript(_statements(), _speakers())
    assert text == "1. Ada: Machines compute.\n2. Audience: Can they feel?"


async def test_summarize_meeting(gateway, mock_provider, sample_prompts_config):
    summary = await summarize_meeting(_meeting(), _statements(), _speakers(), gateway, sample_prompts_config)
    assert summary == "Mock response"
    prompt = mock_provider.generate.await_args.args[0]
    assert "Thinking machines (1 people, 2 statements)" in prompt
    assert "1. Ada: Machines compute." in prompt


async def test_summarize_nothing_said(gateway, mock_provider, sample_prompts_config):
    assert await summarize_meeting(_meeting(), [], {}, gateway, sample_prompts_config) is None
    mock_provider.generate.assert_not_awaited()


async def test_summarize_in_fallback_mode(fallback_gateway, sample_prompts_config):
    summary = await summarize_meeting(_meeting(), _statements(), _speakers(), fallback_gateway, sample_prompts_config)
    assert summary is None
