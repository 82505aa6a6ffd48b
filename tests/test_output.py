"""Tests for boardroom/output.py."""

import io
from datetime import datetime

import pytest
from rich.console import Console

from boardroom import output
from boardroom.models import (
    ContentType,
    Director,
    DirectorStats,
    Meeting,
    MeetingStats,
    MeetingStatus,
    Participant,
    Statement,
    UsageStats,
)


@pytest.fixture
def captured(monkeypatch) -> io.StringIO:
    buf = io.StringIO()
    monkeypatch.setattr(output, "console", Console(file=buf, width=200, color_system=None))
    return buf


@pytest.fixture
def ada() -> Director:
    return Director(id="d1", name="Ada", title="Mathematician", system_prompt="p", era="19th century")


def _statement(content: str = "Numbers are poetry.", **kwargs) -> Statement:
    values = dict(
        id="s1", meeting_id="m1", director_id="d1", content=content,
        content_type=ContentType.STATEMENT, round_number=1, sequence_in_round=2,
        tokens_used=12, is_ai_generated=True,
    )
    values.update(kwargs)
    return Statement(**values)


def test_statement_preview_truncates():
    stmt = _statement(" ".join(f"w{i}" for i in range(60)))
    preview = output.statement_preview(stmt, words=5)
    assert preview == "w0 w1 w2 w3 w4..."


def test_statement_preview_short():
    assert output.statement_preview(_statement("Short one.")) == "Short one."


def test_print_statement(captured, ada):
    output.print_statement(_statement(), {ada.id: ada})
    text = captured.getvalue()
    assert "Ada (Mathematician)" in text
    assert "Numbers are poetry." in text
    assert "round 1 #2" in text
    assert "12 tokens" in text


def test_print_statement_marks_fallback_and_audience(captured):
    output.print_statement(_statement(is_ai_generated=False, tokens_used=0), {})
    output.print_statement(
        _statement("Why?", director_id=None, content_type=ContentType.USER_QUESTION), {}
    )
    text = captured.getvalue()
    assert "fallback" in text
    assert "Audience" in text
    assert "question" in text


def test_print_transcript_groups_rounds_and_summary(captured, ada):
    meeting = Meeting(id="m1", title="Board", topic="Numbers", summary="All agreed.")
    statements = [
        _statement("first", id="a", round_number=0, sequence_in_round=1),
        _statement("second", id="b", round_number=1, sequence_in_round=1),
    ]
    output.print_transcript(meeting, statements, {ada.id: ada})
    text = captured.getvalue()
    assert "Round 0" in text
    assert "Round 1" in text
    assert "Summary" in text
    assert "All agreed." in text


def test_print_meeting_and_list(captured, ada):
    meeting = Meeting(id="m1", title="Board of Numbers", topic="Are numbers real?",
                      status=MeetingStatus.DISCUSSING, total_participants=1)
    participant = Participant(id="p1-abcdefgh", meeting_id="m1", director_id="d1", join_order=1)
    output.print_meeting(meeting, [participant], {ada.id: ada})
    output.print_meetings([meeting], total=1)
    text = captured.getvalue()
    assert "Board of Numbers" in text
    assert "discussing" in text
    assert "Meetings (1)" in text


def test_print_directors(captured, ada):
    output.print_directors([ada])
    assert "Ada" in captured.getvalue()


def test_print_stats(captured, ada):
    stats = MeetingStats(
        meeting=Meeting(id="m1", title="Board", topic="t", started_at=datetime.now()),
        duration_sec=65,
        per_director=[DirectorStats("d1", "Ada", 3, 41.5)],
        per_round={0: 2, 1: 1},
    )
    output.print_stats(stats)
    text = captured.getvalue()
    assert "65s" in text
    assert "By director" in text
    assert "42" in text


def test_print_usage(captured):
    output.print_usage(UsageStats(2, 300, 300, "2026-03-01", 1000, 700, is_configured=False))
    text = captured.getvalue()
    assert "fallback mode" in text
    assert "300/1000" in text
    assert "700 remaining" in text
