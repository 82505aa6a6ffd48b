"""Rich console rendering for directors, meetings and transcripts."""

import logging

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from boardroom.models import (
    ContentType,
    Director,
    Meeting,
    MeetingStats,
    Participant,
    Statement,
    UsageStats,
)

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_TYPE_STYLES = {
    ContentType.OPENING: "cyan",
    ContentType.CLOSING: "green",
    ContentType.RESPONSE: "red",
    ContentType.USER_QUESTION: "yellow",
    ContentType.QUESTION_RESPONSE: "magenta",
}


def statement_preview(statement: Statement, words: int = 50) -> str:
    """Return first N words of a statement."""
    all_words = statement.content.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def _speaker(statement: Statement, speakers: dict[str, Director]) -> str:
    if statement.director_id is None:
        return "Audience"
    director = speakers.get(statement.director_id)
    return f"{director.name} ({director.title})" if director else statement.director_id


def print_statement(statement: Statement, speakers: dict[str, Director], full: bool = True) -> None:
    style = _TYPE_STYLES.get(statement.content_type, "dim")
    origin = "AI" if statement.is_ai_generated else "fallback"
    if statement.content_type == ContentType.USER_QUESTION:
        origin = "question"
    subtitle = (
        f"{statement.content_type.value} | round {statement.round_number} "
        f"#{statement.sequence_in_round} | {origin}"
    )
    if statement.tokens_used:
        subtitle += f" | {statement.tokens_used} tokens"
    body = statement.content if full else statement_preview(statement)
    console.print(
        Panel(
            body,
            title=f"[bold]{_speaker(statement, speakers)}[/bold]",
            subtitle=subtitle,
            border_style=style,
        )
    )


def print_transcript(
    meeting: Meeting,
    statements: list[Statement],
    speakers: dict[str, Director],
    full: bool = True,
) -> None:
    """Print the meeting transcript grouped by round."""
    current = None
    for statement in statements:
        if statement.round_number != current:
            current = statement.round_number
            console.print(Rule(f"[bold cyan]Round {current}[/bold cyan]"))
        print_statement(statement, speakers, full=full)
    if meeting.summary:
        console.print(Rule("[bold green]Summary[/bold green]"))
        console.print(Markdown(meeting.summary))


def print_meeting(meeting: Meeting, participants: list[Participant], speakers: dict[str, Director]) -> None:
    console.print(Rule(f"[bold]{meeting.title}[/bold]"))
    console.print(Text(meeting.topic, style="italic"))
    console.print(
        Text(
            f"Status: {meeting.status.value} | Mode: {meeting.discussion_mode.value} | "
            f"Round {meeting.current_round}/{meeting.max_rounds} | "
            f"Statements: {meeting.total_statements} | Participants: {meeting.total_participants}",
            style="dim",
        )
    )
    table = Table("#", "Participant", "Director", "Status", "Statements", "Tokens")
    for p in participants:
        director = speakers.get(p.director_id)
        table.add_row(
            str(p.join_order),
            p.id[:8],
            director.name if director else p.director_id,
            p.status.value,
            str(p.statements_count),
            str(p.total_tokens_used),
        )
    console.print(table)


def print_meetings(meetings: list[Meeting], total: int) -> None:
    table = Table("Id", "Title", "Status", "Mode", "Round", "Statements", title=f"Meetings ({total})")
    for m in meetings:
        table.add_row(
            m.id, m.title, m.status.value, m.discussion_mode.value,
            f"{m.current_round}/{m.max_rounds}", str(m.total_statements),
        )
    console.print(table)


def print_directors(directors: list[Director]) -> None:
    table = Table("Id", "Name", "Title", "Era", "Status", "Statements", "Meetings", title="Directors")
    for d in directors:
        table.add_row(
            d.id, d.name, d.title, d.era or "", d.status.value,
            str(d.total_statements), str(d.total_meetings),
        )
    console.print(table)


def print_stats(stats: MeetingStats) -> None:
    m = stats.meeting
    console.print(
        Text(
            f"{m.title} | {m.status.value} | {stats.duration_sec}s | "
            f"round {m.current_round}/{m.max_rounds} | {m.total_statements} statements",
            style="bold",
        )
    )
    by_director = Table("Director", "Statements", "Avg tokens", title="By director")
    for row in stats.per_director:
        by_director.add_row(row.name, str(row.statement_count), f"{row.avg_tokens:.0f}")
    console.print(by_director)
    by_round = Table("Round", "Statements", title="By round")
    for round_number, count in stats.per_round.items():
        by_round.add_row(str(round_number), str(count))
    console.print(by_round)


def print_usage(stats: UsageStats) -> None:
    state = "[green]configured[/green]" if stats.is_configured else "[yellow]fallback mode[/yellow]"
    console.print(f"Provider: {state}")
    console.print(
        f"Today ({stats.last_reset_date}): {stats.daily_tokens}/{stats.daily_limit} tokens, "
        f"{stats.remaining} remaining"
    )
    console.print(f"Process total: {stats.total_requests} requests, {stats.total_tokens} tokens")
