"""Click CLI: wires config, store, gateway and orchestrator, then runs one operation."""

import asyncio
import functools
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from boardroom import output
from boardroom.directors import archive_director, create_director, create_from_prompt, parse_persona_prompt
from boardroom.errors import BoardroomError
from boardroom.gateway import TextGenerationGateway, UsageTracker, build_gateway
from boardroom.healthcheck import check_provider
from boardroom.models import DiscussionMode, Statement
from boardroom.orchestrator import MeetingOrchestrator
from boardroom.persona_files import import_persona_dir, import_persona_file
from boardroom.prompts import PromptComposer
from boardroom.store import Database, MeetingStore, PersonaStore, UsageStore

logger = logging.getLogger(__name__)

console = output.console


@dataclass
class Services:
    config: AppConfig
    db: Database
    personas: PersonaStore
    meetings: MeetingStore
    gateway: TextGenerationGateway
    orchestrator: MeetingOrchestrator


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def build_services(config: AppConfig, gateway: TextGenerationGateway | None = None) -> Services:
    db = Database(config.defaults.database_url)
    db.create_all()
    personas = PersonaStore(db)
    meetings = MeetingStore(db)
    if gateway is None:
        # The daily budget is kept in the database, shared by every command run
        tracker = UsageTracker(config.generation.daily_token_limit, store=UsageStore(db))
        gateway = build_gateway(config, tracker)
    composer = PromptComposer(config.prompts, context_window=config.defaults.context_window)
    orchestrator = MeetingOrchestrator(
        db, personas, meetings, gateway, composer, prompts=config.prompts,
    )
    return Services(config, db, personas, meetings, gateway, orchestrator)


def _services(ctx: click.Context) -> Services:
    if ctx.obj.get("services") is None:
        try:
            config = load_config()
        except (FileNotFoundError, ValueError) as exc:
            console.print(f"[bold red]Config error:[/bold red] {exc}")
            sys.exit(1)
        if ctx.obj.get("database_url"):
            config.defaults.database_url = ctx.obj["database_url"]
        ctx.obj["services"] = build_services(config)
    return ctx.obj["services"]


def _handles_errors(func):
    """Turn core errors into a one-line message and exit code 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except BoardroomError as exc:
            console.print(f"[bold red]Error ({exc.kind}):[/bold red] {exc.message}")
            sys.exit(1)

    return wrapper


def _speakers_for(svc: Services, statements: list[Statement]):
    ids = sorted({s.director_id for s in statements if s.director_id})
    return {d.id: d for d in svc.personas.get_many(ids)}


def _show(svc: Services, *statements: Statement) -> None:
    speakers = _speakers_for(svc, list(statements))
    for statement in statements:
        output.print_statement(statement, speakers)


@click.group()
@click.option("--db", "database_url", default=None, help="Database URL (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, database_url: str | None, verbose: bool) -> None:
    """Boardroom -- simulated board meetings between AI personas.

    \b
    Examples:
      boardroom directors import ./personas
      boardroom meetings create "AI and jobs" "Will AI replace work?" -d ID1 -d ID2
      boardroom meetings start MEETING_ID
      boardroom meetings next MEETING_ID
      boardroom meetings finish MEETING_ID
    """
    load_dotenv()
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url


# -- directors -------------------------------------------------------------


@main.group()
def directors() -> None:
    """Manage director personas."""


@directors.command("add")
@click.option("--name", required=True)
@click.option("--title", required=True)
@click.option("--prompt", "system_prompt", required=True, help="Persona system prompt")
@click.option("--era", default=None)
@click.option("--style", "speaking_style", default=None)
@click.pass_context
@_handles_errors
def directors_add(ctx, name, title, system_prompt, era, speaking_style) -> None:
    """Create a director from explicit fields."""
    svc = _services(ctx)
    director = create_director(
        svc.personas, name=name, title=title, system_prompt=system_prompt,
        era=era, speaking_style=speaking_style,
    )
    click.echo(director.id)


@directors.command("import")
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.pass_context
@_handles_errors
def directors_import(ctx, path: Path) -> None:
    """Import persona .md files (a single file or a directory)."""
    svc = _services(ctx)
    if path.is_dir():
        created, skipped = import_persona_dir(svc.personas, path)
    else:
        created, skipped = [import_persona_file(svc.personas, path)], []
    for director in created:
        click.echo(f"Imported: {director.name} ({director.id})")
    for file_path, reason in skipped:
        click.echo(f"Skipped: {file_path.name} -- {reason}")


@directors.command("parse")
@click.argument("prompt_file", type=click.Path(exists=True, path_type=Path))
@click.option("--create", is_flag=True, help="Also create the parsed director")
@click.pass_context
@_handles_errors
def directors_parse(ctx, prompt_file: Path, create: bool) -> None:
    """Extract a director profile from a persona prompt with the LLM."""
    svc = _services(ctx)
    system_prompt = prompt_file.read_text(encoding="utf-8").strip()
    if create:
        director, parsed = asyncio.run(
            create_from_prompt(svc.personas, system_prompt, svc.gateway, svc.config.prompts)
        )
        click.echo(f"Created: {director.name} ({director.id})")
    else:
        parsed = asyncio.run(parse_persona_prompt(system_prompt, svc.gateway, svc.config.prompts))
    console.print(parsed)


@directors.command("list")
@click.option("--active", "active_only", is_flag=True, help="Only directors available for meetings")
@click.option("--all", "include_archived", is_flag=True, help="Include archived directors")
@click.pass_context
@_handles_errors
def directors_list(ctx, active_only: bool, include_archived: bool) -> None:
    svc = _services(ctx)
    output.print_directors(
        svc.personas.list_directors(active_only=active_only, include_archived=include_archived)
    )


@directors.command("archive")
@click.argument("director_id")
@click.pass_context
@_handles_errors
def directors_archive(ctx, director_id: str) -> None:
    """Soft-delete a director."""
    svc = _services(ctx)
    director = archive_director(svc.personas, director_id)
    click.echo(f"Archived: {director.name}")


# -- meetings --------------------------------------------------------------


@main.group()
def meetings() -> None:
    """Run board meetings."""


@meetings.command("create")
@click.argument("title")
@click.argument("topic")
@click.option("-d", "--director", "director_ids", multiple=True, required=True,
              help="Director id, repeat in speaking order")
@click.option("--mode", type=click.Choice([m.value for m in DiscussionMode]), default=None,
              help="Discussion mode (default: from config)")
@click.option("--rounds", "max_rounds", type=int, default=None, help="Max rounds (default: from config)")
@click.option("--max-participants", type=int, default=None)
@click.option("--description", default=None)
@click.pass_context
@_handles_errors
def meetings_create(ctx, title, topic, director_ids, mode, max_rounds, max_participants, description) -> None:
    svc = _services(ctx)
    defaults = svc.config.defaults
    meeting = svc.orchestrator.create(
        title,
        topic,
        director_ids=list(director_ids),
        discussion_mode=mode or defaults.discussion_mode,
        max_rounds=max_rounds if max_rounds is not None else defaults.max_rounds,
        max_participants=max_participants if max_participants is not None else defaults.max_participants,
        description=description,
    )
    click.echo(meeting.id)


@meetings.command("list")
@click.option("--status", default="all")
@click.option("--search", default="")
@click.option("--limit", type=int, default=20)
@click.option("--offset", type=int, default=0)
@click.pass_context
@_handles_errors
def meetings_list(ctx, status, search, limit, offset) -> None:
    svc = _services(ctx)
    page, total = svc.orchestrator.list_meetings(status=status, search=search, limit=limit, offset=offset)
    output.print_meetings(page, total)


@meetings.command("show")
@click.argument("meeting_id")
@click.option("--round", "round_number", type=int, default=None, help="Only this round")
@click.option("--brief", is_flag=True, help="Preview statements instead of full text")
@click.pass_context
@_handles_errors
def meetings_show(ctx, meeting_id, round_number, brief) -> None:
    svc = _services(ctx)
    meeting = svc.orchestrator.get_meeting(meeting_id)
    participants = svc.orchestrator.get_participants(meeting_id)
    statements = svc.orchestrator.get_statements(meeting_id, round_number=round_number)
    roster = {d.id: d for d in svc.personas.get_many([p.director_id for p in participants])}
    output.print_meeting(meeting, participants, roster)
    output.print_transcript(meeting, statements, _speakers_for(svc, statements), full=not brief)


@meetings.command("start")
@click.argument("meeting_id")
@click.pass_context
@_handles_errors
def meetings_start(ctx, meeting_id) -> None:
    svc = _services(ctx)
    _show(svc, asyncio.run(svc.orchestrator.start(meeting_id)))


@meetings.command("next")
@click.argument("meeting_id")
@click.option("--director", "forced_director_id", default=None, help="Let this director speak now")
@click.option("--reply-to", "response_to", default=None, help="Statement id to rebut")
@click.option("--count", type=int, default=1, help="Number of statements to generate")
@click.pass_context
@_handles_errors
def meetings_next(ctx, meeting_id, forced_director_id, response_to, count) -> None:
    """Generate the next statement(s)."""
    svc = _services(ctx)

    async def run() -> list[Statement]:
        produced = []
        for _ in range(max(1, count)):
            produced.append(await svc.orchestrator.advance(
                meeting_id, forced_director_id=forced_director_id, response_to=response_to,
            ))
        return produced

    _show(svc, *asyncio.run(run()))


@meetings.command("pause")
@click.argument("meeting_id")
@click.pass_context
@_handles_errors
def meetings_pause(ctx, meeting_id) -> None:
    svc = _services(ctx)
    meeting = asyncio.run(svc.orchestrator.pause(meeting_id))
    click.echo(f"{meeting.id}: {meeting.status.value}")


@meetings.command("resume")
@click.argument("meeting_id")
@click.pass_context
@_handles_errors
def meetings_resume(ctx, meeting_id) -> None:
    svc = _services(ctx)
    meeting = asyncio.run(svc.orchestrator.resume(meeting_id))
    click.echo(f"{meeting.id}: {meeting.status.value}")


@meetings.command("finish")
@click.argument("meeting_id")
@click.pass_context
@_handles_errors
def meetings_finish(ctx, meeting_id) -> None:
    svc = _services(ctx)
    closing = asyncio.run(svc.orchestrator.finish(meeting_id))
    if closing is not None:
        _show(svc, closing)
    meeting = svc.orchestrator.get_meeting(meeting_id)
    click.echo(f"{meeting.id}: {meeting.status.value}")


@meetings.command("ask")
@click.argument("meeting_id")
@click.argument("question")
@click.option("-d", "--director", "director_ids", multiple=True, help="Only these directors answer")
@click.pass_context
@_handles_errors
def meetings_ask(ctx, meeting_id, question, director_ids) -> None:
    """Put an audience question to the board and collect answers."""
    svc = _services(ctx)

    async def run() -> list[Statement]:
        asked = await svc.orchestrator.ask_question(meeting_id, question)
        answers = await svc.orchestrator.respond_to_question(
            meeting_id, asked.id, list(director_ids) or None
        )
        return [asked, *answers]

    _show(svc, *asyncio.run(run()))


@meetings.command("join")
@click.argument("meeting_id")
@click.option("-d", "--director", "director_ids", multiple=True, required=True)
@click.pass_context
@_handles_errors
def meetings_join(ctx, meeting_id, director_ids) -> None:
    """Add directors to a preparing or paused meeting."""
    svc = _services(ctx)
    added = asyncio.run(svc.orchestrator.add_participants(meeting_id, list(director_ids)))
    for participant in added:
        click.echo(f"{participant.id} (order {participant.join_order})")


@meetings.command("leave")
@click.argument("meeting_id")
@click.argument("participant_id")
@click.pass_context
@_handles_errors
def meetings_leave(ctx, meeting_id, participant_id) -> None:
    svc = _services(ctx)
    participant = asyncio.run(svc.orchestrator.remove_participant(meeting_id, participant_id))
    click.echo(f"{participant.id}: {participant.status.value}")


@meetings.command("stats")
@click.argument("meeting_id")
@click.pass_context
@_handles_errors
def meetings_stats(ctx, meeting_id) -> None:
    svc = _services(ctx)
    output.print_stats(svc.orchestrator.meeting_stats(meeting_id))


# -- provider --------------------------------------------------------------


@main.command("usage")
@click.pass_context
@_handles_errors
def usage(ctx) -> None:
    """Show provider configuration and token budget."""
    svc = _services(ctx)
    output.print_usage(svc.gateway.usage_stats())


@main.command("check")
@click.pass_context
@_handles_errors
def check(ctx) -> None:
    """Ping the configured LLM provider."""
    svc = _services(ctx)
    ok, err = asyncio.run(check_provider(svc.gateway.provider))
    if ok:
        console.print(f"  [green]OK  [/green] {svc.config.generation.provider}")
        return
    short_err = err.splitlines()[0][:120] if err else "unknown error"
    console.print(f"  [red]FAIL[/red] {svc.config.generation.provider}: {short_err}")
    sys.exit(1)


if __name__ == "__main__":
    main()
