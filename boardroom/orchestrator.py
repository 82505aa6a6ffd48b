"""Meeting orchestration: the meeting state machine and statement generation.

Every operation is one synchronous step driven by the caller; nothing
advances a meeting on a timer. Within a meeting, steps are serialized by a
per-meeting asyncio.Lock so two concurrent `advance` calls never pick the
speaker from the same pre-call state. Each step's writes (statement,
counters, round rollover, status) commit in one database transaction,
which first claims the meeting row: if another process wrote to the
meeting in the meantime the step fails with StoreError instead of
reusing a sequence number.

State machine:
    preparing --start--> discussing <--pause/resume--> paused
    any non-finished status --finish--> finished
"""

import asyncio
import logging
import random
import uuid
from datetime import datetime

from sqlalchemy.engine import Connection

from config.config_loader import PromptsConfig
from boardroom.errors import (
    DirectorsInvalid,
    InvalidTransition,
    NoActiveParticipants,
    NotFound,
    StoreError,
    TooManyParticipants,
    ValidationError,
)
from boardroom.gateway import TextGenerationGateway
from boardroom.models import (
    ACTIVE_STATUSES,
    ContentType,
    Director,
    DirectorStats,
    DirectorStatus,
    DiscussionMode,
    GenerationResult,
    Meeting,
    MeetingStats,
    MeetingStatus,
    Participant,
    ParticipantStatus,
    Statement,
)
from boardroom.prompts import PromptComposer
from boardroom.selector import select_next_speaker, turns_taken
from boardroom.store import Database, MeetingStore, PersonaStore
from boardroom.summary import summarize_meeting

logger = logging.getLogger(__name__)

# Reply chains deeper than this are cut off when walking a thread
_MAX_THREAD_DEPTH = 100

_ROSTER_EDIT_STATUSES = frozenset({MeetingStatus.PREPARING, MeetingStatus.PAUSED})


def _new_id() -> str:
    return str(uuid.uuid4())


def _is_available(director: Director) -> bool:
    return director.is_active and director.status == DirectorStatus.ACTIVE


def _check_director_ids(director_ids: list[str]) -> None:
    if not director_ids:
        raise ValidationError("At least one director must take part in the meeting")
    if len(set(director_ids)) != len(director_ids):
        raise ValidationError("Director ids must not repeat")


class MeetingOrchestrator:
    """Owns meeting lifecycle and the select -> compose -> generate -> persist loop."""

    def __init__(
        self,
        db: Database,
        personas: PersonaStore,
        meetings: MeetingStore,
        gateway: TextGenerationGateway,
        composer: PromptComposer,
        prompts: PromptsConfig | None = None,
        rng: random.Random | None = None,
        summarize: bool = True,
    ) -> None:
        self._db = db
        self._personas = personas
        self._meetings = meetings
        self._gateway = gateway
        self._composer = composer
        self._prompts = prompts
        self._rng = rng or random.Random()
        self._summarize = summarize
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, meeting_id: str) -> asyncio.Lock:
        return self._locks.setdefault(meeting_id, asyncio.Lock())

    # -- reads ------------------------------------------------------------

    def get_meeting(self, meeting_id: str) -> Meeting:
        return self._meetings.require_meeting(meeting_id)

    def list_meetings(
        self, status: str | None = None, search: str = "", limit: int = 20, offset: int = 0
    ) -> tuple[list[Meeting], int]:
        return self._meetings.list_meetings(status=status, search=search, limit=limit, offset=offset)

    def get_participants(self, meeting_id: str, active_only: bool = False) -> list[Participant]:
        self._meetings.require_meeting(meeting_id)
        return self._meetings.list_participants(meeting_id, active_only=active_only)

    def get_statements(
        self,
        meeting_id: str,
        round_number: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Statement]:
        self._meetings.require_meeting(meeting_id)
        return self._meetings.list_statements(
            meeting_id, round_number=round_number, limit=limit, offset=offset
        )

    def get_thread(self, statement_id: str, max_depth: int = _MAX_THREAD_DEPTH) -> list[Statement]:
        """A statement followed by its replies, depth-first in reply order.

        Walks iteratively with a visited set, so a corrupted cycle in
        response_to links cannot loop forever.
        """
        root = self._meetings.get_statement(statement_id)
        if root is None:
            raise NotFound(f"Statement not found: {statement_id}")

        thread = [root]
        visited = {root.id}
        stack = [(reply, 1) for reply in reversed(self._meetings.responses_to(root.id))]
        while stack:
            stmt, depth = stack.pop()
            if stmt.id in visited:
                continue
            visited.add(stmt.id)
            thread.append(stmt)
            if depth < max_depth:
                replies = self._meetings.responses_to(stmt.id)
                stack.extend((reply, depth + 1) for reply in reversed(replies))
        return thread

    def meeting_stats(self, meeting_id: str) -> MeetingStats:
        meeting = self._meetings.require_meeting(meeting_id)
        duration = 0
        if meeting.started_at:
            end = meeting.ended_at or datetime.now()
            duration = max(0, int((end - meeting.started_at).total_seconds()))
        per_director = [
            DirectorStats(director_id=d_id, name=name, statement_count=count, avg_tokens=avg)
            for d_id, name, count, avg in self._meetings.director_counts(meeting_id)
        ]
        return MeetingStats(
            meeting=meeting,
            duration_sec=duration,
            per_director=per_director,
            per_round=self._meetings.round_counts(meeting_id),
        )

    # -- creation and roster ----------------------------------------------

    def create(
        self,
        title: str,
        topic: str,
        *,
        director_ids: list[str],
        discussion_mode: DiscussionMode | str = DiscussionMode.ROUND_ROBIN,
        max_rounds: int = 10,
        max_participants: int = 8,
        description: str | None = None,
    ) -> Meeting:
        """Create a meeting in `preparing` with one participant per director.

        join_order follows the order of director_ids, starting at 1.

        Raises:
            ValidationError: Missing title/topic, bad mode or limits, no directors.
            TooManyParticipants: More directors than max_participants.
            DirectorsInvalid: Any director missing or not active.
        """
        title = (title or "").strip()
        topic = (topic or "").strip()
        if not title or not topic:
            raise ValidationError("Title and topic are required")
        try:
            mode = DiscussionMode(discussion_mode)
        except ValueError as exc:
            raise ValidationError(f"Unknown discussion mode: {discussion_mode}") from exc
        if max_rounds < 1 or max_participants < 1:
            raise ValidationError("max_rounds and max_participants must be at least 1")
        _check_director_ids(director_ids)
        if len(director_ids) > max_participants:
            raise TooManyParticipants(
                f"At most {max_participants} directors can join, got {len(director_ids)}"
            )

        meeting = Meeting(
            id=_new_id(),
            title=title,
            topic=topic,
            description=description,
            discussion_mode=mode,
            max_rounds=max_rounds,
            max_participants=max_participants,
            total_participants=len(director_ids),
        )
        with self._db.transaction() as conn:
            self._require_available(director_ids, conn)
            self._meetings.add_meeting(meeting, conn)
            for order, director_id in enumerate(director_ids, start=1):
                self._join(meeting.id, director_id, order, conn)

        logger.info(
            "Meeting %s created: %r, mode=%s, %d directors",
            meeting.id, title, mode.value, len(director_ids),
        )
        return meeting

    async def add_participants(self, meeting_id: str, director_ids: list[str]) -> list[Participant]:
        """Add directors to a preparing or paused meeting, after the existing roster."""
        _check_director_ids(director_ids)
        async with self._lock(meeting_id):
            with self._db.transaction() as conn:
                meeting = self._meetings.require_meeting(meeting_id, conn)
                if meeting.status not in _ROSTER_EDIT_STATUSES:
                    raise InvalidTransition("add participants to", meeting.status.value)
                self._require_available(director_ids, conn)

                existing = self._meetings.list_participants(meeting_id, conn=conn)
                already = sorted({p.director_id for p in existing} & set(director_ids))
                if already:
                    raise ValidationError(f"Already in the meeting: {', '.join(already)}")

                present = sum(1 for p in existing if p.status != ParticipantStatus.LEFT)
                if present + len(director_ids) > meeting.max_participants:
                    raise TooManyParticipants(
                        f"Meeting allows {meeting.max_participants} participants, "
                        f"has {present}, adding {len(director_ids)}"
                    )

                next_order = self._meetings.max_join_order(meeting_id, conn) + 1
                added = [
                    self._join(meeting_id, director_id, next_order + i, conn)
                    for i, director_id in enumerate(director_ids)
                ]
                meeting.total_participants = present + len(added)
                self._meetings.update_meeting(meeting, conn)

        logger.info("Meeting %s: %d participant(s) added", meeting_id, len(added))
        return added

    async def remove_participant(self, meeting_id: str, participant_id: str) -> Participant:
        """Soft-remove a participant (status left). Allowed while preparing or paused."""
        async with self._lock(meeting_id):
            with self._db.transaction() as conn:
                meeting = self._meetings.require_meeting(meeting_id, conn)
                if meeting.status not in _ROSTER_EDIT_STATUSES:
                    raise InvalidTransition("remove participants from", meeting.status.value)
                participant = self._meetings.get_participant(participant_id, conn)
                if participant is None or participant.meeting_id != meeting_id:
                    raise NotFound(f"Participant not found: {participant_id}")
                if participant.status == ParticipantStatus.LEFT:
                    return participant

                participant.status = ParticipantStatus.LEFT
                participant.is_active = False
                participant.left_at = datetime.now()
                self._meetings.update_participant(participant, conn)

                roster = self._meetings.list_participants(meeting_id, conn=conn)
                meeting.total_participants = sum(
                    1 for p in roster if p.status != ParticipantStatus.LEFT
                )
                # Everyone still present may already have spoken this round
                self._maybe_next_round(conn, meeting, [p for p in roster if p.is_active])
                self._meetings.update_meeting(meeting, conn)

        logger.info("Meeting %s: participant %s left", meeting_id, participant_id)
        return participant

    # -- state machine ----------------------------------------------------

    async def start(self, meeting_id: str) -> Statement:
        """preparing -> discussing, with an opening statement from the first participant.

        The opening is recorded as round 1, position 1, while current_round
        stays where it was.
        """
        async with self._lock(meeting_id):
            meeting = self._meetings.require_meeting(meeting_id)
            if meeting.status != MeetingStatus.PREPARING:
                raise InvalidTransition("start", meeting.status.value)
            roster = self._meetings.list_participants(meeting_id, active_only=True)
            if not roster:
                raise NoActiveParticipants(f"Meeting {meeting_id} has no active participants")

            first = roster[0]
            director = self._personas.require(first.director_id)
            prompt = self._composer.compose(
                director, meeting, ContentType.OPENING, round_number=1, sequence=1
            )
            result = await self._gateway.generate(
                prompt.text, system=prompt.system, kind=ContentType.OPENING
            )

            with self._db.transaction() as conn:
                meeting = self._claim(conn, meeting)
                statement = self._persist(
                    conn, meeting, director.id, first, result, ContentType.OPENING,
                    round_number=1, sequence=1,
                )
                meeting.status = MeetingStatus.DISCUSSING
                meeting.started_at = datetime.now()
                self._meetings.update_meeting(meeting, conn)

        logger.info("Meeting %s started, opening by %s", meeting_id, director.name)
        return statement

    async def advance(
        self,
        meeting_id: str,
        forced_director_id: str | None = None,
        response_to: str | None = None,
    ) -> Statement:
        """Generate the next statement and roll the round over when it is complete.

        Args:
            meeting_id: Meeting to advance; must be discussing or debating.
            forced_director_id: Let this participant speak now, bypassing the
                speaker selector.
            response_to: Make the statement a rebuttal of this earlier
                statement in the same meeting.

        Raises:
            InvalidTransition: Meeting is not active.
            NoActiveParticipants: Nobody left to speak.
            DirectorsInvalid: forced_director_id does not exist.
            ValidationError: forced director is not an active participant, or
                response_to is not a statement of this meeting.
        """
        async with self._lock(meeting_id):
            meeting = self._meetings.require_meeting(meeting_id)
            if meeting.status not in ACTIVE_STATUSES:
                raise InvalidTransition("advance", meeting.status.value)
            roster = self._meetings.list_participants(meeting_id, active_only=True)
            if not roster:
                raise NoActiveParticipants(f"Meeting {meeting_id} has no active participants")

            target = None
            if response_to is not None:
                target = self._meetings.get_statement(response_to)
                if target is None or target.meeting_id != meeting_id:
                    raise ValidationError(f"Statement {response_to} is not part of meeting {meeting_id}")

            round_statements = self._meetings.list_statements(
                meeting_id, round_number=meeting.current_round
            )
            if forced_director_id is not None:
                participant = self._forced_participant(roster, forced_director_id)
                sequence = len(round_statements) + 1
            else:
                choice = select_next_speaker(
                    meeting.discussion_mode, roster, round_statements, self._rng
                )
                participant, sequence = choice.participant, choice.sequence_in_round

            director = self._personas.require(participant.director_id)
            recent = self._meetings.recent_statements(meeting_id, limit=self._composer.context_window)
            speakers = self._speakers(recent + ([target] if target else []))

            if target is not None:
                content_type = ContentType.RESPONSE
                prompt = self._composer.compose_rebuttal(
                    director, meeting, target, speakers.get(target.director_id or ""), recent, speakers
                )
            else:
                content_type = ContentType.STATEMENT
                prompt = self._composer.compose(
                    director, meeting, content_type, recent, speakers, sequence=sequence
                )
            result = await self._gateway.generate(prompt.text, system=prompt.system, kind=content_type)

            with self._db.transaction() as conn:
                meeting = self._claim(conn, meeting)
                statement = self._persist(
                    conn, meeting, director.id, participant, result, content_type,
                    round_number=meeting.current_round, sequence=sequence,
                    response_to=target.id if target else None,
                )
                self._maybe_next_round(conn, meeting, roster)
                self._meetings.update_meeting(meeting, conn)

        logger.info(
            "Meeting %s: %s spoke (round %d, #%d)",
            meeting_id, director.name, statement.round_number, statement.sequence_in_round,
        )
        return statement

    async def pause(self, meeting_id: str) -> Meeting:
        async with self._lock(meeting_id):
            with self._db.transaction() as conn:
                meeting = self._meetings.require_meeting(meeting_id, conn)
                if meeting.status not in ACTIVE_STATUSES:
                    raise InvalidTransition("pause", meeting.status.value)
                meeting.status = MeetingStatus.PAUSED
                meeting.paused_at = datetime.now()
                self._meetings.update_meeting(meeting, conn)
        logger.info("Meeting %s paused", meeting_id)
        return meeting

    async def resume(self, meeting_id: str) -> Meeting:
        async with self._lock(meeting_id):
            with self._db.transaction() as conn:
                meeting = self._meetings.require_meeting(meeting_id, conn)
                if meeting.status != MeetingStatus.PAUSED:
                    raise InvalidTransition("resume", meeting.status.value)
                meeting.status = MeetingStatus.DISCUSSING
                self._meetings.update_meeting(meeting, conn)
        logger.info("Meeting %s resumed", meeting_id)
        return meeting

    async def finish(self, meeting_id: str) -> Statement | None:
        """End the meeting with a closing statement from the last participant.

        The closing is recorded in the current round and does not roll the
        round over. A summary is attempted afterwards; its failure never
        undoes the finish.

        Returns:
            The closing statement, or None if nobody was left to give it.
        """
        async with self._lock(meeting_id):
            meeting = self._meetings.require_meeting(meeting_id)
            if meeting.status == MeetingStatus.FINISHED:
                raise InvalidTransition("finish", meeting.status.value)
            roster = self._meetings.list_participants(meeting_id, active_only=True)

            last = roster[-1] if roster else None
            director = None
            result = None
            if last is not None:
                director = self._personas.require(last.director_id)
                prompt = self._composer.compose(director, meeting, ContentType.CLOSING)
                result = await self._gateway.generate(
                    prompt.text, system=prompt.system, kind=ContentType.CLOSING
                )

            closing = None
            with self._db.transaction() as conn:
                meeting = self._claim(conn, meeting)
                if director is not None and result is not None:
                    closing = self._persist(
                        conn, meeting, director.id, last, result, ContentType.CLOSING,
                        round_number=meeting.current_round,
                    )
                meeting.status = MeetingStatus.FINISHED
                meeting.ended_at = datetime.now()
                self._meetings.update_meeting(meeting, conn)

            logger.info("Meeting %s finished after %d statements", meeting_id, meeting.total_statements)

            if self._summarize and self._prompts is not None:
                await self._write_summary(meeting)
        # Nothing runs on a finished meeting any more
        self._locks.pop(meeting_id, None)
        return closing

    # -- audience questions -----------------------------------------------

    async def ask_question(self, meeting_id: str, question: str) -> Statement:
        """Record a question from the audience. It does not take a speaking turn."""
        question = (question or "").strip()
        if not question:
            raise ValidationError("Question text is required")
        async with self._lock(meeting_id):
            with self._db.transaction() as conn:
                meeting = self._meetings.require_meeting(meeting_id, conn)
                if meeting.status not in ACTIVE_STATUSES:
                    raise InvalidTransition("take questions in", meeting.status.value)
                result = GenerationResult(
                    content=question, tokens_used=0, generation_time_ms=0,
                    model=None, is_ai_generated=False,
                )
                statement = self._persist(
                    conn, meeting, None, None, result, ContentType.USER_QUESTION,
                    round_number=meeting.current_round,
                )
                self._meetings.update_meeting(meeting, conn)
        logger.info("Meeting %s: audience question recorded", meeting_id)
        return statement

    async def respond_to_question(
        self,
        meeting_id: str,
        question_id: str,
        director_ids: list[str] | None = None,
    ) -> list[Statement]:
        """Answer an audience question, one reply per active participant (or per chosen director)."""
        async with self._lock(meeting_id):
            meeting = self._meetings.require_meeting(meeting_id)
            if meeting.status not in ACTIVE_STATUSES:
                raise InvalidTransition("take questions in", meeting.status.value)
            question = self._meetings.get_statement(question_id)
            if (
                question is None
                or question.meeting_id != meeting_id
                or question.content_type != ContentType.USER_QUESTION
            ):
                raise ValidationError(f"Statement {question_id} is not a question in meeting {meeting_id}")

            roster = self._meetings.list_participants(meeting_id, active_only=True)
            if director_ids:
                responders = [self._forced_participant(roster, d_id) for d_id in director_ids]
            else:
                responders = roster
            if not responders:
                raise NoActiveParticipants(f"Meeting {meeting_id} has no active participants")

            answers: list[Statement] = []
            for participant in responders:
                director = self._personas.require(participant.director_id)
                prompt = self._composer.compose_answer(director, meeting, question.content)
                result = await self._gateway.generate(
                    prompt.text, system=prompt.system, kind=ContentType.QUESTION_RESPONSE
                )
                with self._db.transaction() as conn:
                    meeting = self._claim(conn, meeting)
                    answers.append(self._persist(
                        conn, meeting, director.id, participant, result,
                        ContentType.QUESTION_RESPONSE,
                        round_number=meeting.current_round,
                        response_to=question.id,
                    ))
                    self._meetings.update_meeting(meeting, conn)

        logger.info("Meeting %s: %d answer(s) to question %s", meeting_id, len(answers), question_id)
        return answers

    # -- helpers ----------------------------------------------------------

    def _require_available(self, director_ids: list[str], conn: Connection) -> list[Director]:
        found = {d.id: d for d in self._personas.get_many(director_ids, conn)}
        invalid = [d_id for d_id in director_ids if d_id not in found or not _is_available(found[d_id])]
        if invalid:
            raise DirectorsInvalid(
                f"Directors missing or not active: {', '.join(invalid)}", invalid
            )
        return [found[d_id] for d_id in director_ids]

    def _join(self, meeting_id: str, director_id: str, join_order: int, conn: Connection) -> Participant:
        participant = Participant(
            id=_new_id(),
            meeting_id=meeting_id,
            director_id=director_id,
            join_order=join_order,
        )
        self._meetings.add_participant(participant, conn)
        self._personas.record_meeting(director_id, conn)
        return participant

    def _forced_participant(self, roster: list[Participant], director_id: str) -> Participant:
        for participant in roster:
            if participant.director_id == director_id:
                return participant
        if self._personas.get(director_id) is None:
            raise DirectorsInvalid(f"Director not found: {director_id}", [director_id])
        raise ValidationError(f"Director {director_id} is not an active participant of this meeting")

    def _speakers(self, statements: list[Statement]) -> dict[str, Director]:
        ids = sorted({s.director_id for s in statements if s.director_id})
        return {d.id: d for d in self._personas.get_many(ids)}

    def _persist(
        self,
        conn: Connection,
        meeting: Meeting,
        director_id: str | None,
        participant: Participant | None,
        result: GenerationResult,
        content_type: ContentType,
        round_number: int,
        sequence: int | None = None,
        response_to: str | None = None,
    ) -> Statement:
        """Insert one statement and bump every counter it affects. Caller commits."""
        if sequence is None:
            sequence = len(
                self._meetings.list_statements(meeting.id, round_number=round_number, conn=conn)
            ) + 1
        statement = Statement(
            id=_new_id(),
            meeting_id=meeting.id,
            director_id=director_id,
            content=result.content,
            content_type=content_type,
            round_number=round_number,
            sequence_in_round=sequence,
            response_to=response_to,
            tokens_used=result.tokens_used,
            generation_time_ms=result.generation_time_ms,
            model=result.model,
            is_ai_generated=result.is_ai_generated,
        )
        self._meetings.add_statement(statement, conn)
        if participant is not None:
            self._meetings.record_participant_statement(participant.id, result.tokens_used, conn)
        if director_id is not None:
            self._personas.record_statement(director_id, conn)
        meeting.total_statements += 1
        return statement

    def _claim(self, conn: Connection, seen: Meeting) -> Meeting:
        """Fresh meeting row for this transaction, provided nobody wrote since `seen`.

        Another process sharing the database may have advanced the meeting
        while this one waited on the provider.
        """
        if not self._meetings.claim_meeting(seen, conn):
            raise StoreError(f"Meeting {seen.id} was changed by another writer; try again")
        return self._meetings.require_meeting(seen.id, conn)

    def _maybe_next_round(self, conn: Connection, meeting: Meeting, roster: list[Participant]) -> None:
        """Roll over once every active participant has taken a turn this round."""
        if not roster:
            return
        round_statements = self._meetings.list_statements(
            meeting.id, round_number=meeting.current_round, conn=conn
        )
        turns = len(turns_taken(round_statements, roster))
        if turns >= len(roster) and meeting.current_round < meeting.max_rounds:
            meeting.current_round += 1
            logger.info("Meeting %s: round %d begins", meeting.id, meeting.current_round)

    async def _write_summary(self, meeting: Meeting) -> None:
        try:
            statements = self._meetings.all_statements(meeting.id)
            summary = await summarize_meeting(
                meeting, statements, self._speakers(statements), self._gateway, self._prompts
            )
            if summary:
                with self._db.transaction() as conn:
                    fresh = self._meetings.require_meeting(meeting.id, conn)
                    fresh.summary = summary
                    self._meetings.update_meeting(fresh, conn)
                meeting.summary = summary
        except Exception as exc:
            logger.warning("Summary for meeting %s failed: %s", meeting.id, exc)
