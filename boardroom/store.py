"""Relational persistence for directors, meetings, participants and statements.

SQLAlchemy Core tables mapped to the dataclasses in boardroom.models.
Every store method takes an optional connection so the orchestrator can
group several writes into one transaction via `Database.transaction()`.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, fields
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from boardroom.errors import NotFound, StoreError
from boardroom.models import (
    ContentType,
    Director,
    DirectorStatus,
    Meeting,
    MeetingStatus,
    DiscussionMode,
    Participant,
    ParticipantStatus,
    Statement,
)

logger = logging.getLogger(__name__)

metadata = MetaData()

directors = Table(
    "directors",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(100), nullable=False, index=True),
    Column("title", String(200), nullable=False),
    Column("era", String(100)),
    Column("avatar_url", Text),
    Column("system_prompt", Text, nullable=False),
    Column("personality_traits", JSON, nullable=False, default=list),
    Column("core_beliefs", JSON, nullable=False, default=list),
    Column("expertise_areas", JSON, nullable=False, default=list),
    Column("speaking_style", String(500)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("status", String(20), nullable=False, default=DirectorStatus.ACTIVE.value),
    Column("total_statements", Integer, nullable=False, default=0),
    Column("total_meetings", Integer, nullable=False, default=0),
    Column("last_active_at", DateTime),
    Column("created_at", DateTime, nullable=False, default=datetime.now),
    Index("ix_directors_active_status", "is_active", "status"),
)

meetings = Table(
    "meetings",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("title", String(200), nullable=False),
    Column("description", Text),
    Column("topic", Text, nullable=False),
    Column("status", String(20), nullable=False, default=MeetingStatus.PREPARING.value, index=True),
    Column("discussion_mode", String(20), nullable=False, default=DiscussionMode.ROUND_ROBIN.value),
    Column("max_rounds", Integer, nullable=False, default=10),
    Column("current_round", Integer, nullable=False, default=0),
    Column("max_participants", Integer, nullable=False, default=8),
    Column("started_at", DateTime),
    Column("paused_at", DateTime),
    Column("ended_at", DateTime),
    Column("total_statements", Integer, nullable=False, default=0),
    Column("total_participants", Integer, nullable=False, default=0),
    Column("summary", Text),
    Column("key_points", JSON, nullable=False, default=list),
    Column("controversies", JSON, nullable=False, default=list),
    Column("created_at", DateTime, nullable=False, default=datetime.now, index=True),
)

participants = Table(
    "participants",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("meeting_id", String(36), ForeignKey("meetings.id"), nullable=False),
    Column("director_id", String(36), ForeignKey("directors.id"), nullable=False, index=True),
    Column("join_order", Integer, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("status", String(20), nullable=False, default=ParticipantStatus.JOINED.value),
    Column("statements_count", Integer, nullable=False, default=0),
    Column("total_tokens_used", Integer, nullable=False, default=0),
    Column("joined_at", DateTime),
    Column("left_at", DateTime),
    Column("last_statement_at", DateTime),
    UniqueConstraint("meeting_id", "director_id", name="uq_participants_meeting_director"),
    Index("ix_participants_meeting_order", "meeting_id", "join_order"),
)

statements = Table(
    "statements",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("meeting_id", String(36), ForeignKey("meetings.id"), nullable=False),
    Column("director_id", String(36), ForeignKey("directors.id")),
    Column("content", Text, nullable=False),
    Column("content_type", String(20), nullable=False, default=ContentType.STATEMENT.value),
    Column("round_number", Integer, nullable=False),
    Column("sequence_in_round", Integer, nullable=False),
    Column("response_to", String(36), ForeignKey("statements.id"), index=True),
    Column("tokens_used", Integer, nullable=False, default=0),
    Column("generation_time_ms", Integer, nullable=False, default=0),
    Column("model", String(100)),
    Column("is_ai_generated", Boolean, nullable=False, default=False),
    Column("created_at", DateTime, nullable=False, default=datetime.now, index=True),
    # Insertion order breaks created_at ties within the same clock tick
    Column("seq", Integer, nullable=False, default=0),
    UniqueConstraint(
        "meeting_id", "round_number", "sequence_in_round", name="uq_statements_meeting_round_seq"
    ),
)

# Generated tokens per local calendar day, shared by every process on the database
token_usage = Table(
    "token_usage",
    metadata,
    Column("day", String(10), primary_key=True),
    Column("tokens", Integer, nullable=False, default=0),
    Column("requests", Integer, nullable=False, default=0),
)


def _row_values(record) -> dict:
    """Dataclass -> column dict, with enums flattened to their values."""
    values = asdict(record)
    for key, value in values.items():
        if hasattr(value, "value"):
            values[key] = value.value
    return values


def _to_record(cls, row, enums: dict | None = None):
    mapping = dict(row._mapping)
    names = {f.name for f in fields(cls)}
    data = {k: v for k, v in mapping.items() if k in names}
    for key, enum_cls in (enums or {}).items():
        if data.get(key) is not None:
            data[key] = enum_cls(data[key])
    return cls(**data)


def _to_director(row) -> Director:
    return _to_record(Director, row, {"status": DirectorStatus})


def _to_meeting(row) -> Meeting:
    return _to_record(
        Meeting, row, {"status": MeetingStatus, "discussion_mode": DiscussionMode}
    )


def _to_participant(row) -> Participant:
    return _to_record(Participant, row, {"status": ParticipantStatus})


def _to_statement(row) -> Statement:
    return _to_record(Statement, row, {"content_type": ContentType})


class Database:
    """Owns the engine and hands out transactional connections."""

    def __init__(self, url: str = "sqlite:///boardroom.db", echo: bool = False) -> None:
        kwargs: dict = {"echo": echo}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise each checkout sees an empty database
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        self.url = url
        self.engine: Engine = create_engine(url, **kwargs)

    def create_all(self) -> None:
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to create schema: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection; commit on success, roll back on any error."""
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.error("Transaction rolled back: %s", exc)
            raise StoreError(f"Database operation failed: {exc}") from exc

    @contextmanager
    def connect(self, conn: Connection | None = None) -> Iterator[Connection]:
        """Reuse the caller's connection, or open a one-shot transaction."""
        if conn is not None:
            yield conn
            return
        with self.transaction() as own:
            yield own


class PersonaStore:
    """Director records."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def add(self, director: Director, conn: Connection | None = None) -> Director:
        if director.created_at is None:
            director.created_at = datetime.now()
        with self._db.connect(conn) as c:
            c.execute(directors.insert().values(**_row_values(director)))
        return director

    def get(self, director_id: str, conn: Connection | None = None) -> Director | None:
        with self._db.connect(conn) as c:
            row = c.execute(select(directors).where(directors.c.id == director_id)).first()
        return _to_director(row) if row else None

    def require(self, director_id: str, conn: Connection | None = None) -> Director:
        director = self.get(director_id, conn)
        if director is None:
            raise NotFound(f"Director not found: {director_id}")
        return director

    def get_many(self, director_ids: list[str], conn: Connection | None = None) -> list[Director]:
        if not director_ids:
            return []
        with self._db.connect(conn) as c:
            rows = c.execute(select(directors).where(directors.c.id.in_(director_ids))).all()
        return [_to_director(r) for r in rows]

    def list_directors(self, active_only: bool = False, include_archived: bool = False,
                       conn: Connection | None = None) -> list[Director]:
        query = select(directors).order_by(directors.c.created_at, directors.c.name)
        if active_only:
            query = query.where(
                directors.c.is_active.is_(True),
                directors.c.status == DirectorStatus.ACTIVE.value,
            )
        elif not include_archived:
            query = query.where(directors.c.status != DirectorStatus.ARCHIVED.value)
        with self._db.connect(conn) as c:
            rows = c.execute(query).all()
        return [_to_director(r) for r in rows]

    def find_by_name(self, name: str, conn: Connection | None = None) -> Director | None:
        """Case-insensitive exact match among non-archived directors."""
        query = select(directors).where(
            func.lower(directors.c.name) == name.strip().lower(),
            directors.c.status != DirectorStatus.ARCHIVED.value,
        )
        with self._db.connect(conn) as c:
            row = c.execute(query).first()
        return _to_director(row) if row else None

    def update(self, director: Director, conn: Connection | None = None) -> Director:
        values = _row_values(director)
        values.pop("id")
        with self._db.connect(conn) as c:
            c.execute(directors.update().where(directors.c.id == director.id).values(**values))
        return director

    def archive(self, director_id: str, conn: Connection | None = None) -> Director:
        """Soft delete. Referenced directors are never physically removed."""
        with self._db.connect(conn) as c:
            director = self.require(director_id, c)
            director.is_active = False
            director.status = DirectorStatus.ARCHIVED
            self.update(director, c)
        return director

    def record_statement(self, director_id: str, conn: Connection | None = None) -> None:
        with self._db.connect(conn) as c:
            c.execute(
                directors.update()
                .where(directors.c.id == director_id)
                .values(
                    total_statements=directors.c.total_statements + 1,
                    last_active_at=datetime.now(),
                )
            )

    def record_meeting(self, director_id: str, conn: Connection | None = None) -> None:
        with self._db.connect(conn) as c:
            c.execute(
                directors.update()
                .where(directors.c.id == director_id)
                .values(
                    total_meetings=directors.c.total_meetings + 1,
                    last_active_at=datetime.now(),
                )
            )


class MeetingStore:
    """Meeting, participant and statement records."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # -- meetings ---------------------------------------------------------

    def add_meeting(self, meeting: Meeting, conn: Connection | None = None) -> Meeting:
        if meeting.created_at is None:
            meeting.created_at = datetime.now()
        with self._db.connect(conn) as c:
            c.execute(meetings.insert().values(**_row_values(meeting)))
        return meeting

    def get_meeting(self, meeting_id: str, conn: Connection | None = None) -> Meeting | None:
        with self._db.connect(conn) as c:
            row = c.execute(select(meetings).where(meetings.c.id == meeting_id)).first()
        return _to_meeting(row) if row else None

    def require_meeting(self, meeting_id: str, conn: Connection | None = None) -> Meeting:
        meeting = self.get_meeting(meeting_id, conn)
        if meeting is None:
            raise NotFound(f"Meeting not found: {meeting_id}")
        return meeting

    def list_meetings(
        self,
        status: str | None = None,
        search: str = "",
        limit: int = 20,
        offset: int = 0,
        conn: Connection | None = None,
    ) -> tuple[list[Meeting], int]:
        """Newest first. Returns (page, total matching)."""
        conditions = []
        if status and status != "all":
            conditions.append(meetings.c.status == status)
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(or_(
                func.lower(meetings.c.title).like(pattern),
                func.lower(meetings.c.description).like(pattern),
                func.lower(meetings.c.topic).like(pattern),
            ))
        query = select(meetings).where(*conditions).order_by(meetings.c.created_at.desc())
        count_query = select(func.count()).select_from(meetings).where(*conditions)
        with self._db.connect(conn) as c:
            total = c.execute(count_query).scalar_one()
            rows = c.execute(query.limit(limit).offset(offset)).all()
        return [_to_meeting(r) for r in rows], total

    def update_meeting(self, meeting: Meeting, conn: Connection | None = None) -> Meeting:
        values = _row_values(meeting)
        values.pop("id")
        with self._db.connect(conn) as c:
            c.execute(meetings.update().where(meetings.c.id == meeting.id).values(**values))
        return meeting

    def claim_meeting(self, seen: Meeting, conn: Connection) -> bool:
        """Lock the meeting row if it still matches what the caller read earlier.

        Compares status, current_round and total_statements. Returns False
        when another writer changed the meeting in between, in which case
        the caller must not build on its stale view.
        """
        result = conn.execute(
            meetings.update()
            .where(
                meetings.c.id == seen.id,
                meetings.c.status == seen.status.value,
                meetings.c.current_round == seen.current_round,
                meetings.c.total_statements == seen.total_statements,
            )
            .values(total_statements=meetings.c.total_statements)
        )
        return result.rowcount == 1

    # -- participants -----------------------------------------------------

    def add_participant(self, participant: Participant, conn: Connection | None = None) -> Participant:
        if participant.joined_at is None:
            participant.joined_at = datetime.now()
        with self._db.connect(conn) as c:
            c.execute(participants.insert().values(**_row_values(participant)))
        return participant

    def get_participant(self, participant_id: str, conn: Connection | None = None) -> Participant | None:
        with self._db.connect(conn) as c:
            row = c.execute(select(participants).where(participants.c.id == participant_id)).first()
        return _to_participant(row) if row else None

    def list_participants(
        self, meeting_id: str, active_only: bool = False, conn: Connection | None = None
    ) -> list[Participant]:
        """Participants ordered by join_order."""
        query = select(participants).where(participants.c.meeting_id == meeting_id)
        if active_only:
            query = query.where(participants.c.is_active.is_(True))
        query = query.order_by(participants.c.join_order)
        with self._db.connect(conn) as c:
            rows = c.execute(query).all()
        return [_to_participant(r) for r in rows]

    def max_join_order(self, meeting_id: str, conn: Connection | None = None) -> int:
        query = select(func.max(participants.c.join_order)).where(
            participants.c.meeting_id == meeting_id
        )
        with self._db.connect(conn) as c:
            value = c.execute(query).scalar()
        return value or 0

    def update_participant(self, participant: Participant, conn: Connection | None = None) -> Participant:
        values = _row_values(participant)
        values.pop("id")
        with self._db.connect(conn) as c:
            c.execute(participants.update().where(participants.c.id == participant.id).values(**values))
        return participant

    def record_participant_statement(
        self, participant_id: str, tokens_used: int = 0, conn: Connection | None = None
    ) -> None:
        with self._db.connect(conn) as c:
            c.execute(
                participants.update()
                .where(participants.c.id == participant_id)
                .values(
                    statements_count=participants.c.statements_count + 1,
                    total_tokens_used=participants.c.total_tokens_used + tokens_used,
                    last_statement_at=datetime.now(),
                )
            )

    # -- statements -------------------------------------------------------

    def add_statement(self, statement: Statement, conn: Connection | None = None) -> Statement:
        if statement.created_at is None:
            statement.created_at = datetime.now()
        with self._db.connect(conn) as c:
            next_seq = c.execute(select(func.coalesce(func.max(statements.c.seq), 0) + 1)).scalar_one()
            c.execute(statements.insert().values(seq=next_seq, **_row_values(statement)))
        return statement

    def get_statement(self, statement_id: str, conn: Connection | None = None) -> Statement | None:
        with self._db.connect(conn) as c:
            row = c.execute(select(statements).where(statements.c.id == statement_id)).first()
        return _to_statement(row) if row else None

    def list_statements(
        self,
        meeting_id: str,
        round_number: int | None = None,
        limit: int | None = None,
        offset: int = 0,
        conn: Connection | None = None,
    ) -> list[Statement]:
        """Ordered by round, then position within the round."""
        query = select(statements).where(statements.c.meeting_id == meeting_id)
        if round_number is not None:
            query = query.where(statements.c.round_number == round_number)
        query = query.order_by(
            statements.c.round_number, statements.c.sequence_in_round, statements.c.seq
        ).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        with self._db.connect(conn) as c:
            rows = c.execute(query).all()
        return [_to_statement(r) for r in rows]

    def recent_statements(
        self, meeting_id: str, limit: int = 10, conn: Connection | None = None
    ) -> list[Statement]:
        """Most recent first."""
        query = (
            select(statements)
            .where(statements.c.meeting_id == meeting_id)
            .order_by(statements.c.seq.desc())
            .limit(limit)
        )
        with self._db.connect(conn) as c:
            rows = c.execute(query).all()
        return [_to_statement(r) for r in rows]

    def all_statements(self, meeting_id: str, conn: Connection | None = None) -> list[Statement]:
        """Chronological (insertion) order."""
        query = (
            select(statements)
            .where(statements.c.meeting_id == meeting_id)
            .order_by(statements.c.seq)
        )
        with self._db.connect(conn) as c:
            rows = c.execute(query).all()
        return [_to_statement(r) for r in rows]

    def responses_to(self, statement_id: str, conn: Connection | None = None) -> list[Statement]:
        query = (
            select(statements)
            .where(statements.c.response_to == statement_id)
            .order_by(statements.c.seq)
        )
        with self._db.connect(conn) as c:
            rows = c.execute(query).all()
        return [_to_statement(r) for r in rows]

    def round_counts(self, meeting_id: str, conn: Connection | None = None) -> dict[int, int]:
        query = (
            select(statements.c.round_number, func.count())
            .where(statements.c.meeting_id == meeting_id)
            .group_by(statements.c.round_number)
            .order_by(statements.c.round_number)
        )
        with self._db.connect(conn) as c:
            rows = c.execute(query).all()
        return {round_number: count for round_number, count in rows}

    def director_counts(self, meeting_id: str, conn: Connection | None = None) -> list[tuple[str, str, int, float]]:
        """(director_id, name, statement_count, avg_tokens) per speaking director."""
        query = (
            select(
                statements.c.director_id,
                directors.c.name,
                func.count(),
                func.avg(statements.c.tokens_used),
            )
            .join(directors, directors.c.id == statements.c.director_id)
            .where(statements.c.meeting_id == meeting_id)
            .group_by(statements.c.director_id, directors.c.name)
            .order_by(func.count().desc())
        )
        with self._db.connect(conn) as c:
            rows = c.execute(query).all()
        return [(d_id, name, count, float(avg or 0)) for d_id, name, count, avg in rows]


class UsageStore:
    """Daily token totals, so the budget holds across separate processes."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def tokens_on(self, day: str, conn: Connection | None = None) -> int:
        with self._db.connect(conn) as c:
            value = c.execute(
                select(token_usage.c.tokens).where(token_usage.c.day == day)
            ).scalar()
        return value or 0

    def add(self, day: str, tokens: int, conn: Connection | None = None) -> int:
        """Add one request's tokens to the day. Returns the new daily total."""
        with self._db.connect(conn) as c:
            updated = c.execute(
                token_usage.update()
                .where(token_usage.c.day == day)
                .values(
                    tokens=token_usage.c.tokens + tokens,
                    requests=token_usage.c.requests + 1,
                )
            )
            if updated.rowcount == 0:
                c.execute(token_usage.insert().values(day=day, tokens=tokens, requests=1))
            return self.tokens_on(day, c)
