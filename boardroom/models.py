"""Pure dataclasses for boardroom records. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class DirectorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    RETIRED = "retired"
    SUSPENDED = "suspended"
    ARCHIVED = "archived"


class MeetingStatus(str, Enum):
    PREPARING = "preparing"
    OPENING = "opening"
    DISCUSSING = "discussing"
    DEBATING = "debating"
    PAUSED = "paused"
    CONCLUDING = "concluding"
    FINISHED = "finished"


class DiscussionMode(str, Enum):
    ROUND_ROBIN = "round_robin"
    DEBATE = "debate"
    FOCUS = "focus"
    FREE = "free"
    BOARD = "board"


class ParticipantStatus(str, Enum):
    INVITED = "invited"
    JOINED = "joined"
    SPEAKING = "speaking"
    FINISHED = "finished"
    LEFT = "left"


class ContentType(str, Enum):
    OPENING = "opening"
    STATEMENT = "statement"
    RESPONSE = "response"
    QUESTION = "question"
    SUMMARY = "summary"
    CLOSING = "closing"
    USER_QUESTION = "user_question"
    QUESTION_RESPONSE = "question_response"


# Meeting states from which pause/advance are legal
ACTIVE_STATUSES = frozenset({MeetingStatus.DISCUSSING, MeetingStatus.DEBATING})

# Statement kinds that occupy a speaking turn in the round rotation
TURN_CONTENT_TYPES = frozenset({ContentType.OPENING, ContentType.STATEMENT, ContentType.RESPONSE})


@dataclass
class Director:
    id: str
    name: str
    title: str
    system_prompt: str
    era: str | None = None
    avatar_url: str | None = None
    personality_traits: list[str] = field(default_factory=list)
    core_beliefs: list[str] = field(default_factory=list)
    expertise_areas: list[str] = field(default_factory=list)
    speaking_style: str | None = None
    is_active: bool = True
    status: DirectorStatus = DirectorStatus.ACTIVE
    total_statements: int = 0
    total_meetings: int = 0
    last_active_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class Meeting:
    id: str
    title: str
    topic: str
    description: str | None = None
    status: MeetingStatus = MeetingStatus.PREPARING
    discussion_mode: DiscussionMode = DiscussionMode.ROUND_ROBIN
    max_rounds: int = 10
    current_round: int = 0
    max_participants: int = 8
    started_at: datetime | None = None
    paused_at: datetime | None = None
    ended_at: datetime | None = None
    total_statements: int = 0
    total_participants: int = 0
    summary: str | None = None
    key_points: list[str] = field(default_factory=list)
    controversies: list[str] = field(default_factory=list)
    created_at: datetime | None = None


@dataclass
class Participant:
    id: str
    meeting_id: str
    director_id: str
    join_order: int
    is_active: bool = True
    status: ParticipantStatus = ParticipantStatus.JOINED
    statements_count: int = 0
    total_tokens_used: int = 0
    joined_at: datetime | None = None
    left_at: datetime | None = None
    last_statement_at: datetime | None = None


@dataclass
class Statement:
    id: str
    meeting_id: str
    director_id: str | None    # None only for user_question
    content: str
    content_type: ContentType
    round_number: int
    sequence_in_round: int
    response_to: str | None = None
    tokens_used: int = 0
    generation_time_ms: int = 0
    model: str | None = None
    is_ai_generated: bool = False
    created_at: datetime | None = None


@dataclass
class ModelResponse:
    provider: str          # "claude", "openai", "grok"
    model: str             # actual model string used
    content: str
    latency_sec: float
    token_count: int | None


@dataclass
class GenerationResult:
    content: str
    tokens_used: int
    generation_time_ms: int
    model: str | None
    is_ai_generated: bool


@dataclass
class BudgetCheck:
    can_proceed: bool
    current_usage: int
    daily_limit: int
    remaining: int


@dataclass
class UsageStats:
    total_requests: int
    total_tokens: int
    daily_tokens: int
    last_reset_date: str
    daily_limit: int
    remaining: int
    is_configured: bool = False


@dataclass
class SpeakerChoice:
    participant: Participant
    sequence_in_round: int


@dataclass
class DirectorStats:
    director_id: str
    name: str
    statement_count: int
    avg_tokens: float


@dataclass
class MeetingStats:
    meeting: Meeting
    duration_sec: int
    per_director: list[DirectorStats] = field(default_factory=list)
    per_round: dict[int, int] = field(default_factory=dict)
