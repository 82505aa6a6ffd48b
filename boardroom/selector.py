"""Speaker selection: who talks next, and at which position in the round.

Pure functions over records; nothing here reads or writes the store.
"""

import random

from boardroom.errors import NoActiveParticipants
from boardroom.models import (
    TURN_CONTENT_TYPES,
    DiscussionMode,
    Participant,
    SpeakerChoice,
    Statement,
)


def turns_taken(round_statements: list[Statement], participants: list[Participant]) -> list[Statement]:
    """Turns taken this round by directors still on the roster.

    User questions and their answers take no turn. Turns by participants
    who have since left are dropped, so the rotation does not skip anyone.
    """
    present = {p.director_id for p in participants}
    return [
        s for s in round_statements
        if s.content_type in TURN_CONTENT_TYPES and s.director_id in present
    ]


def _round_robin_index(turn_count: int, roster_size: int) -> int:
    return turn_count % roster_size


def _debate_index(turn_count: int, roster_size: int) -> int:
    # Alternates between the first two roster positions only (pro vs con);
    # anyone past position 1 is never scheduled automatically.
    return turn_count % min(2, roster_size)


def _board_index(participants: list[Participant], turns: list[Statement]) -> int:
    spoken = {s.director_id for s in turns}
    for index, participant in enumerate(participants):
        if participant.director_id not in spoken:
            return index
    return _round_robin_index(len(turns), len(participants))


def select_next_speaker(
    mode: DiscussionMode | str,
    participants: list[Participant],
    round_statements: list[Statement],
    rng: random.Random | None = None,
) -> SpeakerChoice:
    """Pick the next speaker for the current round.

    Args:
        mode: The meeting's discussion mode.
        participants: Active participants, ordered by join_order.
        round_statements: Every statement already recorded in the current round.
        rng: Source of randomness for free mode (injectable for tests).

    Returns:
        SpeakerChoice with the participant and their 1-based sequence_in_round.

    Raises:
        NoActiveParticipants: If the roster is empty.
    """
    if not participants:
        raise NoActiveParticipants("No active participants to speak")

    mode = DiscussionMode(mode)
    roster = sorted(participants, key=lambda p: p.join_order)
    turns = turns_taken(round_statements, roster)
    size = len(roster)

    if mode in (DiscussionMode.ROUND_ROBIN, DiscussionMode.FOCUS):
        index = _round_robin_index(len(turns), size)
    elif mode == DiscussionMode.DEBATE:
        index = _debate_index(len(turns), size)
    elif mode == DiscussionMode.FREE:
        index = (rng or random).randrange(size)
    elif mode == DiscussionMode.BOARD:
        index = _board_index(roster, turns)
    else:
        index = 0

    return SpeakerChoice(participant=roster[index], sequence_in_round=len(round_statements) + 1)
