"""Post-meeting summary: build transcript, call the gateway, store the summary."""

import logging

from config.config_loader import PromptsConfig
from boardroom.gateway import TextGenerationGateway
from boardroom.models import Director, Meeting, Statement

logger = logging.getLogger(__name__)


def format_transcript(statements: list[Statement], speakers: dict[str, Director]) -> str:
    """Number each statement in chronological order with its speaker."""
    parts: list[str] = []
    for index, stmt in enumerate(statements, start=1):
        speaker = speakers.get(stmt.director_id) if stmt.director_id else None
        name = speaker.name if speaker else "Audience"
        parts.append(f"{index}. {name}: {stmt.content}")
    return "\n".join(parts)


async def summarize_meeting(
    meeting: Meeting,
    statements: list[Statement],
    speakers: dict[str, Director],
    gateway: TextGenerationGateway,
    prompts: PromptsConfig,
) -> str | None:
    """Ask the gateway for a meeting summary.

    Returns:
        The summary text, or None when there is nothing to summarize or the
        gateway could only produce fallback text.
    """
    if not statements or not prompts.summary:
        return None

    summary_prompt = prompts.summary.format(
        topic=meeting.topic,
        participant_count=meeting.total_participants,
        statement_count=len(statements),
        transcript=format_transcript(statements, speakers),
    )

    logger.info("Summarizing meeting %s (%d statements)", meeting.id, len(statements))
    result = await gateway.generate(summary_prompt)

    if not result.is_ai_generated or not result.content:
        logger.info("No AI summary for meeting %s, provider unavailable", meeting.id)
        return None
    return result.content
