"""Prompt composition: turn a director, a meeting and recent context into LLM input.

Deterministic string building only. The director's persona travels in the
system channel; everything else goes into the user prompt.
"""

from dataclasses import dataclass

from config.config_loader import PromptsConfig
from boardroom.models import ContentType, Director, Meeting, Statement


@dataclass
class ComposedPrompt:
    system: str
    text: str


def _speaker_label(director: Director | None) -> str:
    if director is None:
        return "Audience"
    return f"{director.name}({director.title})"


def format_recent_statements(
    recent: list[Statement],
    speakers: dict[str, Director],
) -> str:
    """Render most-recent-first statements as a chronological excerpt."""
    if not recent:
        return ""
    lines = ["", "Recent statements:"]
    for stmt in reversed(recent):
        speaker = speakers.get(stmt.director_id) if stmt.director_id else None
        lines.append(f"{_speaker_label(speaker)}: {stmt.content}")
        lines.append("")
    return "\n".join(lines)


class PromptComposer:
    """Builds prompts from the templates in settings.yaml."""

    def __init__(self, prompts: PromptsConfig, context_window: int = 10) -> None:
        self._prompts = prompts
        self.context_window = context_window

    def _finish(self, director: Director, body: str) -> ComposedPrompt:
        text = body.rstrip() + "\n\n" + self._prompts.length_constraint.strip()
        return ComposedPrompt(system=director.system_prompt, text=text)

    def compose(
        self,
        director: Director,
        meeting: Meeting,
        statement_type: ContentType,
        recent: list[Statement] | None = None,
        speakers: dict[str, Director] | None = None,
        round_number: int | None = None,
        sequence: int = 1,
    ) -> ComposedPrompt:
        """Build the prompt for one opening, closing or regular statement.

        Args:
            director: Who is speaking; supplies the persona system prompt.
            meeting: Supplies topic and, by default, the round number.
            statement_type: OPENING, CLOSING, or anything else for a regular turn.
            recent: Up to `context_window` prior statements, most recent first.
            speakers: director_id -> Director for labelling `recent`.
            round_number: Round to announce; defaults to meeting.current_round.
            sequence: The speaker's position within the round.
        """
        if statement_type == ContentType.OPENING:
            body = self._prompts.opening.format(topic=meeting.topic)
        elif statement_type == ContentType.CLOSING:
            body = self._prompts.closing.format(topic=meeting.topic)
        else:
            excerpt = format_recent_statements(
                (recent or [])[: self.context_window], speakers or {}
            )
            body = self._prompts.regular.format(
                topic=meeting.topic,
                round=meeting.current_round if round_number is None else round_number,
                sequence=sequence,
                recent_statements=excerpt,
            )
        return self._finish(director, body)

    def compose_rebuttal(
        self,
        director: Director,
        meeting: Meeting,
        target: Statement,
        target_speaker: Director | None,
        recent: list[Statement] | None = None,
        speakers: dict[str, Director] | None = None,
    ) -> ComposedPrompt:
        """Prompt for a direct reply to one earlier statement."""
        context = [s for s in (recent or []) if s.id != target.id][: self.context_window]
        body = self._prompts.response.format(
            topic=meeting.topic,
            target_speaker=_speaker_label(target_speaker),
            target_content=target.content,
            recent_statements=format_recent_statements(context, speakers or {}),
        )
        return self._finish(director, body)

    def compose_answer(self, director: Director, meeting: Meeting, question: str) -> ComposedPrompt:
        """Prompt for a director answering a user's question."""
        body = self._prompts.question.format(topic=meeting.topic, question=question)
        return self._finish(director, body)
