"""Director management: create, edit, archive, and LLM-assisted persona parsing."""

import json
import logging
import re
import uuid
from dataclasses import dataclass, field

from config.config_loader import PromptsConfig
from boardroom.errors import ValidationError
from boardroom.gateway import TextGenerationGateway
from boardroom.models import Director, DirectorStatus
from boardroom.store import PersonaStore

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown Figure"

# Profiles used when the persona prompt cannot be parsed by the LLM.
# Keys are lowercase keywords looked up in the prompt.
_KNOWN_FIGURES: dict[str, dict] = {
    "einstein": {
        "name": "Albert Einstein",
        "title": "Theoretical physicist",
        "era": "20th century (1879-1955)",
        "core_beliefs": ["Scientific reason", "Harmony of the universe", "Pursuit of truth"],
        "speaking_style": "Witty, fond of analogies",
        "personality_traits": ["Curious", "Independent", "Imaginative"],
        "expertise_areas": ["Theoretical physics", "Mathematics", "Philosophy"],
        "historical_significance": "Developed the theory of relativity",
    },
    "newton": {
        "name": "Isaac Newton",
        "title": "Physicist and mathematician",
        "era": "17th-18th century (1643-1727)",
        "core_beliefs": ["Mathematical proof", "Experimental verification", "Laws of nature"],
        "speaking_style": "Rigorous and precise",
        "personality_traits": ["Rigorous", "Focused", "Persistent"],
        "expertise_areas": ["Physics", "Mathematics", "Astronomy"],
        "historical_significance": "Founded classical mechanics",
    },
    "darwin": {
        "name": "Charles Darwin",
        "title": "Naturalist and biologist",
        "era": "19th century (1809-1882)",
        "core_beliefs": ["Evolution", "Natural selection", "Careful observation"],
        "speaking_style": "Cautious and evidence-based",
        "personality_traits": ["Observant", "Cautious", "Patient"],
        "expertise_areas": ["Biology", "Geology", "Natural history"],
        "historical_significance": "Formulated the theory of evolution by natural selection",
    },
    "marx": {
        "name": "Karl Marx",
        "title": "Philosopher and political economist",
        "era": "19th century (1818-1883)",
        "core_beliefs": ["Historical materialism", "Class struggle", "Social revolution"],
        "speaking_style": "Passionate and tightly argued",
        "personality_traits": ["Fervent", "Deep thinker", "Critical"],
        "expertise_areas": ["Philosophy", "Political economy", "Sociology"],
        "historical_significance": "Founded the theory of scientific socialism",
    },
    "confucius": {
        "name": "Confucius",
        "title": "Educator and philosopher",
        "era": "Spring and Autumn period (551-479 BC)",
        "core_beliefs": ["Benevolence", "Ritual propriety", "Education for all"],
        "speaking_style": "Gentle and patient, teaches by example",
        "personality_traits": ["Kind", "Learned", "Patient"],
        "expertise_areas": ["Education", "Ethics", "Statecraft"],
        "historical_significance": "Founder of Confucianism",
    },
    "laozi": {
        "name": "Laozi",
        "title": "Founder of Taoism",
        "era": "Spring and Autumn period (c. 6th century BC)",
        "core_beliefs": ["The Tao follows nature", "Governing by non-action", "Balance of yin and yang"],
        "speaking_style": "Profound and allusive",
        "personality_traits": ["Detached", "Wise", "Simple"],
        "expertise_areas": ["Taoist philosophy", "Political philosophy"],
        "historical_significance": "Author of the Tao Te Ching",
    },
}

_LIST_FIELDS = ("core_beliefs", "personality_traits", "expertise_areas")


@dataclass
class ParsedPersona:
    name: str
    title: str = ""
    era: str = ""
    core_beliefs: list[str] = field(default_factory=list)
    speaking_style: str = ""
    personality_traits: list[str] = field(default_factory=list)
    expertise_areas: list[str] = field(default_factory=list)
    historical_significance: str = ""
    confidence: float = 0.3
    is_ai_generated: bool = False
    tokens_used: int = 0


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    match = re.match(r"^```(?:json)?\s*(.*?)\s*```$", text, re.DOTALL)
    return match.group(1) if match else text


def _salvage_fields(text: str) -> dict:
    """Pull name/title out of almost-JSON when json.loads gives up."""
    info: dict = {"name": UNKNOWN_NAME}
    for key in ("name", "title", "era", "speaking_style"):
        match = re.search(rf'"?{key}"?\s*:\s*"([^"]+)"', text, re.IGNORECASE)
        if match:
            info[key] = match.group(1).strip()
    return info


def _to_parsed(data: dict, confidence: float, is_ai_generated: bool, tokens: int = 0) -> ParsedPersona:
    values = {
        "name": str(data.get("name") or UNKNOWN_NAME).strip(),
        "title": str(data.get("title") or "").strip(),
        "era": str(data.get("era") or "").strip(),
        "speaking_style": str(data.get("speaking_style") or "").strip(),
        "historical_significance": str(data.get("historical_significance") or "").strip(),
    }
    for key in _LIST_FIELDS:
        raw = data.get(key) or []
        if isinstance(raw, str):
            raw = [raw]
        values[key] = [str(item).strip() for item in raw if str(item).strip()][:5]
    return ParsedPersona(
        **values, confidence=confidence, is_ai_generated=is_ai_generated, tokens_used=tokens
    )


def fallback_persona(system_prompt: str) -> ParsedPersona:
    """Keyword-matched profile for well-known figures, generic otherwise."""
    lowered = system_prompt.lower()
    for keyword, profile in _KNOWN_FIGURES.items():
        if keyword in lowered:
            return _to_parsed(profile, confidence=0.3, is_ai_generated=False)
    generic = {
        "name": f"{UNKNOWN_NAME} {uuid.uuid4().hex[:4]}",
        "title": "Thinker",
        "era": "Historical period",
        "core_beliefs": ["Rational thought", "Pursuit of truth"],
        "speaking_style": "Thoughtful and orderly",
        "personality_traits": ["Wise", "Reflective"],
        "expertise_areas": ["Philosophy"],
    }
    return _to_parsed(generic, confidence=0.3, is_ai_generated=False)


async def parse_persona_prompt(
    system_prompt: str,
    gateway: TextGenerationGateway,
    prompts: PromptsConfig,
) -> ParsedPersona:
    """Extract a director profile from a free-text persona prompt.

    Asks the LLM for JSON. Code fences are stripped; malformed JSON is
    salvaged field by field. When the gateway can only produce fallback
    text, a keyword-based profile is returned instead.
    """
    system_prompt = (system_prompt or "").strip()
    if not system_prompt:
        raise ValidationError("Persona prompt is required")

    result = await gateway.generate(
        prompts.persona_parse.format(system_prompt=system_prompt),
        system=prompts.persona_parse_system or None,
    )
    if not result.is_ai_generated:
        logger.info("Persona parse fell back to keyword matching")
        return fallback_persona(system_prompt)

    cleaned = _strip_code_fence(result.content)
    try:
        data = json.loads(cleaned)
        if not isinstance(data, dict):
            raise ValueError("persona JSON is not an object")
    except ValueError:
        logger.warning("Could not parse persona JSON, salvaging fields from text")
        data = _salvage_fields(cleaned)
    return _to_parsed(data, confidence=0.9, is_ai_generated=True, tokens=result.tokens_used)


def create_director(
    personas: PersonaStore,
    name: str,
    title: str,
    system_prompt: str,
    era: str | None = None,
    speaking_style: str | None = None,
    personality_traits: list[str] | None = None,
    core_beliefs: list[str] | None = None,
    expertise_areas: list[str] | None = None,
    avatar_url: str | None = None,
) -> Director:
    """Create a director. Names are unique among non-archived directors."""
    name = (name or "").strip()
    title = (title or "").strip()
    system_prompt = (system_prompt or "").strip()
    if not name or not title or not system_prompt:
        raise ValidationError("Name, title and persona prompt are required")
    if personas.find_by_name(name) is not None:
        raise ValidationError(f"A director named '{name}' already exists")

    director = Director(
        id=str(uuid.uuid4()),
        name=name,
        title=title,
        system_prompt=system_prompt,
        era=era,
        avatar_url=avatar_url,
        speaking_style=speaking_style,
        personality_traits=list(personality_traits or []),
        core_beliefs=list(core_beliefs or []),
        expertise_areas=list(expertise_areas or []),
    )
    personas.add(director)
    logger.info("Director created: %s (%s)", director.name, director.id)
    return director


async def create_from_prompt(
    personas: PersonaStore,
    system_prompt: str,
    gateway: TextGenerationGateway,
    prompts: PromptsConfig,
) -> tuple[Director, ParsedPersona]:
    """Parse a persona prompt and create the director it describes."""
    parsed = await parse_persona_prompt(system_prompt, gateway, prompts)
    director = create_director(
        personas,
        name=parsed.name,
        title=parsed.title or "Director",
        system_prompt=system_prompt,
        era=parsed.era or None,
        speaking_style=parsed.speaking_style or None,
        personality_traits=parsed.personality_traits,
        core_beliefs=parsed.core_beliefs,
        expertise_areas=parsed.expertise_areas,
    )
    return director, parsed


_EDITABLE = frozenset({
    "name", "title", "era", "avatar_url", "system_prompt", "speaking_style",
    "personality_traits", "core_beliefs", "expertise_areas", "is_active", "status",
})


def update_director(personas: PersonaStore, director_id: str, **changes) -> Director:
    """Apply field changes. Renames keep the unique-name rule."""
    unknown = set(changes) - _EDITABLE
    if unknown:
        raise ValidationError(f"Cannot edit: {', '.join(sorted(unknown))}")

    director = personas.require(director_id)
    if "name" in changes:
        new_name = (changes["name"] or "").strip()
        if not new_name:
            raise ValidationError("Name cannot be empty")
        clash = personas.find_by_name(new_name)
        if clash is not None and clash.id != director_id:
            raise ValidationError(f"A director named '{new_name}' already exists")
        changes["name"] = new_name
    if "system_prompt" in changes and not (changes["system_prompt"] or "").strip():
        raise ValidationError("Persona prompt cannot be empty")
    if "status" in changes:
        try:
            changes["status"] = DirectorStatus(changes["status"])
        except ValueError as exc:
            raise ValidationError(f"Unknown director status: {changes['status']}") from exc

    for key, value in changes.items():
        setattr(director, key, value)
    personas.update(director)
    return director


def archive_director(personas: PersonaStore, director_id: str) -> Director:
    """Soft delete: directors referenced by meetings are never removed."""
    director = personas.archive(director_id)
    logger.info("Director archived: %s", director.name)
    return director
