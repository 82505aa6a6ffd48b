"""Import directors from markdown persona files with YAML frontmatter.

The file body is the persona system prompt; frontmatter carries the
profile, e.g.

    ---
    name: Albert Einstein
    title: Theoretical physicist
    era: 20th century
    personality_traits: [curious, playful]
    ---
    You are Albert Einstein...
"""

import logging
from pathlib import Path

import frontmatter

from boardroom.directors import create_director
from boardroom.errors import ValidationError
from boardroom.models import Director
from boardroom.store import PersonaStore

logger = logging.getLogger(__name__)


def scan_persona_dir(persona_dir: Path) -> list[Path]:
    """Return all .md files in persona_dir, sorted by name."""
    return sorted(persona_dir.glob("*.md"))


def parse_persona_file(file_path: Path) -> tuple[str, dict]:
    """Parse a persona file.

    Returns:
        (system_prompt, metadata). If no frontmatter, metadata is {}.
    """
    post = frontmatter.load(str(file_path))
    return post.content.strip(), dict(post.metadata)


def _as_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(item) for item in value]


def import_persona_file(personas: PersonaStore, file_path: Path) -> Director:
    """Create one director from a persona file. The name defaults to the file stem."""
    system_prompt, meta = parse_persona_file(file_path)
    name = str(meta.get("name") or file_path.stem.replace("_", " ").replace("-", " ").title())
    return create_director(
        personas,
        name=name,
        title=str(meta.get("title") or "Director"),
        system_prompt=system_prompt,
        era=meta.get("era"),
        speaking_style=meta.get("speaking_style"),
        personality_traits=_as_list(meta.get("personality_traits")),
        core_beliefs=_as_list(meta.get("core_beliefs")),
        expertise_areas=_as_list(meta.get("expertise_areas")),
        avatar_url=meta.get("avatar_url"),
    )


def import_persona_dir(personas: PersonaStore, persona_dir: Path) -> tuple[list[Director], list[tuple[Path, str]]]:
    """Import every persona file in a directory.

    Returns:
        (created directors, [(file, error message)] for files that were skipped).
    """
    created: list[Director] = []
    skipped: list[tuple[Path, str]] = []
    for file_path in scan_persona_dir(persona_dir):
        try:
            created.append(import_persona_file(personas, file_path))
        except ValidationError as exc:
            logger.warning("Skipped %s: %s", file_path.name, exc)
            skipped.append((file_path, str(exc)))
    return created, skipped
