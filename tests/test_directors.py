"""Tests for boardroom/directors.py."""

import json

import pytest

from boardroom.directors import (
    UNKNOWN_NAME,
    archive_director,
    create_director,
    create_from_prompt,
    fallback_persona,
    parse_persona_prompt,
    update_director,
)
from boardroom.errors import NotFound, ValidationError
from boardroom.models import DirectorStatus, ModelResponse


def _reply(mock_provider, content: str) -> None:
    mock_provider.generate.return_value = ModelResponse(
        provider="mock", model="mock-model", content=content, latency_sec=0.2, token_count=77,
    )


def test_create_director(personas):
    d = create_director(
        personas, name=" Marie Curie ", title="Physicist", system_prompt="You are Marie Curie.",
        core_beliefs=["Persistence"],
    )
    assert d.name == "Marie Curie"
    stored = personas.get(d.id)
    assert stored.core_beliefs == ["Persistence"]
    assert stored.status == DirectorStatus.ACTIVE


@pytest.mark.parametrize("missing", ["name", "title", "system_prompt"])
def test_create_director_requires_fields(personas, missing):
    fields = {"name": "N", "title": "T", "system_prompt": "P"}
    fields[missing] = "  "
    with pytest.raises(ValidationError):
        create_director(personas, **fields)


def test_create_director_unique_name(personas, make_director):
    make_director("Newton")
    with pytest.raises(ValidationError, match="already exists"):
        create_director(personas, name="NEWTON", title="T", system_prompt="P")


def test_archived_name_can_be_reused(personas, make_director):
    old = make_director("Newton")
    archive_director(personas, old.id)
    new = create_director(personas, name="Newton", title="T", system_prompt="P")
    assert new.id != old.id


def test_update_director(personas, make_director):
    d = make_director("Ada")
    updated = update_director(personas, d.id, title="Countess", status="inactive")
    assert updated.title == "Countess"
    assert personas.get(d.id).status == DirectorStatus.INACTIVE


def test_update_director_rejects_clashing_rename(personas, make_director):
    make_director("Ada")
    alan = make_director("Alan")
    with pytest.raises(ValidationError):
        update_director(personas, alan.id, name="ada")


def test_update_director_rejects_unknown_fields(personas, make_director):
    d = make_director()
    with pytest.raises(ValidationError, match="total_statements"):
        update_director(personas, d.id, total_statements=99)


def test_update_director_rejects_bad_status(personas, make_director):
    d = make_director()
    with pytest.raises(ValidationError):
        update_director(personas, d.id, status="sleeping")


def test_archive_missing_director(personas):
    with pytest.raises(NotFound):
        archive_director(personas, "ghost")


def test_fallback_persona_known_figure():
    parsed = fallback_persona("You are the physicist Einstein, speak with wit.")
    assert parsed.name == "Albert Einstein"
    assert parsed.is_ai_generated is False
    assert parsed.confidence == 0.3


def test_fallback_persona_generic():
    parsed = fallback_persona("You are a mysterious sage.")
    assert parsed.name.startswith(UNKNOWN_NAME)
    assert parsed.expertise_areas == ["Philosophy"]


async def test_parse_persona_prompt_json(gateway, mock_provider, sample_prompts_config):
    payload = {
        "name": "Charles Darwin",
        "title": "Naturalist",
        "era": "19th century",
        "core_beliefs": ["Natural selection", "Observation", "Patience", "Doubt", "Detail", "Extra"],
        "personality_traits": "Careful",
    }
    _reply(mock_provider, "```json\n" + json.dumps(payload) + "\n```")
    parsed = await parse_persona_prompt("You are Darwin.", gateway, sample_prompts_config)
    assert parsed.name == "Charles Darwin"
    assert parsed.is_ai_generated is True
    assert parsed.confidence == 0.9
    assert parsed.tokens_used == 77
    assert len(parsed.core_beliefs) == 5
    assert parsed.personality_traits == ["Careful"]
    assert mock_provider.generate.await_args.kwargs["system"] == "You identify historical figures."


async def test_parse_persona_prompt_salvages_broken_json(gateway, mock_provider, sample_prompts_config):
    _reply(mock_provider, '{"name": "Karl Marx", "title": "Economist", "core_beliefs": [oops')
    parsed = await parse_persona_prompt("You are Marx.", gateway, sample_prompts_config)
    assert parsed.name == "Karl Marx"
    assert parsed.title == "Economist"
    assert parsed.core_beliefs == []


async def test_parse_persona_prompt_without_provider(fallback_gateway, sample_prompts_config):
    parsed = await parse_persona_prompt("You are Confucius.", fallback_gateway, sample_prompts_config)
    assert parsed.name == "Confucius"
    assert parsed.is_ai_generated is False


async def test_parse_persona_prompt_requires_text(fallback_gateway, sample_prompts_config):
    with pytest.raises(ValidationError):
        await parse_persona_prompt("  ", fallback_gateway, sample_prompts_config)


async def test_create_from_prompt(personas, fallback_gateway, sample_prompts_config):
    director, parsed = await create_from_prompt(
        personas, "You are Isaac Newton, famed for Newton's laws.", fallback_gateway, sample_prompts_config,
    )
    assert director.name == "Isaac Newton"
    assert director.system_prompt.startswith("You are Isaac Newton")
    assert personas.find_by_name("isaac newton").id == director.id
    assert parsed.expertise_areas == director.expertise_areas
