"""Integration tests: real API calls, no mocks. Requires .env with the configured provider's key."""

import os

import pytest
from dotenv import load_dotenv

load_dotenv()

_KEYS = ["ANTHROPIC_API_KEY", "OPENAI_API_KEY", "XAI_API_KEY"]
_AVAILABLE_KEYS = [k for k in _KEYS if os.environ.get(k, "").strip()]
pytestmark = pytest.mark.integration

if not _AVAILABLE_KEYS:
    pytestmark = pytest.mark.skip(reason="No provider API key in environment")


async def test_short_meeting_with_real_provider(tmp_path):
    """Run a tiny two-director meeting end to end and check the text is AI-generated."""
    from config.config_loader import load_config
    from boardroom.cli import build_services
    from boardroom.directors import create_director
    from boardroom.models import MeetingStatus

    config = load_config()
    if config.generation.provider not in config.available_providers:
        pytest.skip(f"Configured provider '{config.generation.provider}' has no key")
    config.defaults.database_url = f"sqlite:///{tmp_path / 'integration.db'}"
    svc = build_services(config)

    einstein = create_director(
        svc.personas, name="Albert Einstein", title="Physicist",
        system_prompt="You are Albert Einstein. Speak briefly, with wit.",
    )
    darwin = create_director(
        svc.personas, name="Charles Darwin", title="Naturalist",
        system_prompt="You are Charles Darwin. Speak briefly and cautiously.",
    )
    meeting = svc.orchestrator.create(
        "Curiosity", "Is curiosity learned or innate?",
        director_ids=[einstein.id, darwin.id], max_rounds=1,
    )

    opening = await svc.orchestrator.start(meeting.id)
    statement = await svc.orchestrator.advance(meeting.id)
    await svc.orchestrator.finish(meeting.id)

    assert opening.is_ai_generated is True
    assert statement.is_ai_generated is True
    assert statement.tokens_used > 0
    assert svc.orchestrator.get_meeting(meeting.id).status == MeetingStatus.FINISHED
    assert svc.gateway.usage_stats().total_requests >= 3
