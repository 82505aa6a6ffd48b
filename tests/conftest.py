"""Shared pytest fixtures."""

import random
import uuid
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    FallbacksConfig,
    GenerationConfig,
    ModelConfig,
    PromptsConfig,
)
from boardroom.gateway import TextGenerationGateway, UsageTracker
from boardroom.models import Director, ModelResponse
from boardroom.orchestrator import MeetingOrchestrator
from boardroom.prompts import PromptComposer
from boardroom.providers.base import AIProvider
from boardroom.store import Database, MeetingStore, PersonaStore


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="anthropic",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1000,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        opening="Topic: {topic}\nThis is the opening of the meeting.",
        closing="Topic: {topic}\nThis is the end of the meeting.",
        regular="Topic: {topic}\nRound {round}, speaker {sequence}.\n{recent_statements}\nYour view:",
        response="Topic: {topic}\n{target_speaker} said: \"{target_content}\"\n{recent_statements}\nRebut:",
        question="Topic: {topic}\nAudience asks: \"{question}\"",
        length_constraint="Under 200 words.",
        summary="Summarize {topic} ({participant_count} people, {statement_count} statements):\n{transcript}",
        persona_parse="Parse this persona:\n{system_prompt}\nReply as JSON.",
        persona_parse_system="You identify historical figures.",
    )


@pytest.fixture
def sample_fallbacks_config() -> FallbacksConfig:
    return FallbacksConfig(
        opening="Fallback opening.",
        closing="Fallback closing.",
        statement="Fallback statement.",
    )


@pytest.fixture
def sample_app_config(
    sample_prompts_config: PromptsConfig,
    sample_fallbacks_config: FallbacksConfig,
) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=30,
        max_tokens=1000,
    )
    return AppConfig(
        defaults=DefaultsConfig(database_url="sqlite://"),
        generation=GenerationConfig(
            provider="claude",
            daily_token_limit=100000,
            max_tokens_per_request=1000,
            request_timeout_sec=30,
        ),
        models={"claude": model_cfg},
        prompts=sample_prompts_config,
        fallbacks=sample_fallbacks_config,
        available_providers=set(),
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=ModelResponse(
                provider=provider_name,
                model="mock-model",
                content=response_content,
                latency_sec=0.1,
                token_count=10,
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, prompt: str, system: str | None = None, max_tokens: int | None = None) -> ModelResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return ModelResponse(
            provider=self._name,
            model="mock-model",
            content=self._response_content,
            latency_sec=0.1,
            token_count=10,
        )


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def db() -> Database:
    database = Database("sqlite://")
    database.create_all()
    return database


@pytest.fixture
def personas(db: Database) -> PersonaStore:
    return PersonaStore(db)


@pytest.fixture
def meetings(db: Database) -> MeetingStore:
    return MeetingStore(db)


@pytest.fixture
def fallback_gateway(sample_fallbacks_config: FallbacksConfig) -> TextGenerationGateway:
    """Gateway without a provider: every call returns canned text."""
    return TextGenerationGateway(None, UsageTracker(100000), sample_fallbacks_config)


@pytest.fixture
def gateway(mock_provider: MockProvider, sample_fallbacks_config: FallbacksConfig) -> TextGenerationGateway:
    return TextGenerationGateway(mock_provider, UsageTracker(100000), sample_fallbacks_config)


@pytest.fixture
def composer(sample_prompts_config: PromptsConfig) -> PromptComposer:
    return PromptComposer(sample_prompts_config, context_window=10)


@pytest.fixture
def orchestrator(db, personas, meetings, gateway, composer, sample_prompts_config) -> MeetingOrchestrator:
    return MeetingOrchestrator(
        db, personas, meetings, gateway, composer,
        prompts=sample_prompts_config, rng=random.Random(0),
    )


@pytest.fixture
def make_director(personas: PersonaStore):
    """Factory: persist a director and return it."""

    def _make(name: str | None = None, **overrides) -> Director:
        name = name or f"Director {uuid.uuid4().hex[:6]}"
        director = Director(
            id=str(uuid.uuid4()),
            name=name,
            title=overrides.pop("title", "Thinker"),
            system_prompt=overrides.pop("system_prompt", f"You are {name}."),
            **overrides,
        )
        return personas.add(director)

    return _make
