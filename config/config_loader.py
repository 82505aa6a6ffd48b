"""Load settings.yaml into typed dataclasses. Applies env overrides at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

# Sample values shipped in .env.example files never count as a credential
_PLACEHOLDER_MARKERS = ("placeholder",)


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    temperature: float = 0.7
    base_url: str | None = None


@dataclass
class GenerationConfig:
    provider: str
    daily_token_limit: int
    max_tokens_per_request: int
    request_timeout_sec: int


@dataclass
class DefaultsConfig:
    database_url: str
    discussion_mode: str = "round_robin"
    max_rounds: int = 10
    max_participants: int = 8
    context_window: int = 10


@dataclass
class PromptsConfig:
    opening: str
    closing: str
    regular: str
    response: str
    question: str
    length_constraint: str
    summary: str = ""
    persona_parse: str = ""
    persona_parse_system: str = ""


@dataclass
class FallbacksConfig:
    opening: str
    closing: str
    statement: str


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    generation: GenerationConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    fallbacks: FallbacksConfig
    available_providers: set[str] = field(default_factory=set)


def is_real_credential(value: str | None) -> bool:
    """True iff the value looks like an actual API key, not a sample value."""
    if not value or not value.strip():
        return False
    lowered = value.strip().lower()
    if lowered.startswith("your_") and lowered.endswith("_here"):
        return False
    return not any(marker in lowered for marker in _PLACEHOLDER_MARKERS)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs which providers have credentials but does not raise; the
    generation gateway degrades to fallback text when none is available.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        database_url=os.environ.get("BOARDROOM_DATABASE_URL", "").strip()
        or str(defaults_raw["database_url"]),
        discussion_mode=str(defaults_raw.get("discussion_mode", "round_robin")),
        max_rounds=int(defaults_raw.get("max_rounds", 10)),
        max_participants=int(defaults_raw.get("max_participants", 8)),
        context_window=int(defaults_raw.get("context_window", 10)),
    )

    generation_raw = raw["generation"]
    generation = GenerationConfig(
        provider=str(generation_raw["provider"]),
        daily_token_limit=_env_int(
            "BOARDROOM_DAILY_TOKEN_LIMIT", int(generation_raw["daily_token_limit"])
        ),
        max_tokens_per_request=_env_int(
            "BOARDROOM_MAX_TOKENS_PER_REQUEST", int(generation_raw["max_tokens_per_request"])
        ),
        request_timeout_sec=_env_int(
            "BOARDROOM_REQUEST_TIMEOUT", int(generation_raw["request_timeout_sec"])
        ),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        opening=prompts_raw["opening"],
        closing=prompts_raw["closing"],
        regular=prompts_raw["regular"],
        response=prompts_raw["response"],
        question=prompts_raw["question"],
        length_constraint=prompts_raw["length_constraint"],
        summary=prompts_raw.get("summary", ""),
        persona_parse=prompts_raw.get("persona_parse", ""),
        persona_parse_system=prompts_raw.get("persona_parse_system", ""),
    )

    fallbacks_raw = raw["fallbacks"]
    fallbacks = FallbacksConfig(
        opening=str(fallbacks_raw["opening"]),
        closing=str(fallbacks_raw["closing"]),
        statement=str(fallbacks_raw["statement"]),
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw.get("timeout_sec", generation.request_timeout_sec)),
            max_tokens=int(model_raw.get("max_tokens", generation.max_tokens_per_request)),
            temperature=float(model_raw.get("temperature", 0.7)),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        if is_real_credential(os.environ.get(model_raw["api_key_env"])):
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s (set %s in .env)",
                provider_name,
                model_raw["api_key_env"],
            )

    if generation.provider not in models:
        raise ValueError(f"generation.provider '{generation.provider}' has no entry under models")

    return AppConfig(
        defaults=defaults,
        generation=generation,
        models=models,
        prompts=prompts,
        fallbacks=fallbacks,
        available_providers=available_providers,
    )
