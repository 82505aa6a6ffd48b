"""Text generation gateway: the only boundary to the LLM provider.

Every call returns usable text. When the provider is missing, the daily
token budget is spent, or the call fails or times out, the gateway answers
with canned fallback text and `is_ai_generated=False` instead of raising.
"""

import logging
import threading
import time
from collections.abc import Callable
from datetime import date

from config.config_loader import AppConfig, FallbacksConfig
from boardroom.models import BudgetCheck, ContentType, GenerationResult, UsageStats
from boardroom.providers.anthropic import AnthropicProvider
from boardroom.providers.base import AIProvider, ProviderError
from boardroom.providers.openai_provider import OpenAIProvider
from boardroom.store import UsageStore

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}

def _local_date_string() -> str:
    return date.today().isoformat()


class UsageTracker:
    """Token counters shared by every generation call in the process.

    The daily counter resets lazily: each call compares the stored reset
    date with the current local date. With a UsageStore the daily total is
    read from and written to the database, so separate processes (one per
    CLI command) share a single budget. Calls in flight hold a reservation
    for their token cap until they settle.
    """

    def __init__(
        self,
        daily_limit: int,
        today: Callable[[], str] = _local_date_string,
        store: UsageStore | None = None,
    ) -> None:
        self.daily_limit = daily_limit
        self._today = today
        self._store = store
        self._lock = threading.Lock()
        self._reserved = 0
        self.total_requests = 0
        self.total_tokens = 0
        self.daily_tokens = 0
        self.last_reset_date = today()
        self._refresh()

    def _refresh(self) -> None:
        if self._store is not None:
            self.daily_tokens = self._store.tokens_on(self.last_reset_date)

    def _roll_day(self) -> None:
        today = self._today()
        if self.last_reset_date != today:
            logger.info("Daily token counter reset (%s -> %s)", self.last_reset_date, today)
            self.daily_tokens = 0
            self.last_reset_date = today
        self._refresh()

    def _budget(self, estimated_tokens: int) -> BudgetCheck:
        committed = self.daily_tokens + self._reserved
        return BudgetCheck(
            can_proceed=committed + estimated_tokens <= self.daily_limit,
            current_usage=self.daily_tokens,
            daily_limit=self.daily_limit,
            remaining=max(0, self.daily_limit - committed),
        )

    def _add(self, tokens: int) -> int:
        self.total_requests += 1
        self.total_tokens += tokens
        if self._store is not None:
            self.daily_tokens = self._store.add(self.last_reset_date, tokens)
        else:
            self.daily_tokens += tokens
        return self.daily_tokens

    def check(self, estimated_tokens: int = 0) -> BudgetCheck:
        with self._lock:
            self._roll_day()
            return self._budget(estimated_tokens)

    def reserve(self, estimated_tokens: int) -> BudgetCheck:
        """Check the budget and, if it allows the call, hold estimated_tokens for it."""
        with self._lock:
            self._roll_day()
            budget = self._budget(estimated_tokens)
            if budget.can_proceed:
                self._reserved += estimated_tokens
            return budget

    def settle(self, reserved_tokens: int, used_tokens: int | None = None) -> None:
        """Release a reservation; record used_tokens when the call went through."""
        with self._lock:
            self._reserved = max(0, self._reserved - reserved_tokens)
            if used_tokens is None:
                return
            self._roll_day()
            daily = self._add(used_tokens)
        logger.info("Token usage: %d this call, %d today", used_tokens, daily)

    def record(self, tokens: int) -> None:
        with self._lock:
            self._roll_day()
            daily = self._add(tokens)
        logger.info("Token usage: %d this call, %d today", tokens, daily)

    def snapshot(self) -> UsageStats:
        with self._lock:
            self._roll_day()
            return UsageStats(
                total_requests=self.total_requests,
                total_tokens=self.total_tokens,
                daily_tokens=self.daily_tokens,
                last_reset_date=self.last_reset_date,
                daily_limit=self.daily_limit,
                remaining=max(0, self.daily_limit - self.daily_tokens),
            )


class TextGenerationGateway:
    """Wraps one optional provider with budget enforcement and fallbacks."""

    def __init__(
        self,
        provider: AIProvider | None,
        tracker: UsageTracker,
        fallbacks: FallbacksConfig,
        max_tokens: int = 1000,
    ) -> None:
        self._provider = provider
        self._tracker = tracker
        self._fallbacks = fallbacks
        self._max_tokens = max_tokens

    @property
    def provider(self) -> AIProvider | None:
        return self._provider

    def is_configured(self) -> bool:
        return self._provider is not None

    def check_daily_budget(self, estimated_tokens: int = 0) -> BudgetCheck:
        return self._tracker.check(estimated_tokens)

    def record_usage(self, tokens: int) -> None:
        self._tracker.record(tokens)

    def usage_stats(self) -> UsageStats:
        stats = self._tracker.snapshot()
        stats.is_configured = self.is_configured()
        return stats

    def fallback_response(self, kind: ContentType | str | None = None) -> str:
        """Canned text for the kind of statement being generated."""
        kind = ContentType(kind) if kind is not None else None
        if kind == ContentType.OPENING:
            return self._fallbacks.opening
        if kind == ContentType.CLOSING:
            return self._fallbacks.closing
        return self._fallbacks.statement

    def _fallback(self, kind: ContentType | str | None, started: float) -> GenerationResult:
        return GenerationResult(
            content=self.fallback_response(kind),
            tokens_used=0,
            generation_time_ms=int((time.monotonic() - started) * 1000),
            model=None,
            is_ai_generated=False,
        )

    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int | None = None,
        kind: ContentType | str | None = None,
    ) -> GenerationResult:
        """Generate text for the prompt. Never raises on provider trouble.

        `kind` selects the fallback text (opening, closing, or a regular
        statement) used when the provider cannot answer.
        """
        started = time.monotonic()
        if self._provider is None:
            logger.debug("No provider configured, using fallback text")
            return self._fallback(kind, started)

        cap = max_tokens or self._max_tokens
        budget = self._tracker.reserve(cap)
        if not budget.can_proceed:
            logger.warning(
                "Daily token limit reached (%d/%d), using fallback text",
                budget.current_usage,
                budget.daily_limit,
            )
            return self._fallback(kind, started)

        tokens = None
        try:
            response = await self._provider.generate(prompt, system=system, max_tokens=cap)
            tokens = response.token_count or 0
        except ProviderError as exc:
            logger.warning("Generation failed, using fallback text: %s", exc)
            return self._fallback(kind, started)
        except Exception as exc:
            logger.warning(
                "Provider %s unexpected failure, using fallback text: %s",
                self._provider.name(), exc,
            )
            return self._fallback(kind, started)
        finally:
            self._tracker.settle(cap, tokens)

        return GenerationResult(
            content=response.content,
            tokens_used=tokens,
            generation_time_ms=int(response.latency_sec * 1000),
            model=response.model,
            is_ai_generated=True,
        )


def build_provider(config: AppConfig) -> AIProvider | None:
    """Instantiate the configured provider, or None when it has no credential."""
    name = config.generation.provider
    if name not in config.available_providers:
        logger.warning("Provider '%s' has no API key, meetings will use fallback text", name)
        return None
    model_cfg = config.models[name]
    if model_cfg.sdk not in PROVIDER_CLASSES:
        logger.warning("Provider '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
        return None
    try:
        return PROVIDER_CLASSES[model_cfg.sdk](model_cfg)
    except Exception as exc:
        logger.warning("Failed to instantiate provider '%s': %s", name, exc)
        return None


def build_gateway(config: AppConfig, tracker: UsageTracker | None = None) -> TextGenerationGateway:
    return TextGenerationGateway(
        provider=build_provider(config),
        tracker=tracker or UsageTracker(config.generation.daily_token_limit),
        fallbacks=config.fallbacks,
        max_tokens=config.generation.max_tokens_per_request,
    )
