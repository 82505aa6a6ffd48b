"""Abstract base for all LLM providers behind the generation gateway."""

from abc import ABC, abstractmethod

from boardroom.models import ModelResponse


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all LLM providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'claude', 'openai')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int | None = None,
    ) -> ModelResponse:
        """Generate a response for the given prompt.

        Args:
            prompt: The full user-turn prompt text.
            system: Optional system prompt (the director's persona).
            max_tokens: Output cap; defaults to the model config value.

        Returns:
            ModelResponse dataclass with content and metadata.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...
