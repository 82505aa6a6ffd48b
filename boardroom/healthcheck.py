"""Provider health check: ping the configured LLM before running meetings."""

import asyncio
import logging

from boardroom.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def check_provider(provider: AIProvider | None) -> tuple[bool, str]:
    """Ping a single provider directly, bypassing the gateway's fallbacks.

    Returns:
        (ok, error_message). error_message is "" when ok is True.
    """
    if provider is None:
        return False, "No provider configured"
    try:
        await asyncio.wait_for(
            provider.generate(_PING_PROMPT, max_tokens=5),
            timeout=_TIMEOUT_SEC,
        )
        return True, ""
    except Exception as exc:
        logger.debug("Health check for %s failed: %s", provider.name(), exc)
        return False, str(exc) or type(exc).__name__
