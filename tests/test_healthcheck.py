"""Unit tests for boardroom/healthcheck.py: no real API calls."""

import asyncio

from boardroom import healthcheck
from boardroom.healthcheck import check_provider
from boardroom.providers.base import ProviderError
from tests.conftest import MockProvider


async def test_provider_passes():
    provider = MockProvider("claude")
    ok, err = await check_provider(provider)
    assert ok is True
    assert err == ""
    assert provider.generate.await_args.kwargs["max_tokens"] == 5


async def test_no_provider():
    ok, err = await check_provider(None)
    assert ok is False
    assert "No provider" in err


async def test_provider_error_reported():
    provider = MockProvider("claude")
    provider.generate.side_effect = ProviderError("claude", "Missing API key: ANTHROPIC_API_KEY")
    ok, err = await check_provider(provider)
    assert ok is False
    assert "ANTHROPIC_API_KEY" in err


async def test_timeout_reported(monkeypatch):
    monkeypatch.setattr(healthcheck, "_TIMEOUT_SEC", 0.01)

    async def hang(*args, **kwargs):
        await asyncio.sleep(1)

    provider = MockProvider("claude")
    provider.generate.side_effect = hang
    ok, err = await check_provider(provider)
    assert ok is False
    assert err == "TimeoutError"
