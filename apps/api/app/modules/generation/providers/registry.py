from __future__ import annotations

from app.core.settings import Settings

from .base import GenerationClient, GenerationKind, GenerationResult
from .http_provider import HttpProvider
from .mock_provider import MockProvider


class DisabledProvider:
    """Returned when PROVIDER_ENABLED is off: every call fails fast and lands as a retryable sentinel."""
    name = "disabled"

    async def generate(self, *, kind: GenerationKind, input_refs, prompt: str, request_id=None) -> GenerationResult:
        return GenerationResult.failed("generation provider disabled")


def is_provider_enabled(settings: Settings) -> bool:
    """
    Feature flag (rollback-first):
      PROVIDER_ENABLED=0 -> off
      PROVIDER_ENABLED=1 -> on
    """
    return settings.provider_enabled


def get_provider(settings: Settings) -> GenerationClient:
    if not is_provider_enabled(settings):
        return DisabledProvider()
    name = settings.generation_provider
    if name == "mock":
        return MockProvider()
    if name == "http":
        if not settings.generation_api_url:
            raise ValueError("GENERATION_PROVIDER=http requires GENERATION_API_URL")
        return HttpProvider(
            settings.generation_api_url,
            api_key=settings.generation_api_key,
            timeout=settings.generation_timeout_s,
        )
    raise ValueError(f"unknown GENERATION_PROVIDER: {name!r}")
