"""Backend selection: exactly one implementation per client, chosen at construction."""

from __future__ import annotations

import structlog

from src.config import Settings
from src.pricing import ModelProvider
from src.providers.base import LLMBackend
from src.providers.langchain_backend import LangChainBackend
from src.providers.mock import MockBackend

logger = structlog.get_logger()


def build_backend(settings: Settings) -> LLMBackend:
    """Build the backend named by LLM_PROVIDER (openai | anthropic | gemini | mock)."""
    try:
        provider = ModelProvider(settings.llm.provider.strip().lower())
    except ValueError:
        raise ValueError(f"Unknown provider: {settings.llm.provider}") from None

    if provider == ModelProvider.MOCK:
        backend: LLMBackend = MockBackend()
    else:
        backend = LangChainBackend(
            provider=provider,
            api_key=settings.llm.api_key_for(provider.value),
            timeout_seconds=settings.llm.request_timeout_seconds,
        )
    logger.info("llm_backend_selected", provider=provider.value, configured=backend.configured())
    return backend
