"""Build the configured model provider."""

from __future__ import annotations

from adaptive_rag.config.settings import Settings
from adaptive_rag.exceptions import ConfigurationError
from adaptive_rag.protocols.llm import ModelProvider


def create_provider(settings: Settings) -> ModelProvider:
    if settings.model_provider == "openai":
        from adaptive_rag.providers.openai_provider import OpenAIProvider

        return OpenAIProvider(
            api_key=settings.openai_api_key,
            default_model=settings.fast_model,
            embedding_model=settings.embedding_model,
            base_url=settings.openai_base_url,
        )
    if settings.model_provider == "gemini":
        from adaptive_rag.providers.gemini_provider import GeminiProvider

        return GeminiProvider(
            api_key=settings.google_api_key,
            default_model=settings.fast_model,
            embedding_model=settings.embedding_model,
        )
    raise ConfigurationError(f"Unknown model provider: {settings.model_provider}")
