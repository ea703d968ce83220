"""Google Gemini model provider using the google-genai SDK."""

from __future__ import annotations

from collections.abc import AsyncIterator

from google import genai
from google.genai import types

from adaptive_rag.exceptions import EmbeddingError, GenerationError
from adaptive_rag.observability.logger import get_logger

logger = get_logger("gemini")


class GeminiProvider:
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        default_model: str = "gemini-2.0-flash",
        embedding_model: str = "text-embedding-004",
    ) -> None:
        self._client = genai.Client(api_key=api_key)
        self._default_model = default_model
        self._embedding_model = embedding_model

    @staticmethod
    def _config(
        system: str | None, temperature: float, max_tokens: int, json_mode: bool = False
    ) -> types.GenerateContentConfig:
        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
        )
        if json_mode:
            config.response_mime_type = "application/json"
        if system:
            config.system_instruction = system
        return config

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        system: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 2048,
        json_mode: bool = False,
    ) -> str:
        try:
            response = await self._client.aio.models.generate_content(
                model=model or self._default_model,
                contents=prompt,
                config=self._config(system, temperature, max_tokens, json_mode),
            )
            return response.text or ""
        except Exception as e:
            raise GenerationError(f"Gemini generation failed: {e}") from e

    async def stream(
        self,
        prompt: str,
        model: str | None = None,
        system: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 2048,
    ) -> AsyncIterator[str]:
        try:
            response = await self._client.aio.models.generate_content_stream(
                model=model or self._default_model,
                contents=prompt,
                config=self._config(system, temperature, max_tokens),
            )
            async for chunk in response:
                if chunk.text:
                    yield chunk.text
        except Exception as e:
            raise GenerationError(f"Gemini streaming failed: {e}") from e

    async def embed(self, text: str, model: str | None = None) -> list[float]:
        try:
            response = await self._client.aio.models.embed_content(
                model=model or self._embedding_model,
                contents=text,
            )
            return list(response.embeddings[0].values)
        except Exception as e:
            raise EmbeddingError(f"Gemini embedding failed: {e}") from e
