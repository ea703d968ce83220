"""Protocol for model providers (completion, streaming, embedding)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol


class ModelProvider(Protocol):
    name: str

    async def complete(
        self,
        prompt: str,
        model: str | None = None,
        system: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 2048,
        json_mode: bool = False,
    ) -> str: ...

    def stream(
        self,
        prompt: str,
        model: str | None = None,
        system: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 2048,
    ) -> AsyncIterator[str]: ...

    async def embed(self, text: str, model: str | None = None) -> list[float]: ...
