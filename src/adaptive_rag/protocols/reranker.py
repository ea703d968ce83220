"""Protocol for reranking providers."""

from __future__ import annotations

from typing import Protocol

from adaptive_rag.models.domain import RetrievedDocument


class Reranker(Protocol):
    async def rerank(
        self,
        query: str,
        documents: list[RetrievedDocument],
        top_n: int = 10,
    ) -> list[RetrievedDocument]: ...
