"""Protocol for the external vector index collaborator."""

from __future__ import annotations

from typing import Protocol

from adaptive_rag.models.domain import RetrievedDocument


class VectorIndex(Protocol):
    async def dense_search(
        self, vector: list[float], top_k: int, collection: str | None = None
    ) -> list[RetrievedDocument]: ...

    async def sparse_search(
        self, query: str, top_k: int, collection: str | None = None
    ) -> list[RetrievedDocument]: ...

    @property
    def supports_sparse(self) -> bool: ...
