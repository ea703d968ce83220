"""Cross-encoder reranker using sentence-transformers."""

from __future__ import annotations

import asyncio
from dataclasses import replace

from sentence_transformers import CrossEncoder

from adaptive_rag.exceptions import RerankError
from adaptive_rag.models.domain import RetrievedDocument
from adaptive_rag.observability.logger import get_logger

logger = get_logger("reranker")


class CrossEncoderReranker:
    def __init__(self, model_name: str = "cross-encoder/ms-marco-MiniLM-L-6-v2") -> None:
        self._model = CrossEncoder(model_name)

    async def rerank(
        self,
        query: str,
        documents: list[RetrievedDocument],
        top_n: int = 10,
    ) -> list[RetrievedDocument]:
        if not documents:
            return []

        pairs = [(query, d.content) for d in documents]
        try:
            # CrossEncoder.predict is synchronous
            scores = await asyncio.to_thread(self._model.predict, pairs)
        except Exception as e:
            raise RerankError(f"Cross-encoder rerank failed: {e}") from e

        scored = sorted(zip(documents, scores), key=lambda x: float(x[1]), reverse=True)
        result = [replace(doc, rerank_score=float(score)) for doc, score in scored[:top_n]]

        logger.info(
            "reranked",
            input_count=len(documents),
            output_count=len(result),
            top_score=round(result[0].rerank_score, 4) if result else 0.0,
        )
        return result
