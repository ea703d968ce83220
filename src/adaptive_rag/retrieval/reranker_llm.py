"""LLM-based listwise reranker."""

from __future__ import annotations

from dataclasses import replace

from pydantic import BaseModel

from adaptive_rag.exceptions import RerankError
from adaptive_rag.generation.json_utils import parse_json_model
from adaptive_rag.generation.prompt_templates import RERANK_PROMPT, format_evidence_block
from adaptive_rag.models.domain import RetrievedDocument
from adaptive_rag.observability.logger import get_logger

logger = get_logger("reranker_llm")


class RerankScore(BaseModel):
    index: int
    score: float


class RerankResponse(BaseModel):
    scores: list[RerankScore]


class LLMReranker:
    def __init__(self, llm, model: str | None = None) -> None:
        self._llm = llm
        self._model = model

    async def rerank(
        self,
        query: str,
        documents: list[RetrievedDocument],
        top_n: int = 10,
    ) -> list[RetrievedDocument]:
        if not documents:
            return []

        prompt = RERANK_PROMPT.format(
            query=query, evidence_block=format_evidence_block(documents, max_docs=len(documents))
        )
        raw = await self._llm.complete(prompt, model=self._model, temperature=0.0, json_mode=True)
        parsed = parse_json_model(raw, RerankResponse)
        if parsed is None:
            raise RerankError("LLM reranker returned unparseable output")

        by_index = {s.index: max(0.0, min(1.0, s.score)) for s in parsed.scores}
        # Unscored documents sink below scored ones but keep their relative order
        scored = [
            (doc, by_index.get(i, -1.0)) for i, doc in enumerate(documents, 1)
        ]
        scored.sort(key=lambda x: x[1], reverse=True)
        result = [replace(doc, rerank_score=max(score, 0.0)) for doc, score in scored[:top_n]]

        logger.info("llm_reranked", input_count=len(documents), output_count=len(result))
        return result
