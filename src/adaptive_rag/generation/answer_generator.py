"""Lane-specific answer generation with token streaming."""

from __future__ import annotations

from collections.abc import AsyncIterator

from adaptive_rag.generation.prompt_templates import (
    CHAT_PROMPT,
    CHAT_SYSTEM,
    NO_CONTEXT_PROMPT,
    RAG_PROMPT,
    RAG_SYSTEM,
    REASONING_PROMPT,
    REASONING_SYSTEM,
    format_evidence_block,
    format_history_block,
    format_plan_block,
)
from adaptive_rag.models.domain import RetrievedDocument
from adaptive_rag.observability.logger import get_logger

logger = get_logger("generation")


def build_prompt(
    lane: int,
    query: str,
    documents: list[RetrievedDocument],
    history: list[tuple[str, str]] | None = None,
    sub_questions: list[str] | None = None,
    strategy: str | None = None,
) -> tuple[str, str]:
    """Return (system, prompt) for the lane."""
    history_block = format_history_block(history)
    if lane == 1:
        return CHAT_SYSTEM, CHAT_PROMPT.format(history_block=history_block, query=query)
    if not documents:
        return RAG_SYSTEM, NO_CONTEXT_PROMPT.format(history_block=history_block, query=query)
    evidence_block = format_evidence_block(documents)
    if lane == 3:
        return REASONING_SYSTEM, REASONING_PROMPT.format(
            history_block=history_block,
            query=query,
            plan_block=format_plan_block(sub_questions, strategy),
            evidence_block=evidence_block,
        )
    return RAG_SYSTEM, RAG_PROMPT.format(
        history_block=history_block, query=query, evidence_block=evidence_block
    )


class AnswerGenerator:
    def __init__(self, llm, max_tokens: int = 2048) -> None:
        self._llm = llm
        self._max_tokens = max_tokens

    async def generate_stream(
        self,
        lane: int,
        query: str,
        documents: list[RetrievedDocument],
        *,
        model: str | None = None,
        temperature: float = 0.1,
        history: list[tuple[str, str]] | None = None,
        sub_questions: list[str] | None = None,
        strategy: str | None = None,
    ) -> AsyncIterator[str]:
        """Yield answer text chunks as the model produces them."""
        system, prompt = build_prompt(lane, query, documents, history, sub_questions, strategy)
        async for chunk in self._llm.stream(
            prompt,
            model=model,
            system=system,
            temperature=temperature,
            max_tokens=self._max_tokens,
        ):
            yield chunk

    async def generate(self, lane: int, query: str, documents: list[RetrievedDocument], **kwargs) -> str:
        parts = [chunk async for chunk in self.generate_stream(lane, query, documents, **kwargs)]
        answer = "".join(parts)
        logger.info("generated_answer", lane=lane, query_len=len(query), answer_len=len(answer))
        return answer
