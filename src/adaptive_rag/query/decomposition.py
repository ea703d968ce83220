"""Query planning for the reasoning lane: decompose into searchable sub-questions."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field

from adaptive_rag.generation.json_utils import parse_json_model
from adaptive_rag.generation.prompt_templates import QUERY_PLAN_PROMPT
from adaptive_rag.observability.logger import get_logger

logger = get_logger("decomposition")


@dataclass
class QueryPlan:
    original: str
    sub_questions: list[str]
    reasoning_strategy: str

    def to_dict(self) -> dict:
        return {
            "sub_questions": list(self.sub_questions),
            "reasoning_strategy": self.reasoning_strategy,
        }


class PlanResponse(BaseModel):
    sub_questions: list[str] = Field(default_factory=list)
    reasoning_strategy: str = ""


class QueryDecomposer:
    def __init__(self, llm, model: str | None = None, max_sub_questions: int = 3) -> None:
        self._llm = llm
        self._model = model
        self._max_sub_questions = max_sub_questions

    async def decompose(self, query: str, model: str | None = None) -> QueryPlan:
        prompt = QUERY_PLAN_PROMPT.format(query=query, max_sub_questions=self._max_sub_questions)

        sub_questions: list[str] = []
        strategy = ""
        try:
            raw = await self._llm.complete(
                prompt, model=model or self._model, temperature=0.0, json_mode=True
            )
            parsed = parse_json_model(raw, PlanResponse)
            if parsed is not None:
                sub_questions = [q.strip() for q in parsed.sub_questions if q.strip()]
                strategy = parsed.reasoning_strategy
        except Exception as e:
            # Planning is an optimisation; the lane still works on the original query
            logger.warning("decomposition_failed", query=query, error=str(e))

        sub_questions = sub_questions[: self._max_sub_questions] or [query]

        logger.info("decomposed", original=query, sub_questions=len(sub_questions))
        return QueryPlan(original=query, sub_questions=sub_questions, reasoning_strategy=strategy)
