"""Per-document relevance grading via LLM."""

from __future__ import annotations

from pydantic import BaseModel, Field

from adaptive_rag.config.constants import EVIDENCE_SNIPPET_CHARS, HEURISTIC_GRADE_CONFIDENCE
from adaptive_rag.exceptions import GradingError
from adaptive_rag.generation.json_utils import parse_json_model
from adaptive_rag.generation.prompt_templates import DOCUMENT_GRADING_PROMPT
from adaptive_rag.index.tokenizer import extract_keywords, tokenize
from adaptive_rag.models.domain import DocumentGrade, GraderResult, RetrievedDocument
from adaptive_rag.observability.logger import get_logger

logger = get_logger("grader")


class GradeResponse(BaseModel):
    is_relevant: bool
    confidence: float = Field(default=0.5)
    reasoning: str = ""


def compute_grader_result(
    grades: list[DocumentGrade], pass_threshold: float = 0.6
) -> GraderResult:
    total = len(grades)
    passed = sum(1 for g in grades if g.is_relevant)
    pass_rate = passed / total if total else 0.0
    return GraderResult(
        pass_rate=pass_rate,
        pass_count=passed,
        total_count=total,
        should_rewrite=total > 0 and pass_rate < pass_threshold,
        document_grades=grades,
    )


class QualityGrader:
    def __init__(self, llm, model: str | None = None, pass_threshold: float = 0.6) -> None:
        self._llm = llm
        self._model = model
        self._pass_threshold = pass_threshold

    async def grade(
        self,
        query: str,
        documents: list[RetrievedDocument],
        pass_threshold: float | None = None,
        model: str | None = None,
    ) -> GraderResult:
        threshold = self._pass_threshold if pass_threshold is None else pass_threshold
        model = model or self._model
        grades = []
        # Sequential: one model call per document, in retrieval order
        for doc in documents:
            grades.append(await self._grade_one(query, doc, model))

        result = compute_grader_result(grades, threshold)
        logger.info(
            "graded",
            pass_count=result.pass_count,
            total_count=result.total_count,
            pass_rate=round(result.pass_rate, 4),
            should_rewrite=result.should_rewrite,
        )
        return result

    async def _grade_one(
        self, query: str, doc: RetrievedDocument, model: str | None
    ) -> DocumentGrade:
        prompt = DOCUMENT_GRADING_PROMPT.format(
            query=query, content=doc.content[:EVIDENCE_SNIPPET_CHARS]
        )
        try:
            raw = await self._llm.complete(
                prompt, model=model, temperature=0.0, max_tokens=256, json_mode=True
            )
        except Exception as e:
            raise GradingError(f"Grading failed for document {doc.id}: {e}") from e

        parsed = parse_json_model(raw, GradeResponse)
        if parsed is None:
            logger.warning("grade_unparseable_heuristic", doc_id=doc.id)
            return self._heuristic_grade(query, doc)

        return DocumentGrade(
            doc_id=doc.id,
            is_relevant=parsed.is_relevant,
            confidence=max(0.0, min(1.0, parsed.confidence)),
            reasoning=parsed.reasoning,
        )

    @staticmethod
    def _heuristic_grade(query: str, doc: RetrievedDocument) -> DocumentGrade:
        keywords = extract_keywords(query)
        content_tokens = set(tokenize(doc.content))
        hits = sum(1 for kw in keywords if kw in content_tokens)
        ratio = hits / len(keywords) if keywords else 0.0
        return DocumentGrade(
            doc_id=doc.id,
            is_relevant=ratio >= 0.3,
            confidence=HEURISTIC_GRADE_CONFIDENCE,
            reasoning=f"Keyword overlap {hits}/{len(keywords)} (model output unparseable)",
        )
