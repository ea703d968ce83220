"""Query rewriting driven by grader feedback."""

from __future__ import annotations

from pydantic import BaseModel, Field

from adaptive_rag.config.constants import MAX_REWRITE_KEYWORDS
from adaptive_rag.exceptions import RewriteError
from adaptive_rag.generation.json_utils import parse_json_model
from adaptive_rag.generation.prompt_templates import QUERY_REWRITE_PROMPT
from adaptive_rag.index.tokenizer import extract_keywords
from adaptive_rag.models.domain import GraderResult, RetrievedDocument, RewriteRecord
from adaptive_rag.observability.logger import get_logger

logger = get_logger("rewriter")


class RewriteResponse(BaseModel):
    rewritten_query: str = Field(min_length=1)
    reason: str = ""
    keywords: list[str] = Field(default_factory=list)


class QueryRewriter:
    def __init__(self, llm, model: str | None = None) -> None:
        self._llm = llm
        self._model = model

    async def rewrite(
        self,
        original: str,
        grader_result: GraderResult,
        attempt: int,
        *,
        current_query: str | None = None,
        documents: list[RetrievedDocument] | None = None,
        history: list[RewriteRecord] | None = None,
        model: str | None = None,
    ) -> RewriteRecord:
        current = current_query or original
        rejected_ids = {g.doc_id for g in grader_result.document_grades if not g.is_relevant}
        rejected = [d for d in documents or [] if d.id in rejected_ids]

        prompt = QUERY_REWRITE_PROMPT.format(
            original=original,
            current=current,
            pass_rate=grader_result.pass_rate,
            rejected="\n".join(f"- {d.content[:200]}" for d in rejected[:5]) or "(none)",
            history="\n".join(f"- {r.rewritten}" for r in history or []) or "(none)",
        )
        try:
            raw = await self._llm.complete(
                prompt, model=model or self._model, temperature=0.3, json_mode=True
            )
        except Exception as e:
            raise RewriteError(f"Query rewrite failed: {e}") from e

        parsed = parse_json_model(raw, RewriteResponse)
        if parsed is None:
            record = self._fallback(original, grader_result, attempt)
        else:
            keywords = parsed.keywords or extract_keywords(parsed.rewritten_query)
            record = RewriteRecord(
                original=original,
                rewritten=parsed.rewritten_query.strip(),
                reason=parsed.reason or "Refined after low pass rate",
                keywords=keywords[:MAX_REWRITE_KEYWORDS],
                attempt=attempt,
            )

        logger.info(
            "rewritten",
            attempt=attempt,
            original=original,
            rewritten=record.rewritten,
            fallback=parsed is None,
        )
        return record

    @staticmethod
    def _fallback(original: str, grader_result: GraderResult, attempt: int) -> RewriteRecord:
        keywords = extract_keywords(original, limit=MAX_REWRITE_KEYWORDS)
        rewritten = f"{original} {' '.join(keywords)} detailed explanation".strip()
        logger.warning("rewrite_unparseable_fallback", attempt=attempt)
        return RewriteRecord(
            original=original,
            rewritten=rewritten,
            reason=f"Pass rate {grader_result.pass_rate:.0%}; added key terms for specificity",
            keywords=keywords,
            attempt=attempt,
        )
