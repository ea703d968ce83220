"""Claim-level factuality check of a generated answer against its evidence."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from adaptive_rag.config.constants import MAX_CLAIMS
from adaptive_rag.exceptions import VerificationError
from adaptive_rag.generation.json_utils import parse_json_model
from adaptive_rag.generation.prompt_templates import (
    CLAIM_VERIFICATION_PROMPT,
    format_evidence_block,
)
from adaptive_rag.models.domain import HallucinationCheck, RetrievedDocument
from adaptive_rag.observability.logger import get_logger

logger = get_logger("hallucination")

_SENTENCE_END = re.compile(r"(?<=[.!?;])\s+|(?<=[。！？；])|\n+")
_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)、])\s*")
_CITATION = re.compile(r"\[\d+\]")


def split_claims(answer: str, max_claims: int = MAX_CLAIMS) -> list[str]:
    """Split an answer into sentence-level claims.

    Handles Western and CJK sentence punctuation and list items; fragments too
    short to carry a factual statement are dropped.
    """
    claims = []
    for part in _SENTENCE_END.split(answer or ""):
        text = _LIST_MARKER.sub("", part)
        text = _CITATION.sub("", text).strip()
        if len(text) < 8 and not re.search(r"[一-鿿]{4,}", text):
            continue
        claims.append(text)
    return claims[:max_claims]


class ClaimVerdict(BaseModel):
    index: int
    supported: bool


class VerificationResponse(BaseModel):
    verdicts: list[ClaimVerdict] = Field(default_factory=list)
    confidence: float = 0.8


class HallucinationChecker:
    def __init__(self, llm, model: str | None = None) -> None:
        self._llm = llm
        self._model = model

    async def verify(
        self, answer: str, documents: list[RetrievedDocument]
    ) -> HallucinationCheck:
        claims = split_claims(answer)
        if not claims:
            return HallucinationCheck(
                has_hallucination=False,
                confidence=1.0,
                problematic_claims=[],
                supported_claims=[],
                overall_factual_score=1.0,
            )

        prompt = CLAIM_VERIFICATION_PROMPT.format(
            evidence_block=format_evidence_block(documents),
            claims_block="\n".join(f"{i}. {c}" for i, c in enumerate(claims, 1)),
        )
        try:
            raw = await self._llm.complete(prompt, model=self._model, temperature=0.0, json_mode=True)
        except Exception as e:
            raise VerificationError(f"Claim verification failed: {e}") from e

        parsed = parse_json_model(raw, VerificationResponse)
        if parsed is None:
            raise VerificationError("Claim verification output was unparseable")

        verdicts = {v.index: v.supported for v in parsed.verdicts}
        supported = [c for i, c in enumerate(claims, 1) if verdicts.get(i, False)]
        problematic = [c for i, c in enumerate(claims, 1) if not verdicts.get(i, False)]
        score = len(supported) / len(claims)

        logger.info(
            "factuality_checked",
            claims=len(claims),
            supported=len(supported),
            factual_score=round(score, 4),
        )
        return HallucinationCheck(
            has_hallucination=bool(problematic),
            confidence=max(0.0, min(1.0, parsed.confidence)),
            problematic_claims=problematic,
            supported_claims=supported,
            overall_factual_score=score,
        )
