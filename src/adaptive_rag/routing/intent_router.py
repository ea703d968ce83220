"""Intent routing into execution lanes.

A rule pass catches obvious chit-chat and obvious multi-step questions without
a model call. Everything else goes to a lightweight router model whose JSON
answer is repaired and validated. Any failure degrades to the standard RAG lane.
"""

from __future__ import annotations

import asyncio
import re
import time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from adaptive_rag.config.constants import ESTIMATED_TIME, INTENT_TO_LANE, LANE_TO_INTENT
from adaptive_rag.exceptions import ClassificationError
from adaptive_rag.generation.json_utils import extract_json, repair_json
from adaptive_rag.generation.prompt_templates import INTENT_CLASSIFICATION_PROMPT
from adaptive_rag.models.domain import IntentClassification
from adaptive_rag.observability.logger import get_logger

logger = get_logger("intent_router")

CHAT_PATTERNS = [
    re.compile(r"^(你好|您好|hi\b|hello|hey\b|嗨|哈喽)", re.IGNORECASE),
    re.compile(r"^(早上好|下午好|晚上好|早安|晚安|good (morning|afternoon|evening|night))", re.IGNORECASE),
    re.compile(r"^(你是谁|你叫什么|介绍一下你自己|who are you|what('s| is) your name|introduce yourself)", re.IGNORECASE),
    re.compile(r"^(谢谢|感谢|多谢|thanks|thank you)", re.IGNORECASE),
    re.compile(r"^(再见|拜拜|bye|goodbye|see you)", re.IGNORECASE),
    re.compile(r"^(帮我写|写一个|写一篇|写一封|write (me )?(a|an) )", re.IGNORECASE),
    re.compile(r"^(讲个笑话|说个笑话|来个笑话|tell me a joke)", re.IGNORECASE),
]

STRONG_REASONING_KEYWORDS = [
    "对比", "比较", "综合分析", "深度分析", "推断", "推理",
    "异同", "优劣", "利弊", "假设", "假如", "倘若",
    "为什么会", "原因是什么", "背后的逻辑",
    "compare", "contrast", "pros and cons", "infer", "hypothetical",
    "suppose", "why would", "root cause", "in-depth analysis",
]

WEAK_REASONING_KEYWORDS = [
    "分析", "综合", "如果", "趋势", "预测", "评估", "建议",
    "analyze", "analyse", "if ", "trend", "predict", "evaluate", "recommend",
]

_QUESTION_MARKS = re.compile(r"[？?]")
_ENTITY_JOINERS = re.compile(r"和|与|跟|还有|\band\b|\bversus\b|\bvs\.?\b")


class ClassificationResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    intent: Literal["chat", "fast_rag", "reasoning"] = "fast_rag"
    confidence: float = 0.7
    reasoning: str = "Model classification"
    keywords: list[str] = Field(default_factory=list)
    complexity: Literal["low", "medium", "high"] = "medium"
    requires_retrieval: bool = True
    requires_reasoning: bool = False

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v):
        return max(0.0, min(1.0, float(v)))


def _classification(
    intent: str,
    confidence: float,
    reasoning: str,
    keywords: list[str] | None = None,
    complexity: str | None = None,
    requires_retrieval: bool | None = None,
    requires_reasoning: bool | None = None,
) -> IntentClassification:
    defaults = {
        "chat": ("low", False, False),
        "fast_rag": ("medium", True, False),
        "reasoning": ("high", True, True),
    }[intent]
    return IntentClassification(
        intent=intent,
        confidence=max(0.0, min(1.0, confidence)),
        reasoning=reasoning,
        keywords=keywords or [],
        complexity=complexity or defaults[0],
        requires_retrieval=defaults[1] if requires_retrieval is None else requires_retrieval,
        requires_reasoning=defaults[2] if requires_reasoning is None else requires_reasoning,
        suggested_lane=INTENT_TO_LANE[intent],
        estimated_time=ESTIMATED_TIME[intent],
    )


def quick_intent_match(query: str) -> IntentClassification | None:
    """Rule-based classification; None when the rules are inconclusive."""
    q = query.lower().strip()

    for pattern in CHAT_PATTERNS:
        if pattern.search(q):
            return _classification("chat", 0.95, "Rule match: greeting or general request")

    strong = [kw for kw in STRONG_REASONING_KEYWORDS if kw in q]
    weak = [kw.strip() for kw in WEAK_REASONING_KEYWORDS if kw in q]
    is_long = len(q) > 30
    multiple_questions = len(_QUESTION_MARKS.findall(q)) > 1
    multiple_entities = bool(_ENTITY_JOINERS.search(q))

    if strong or (weak and (is_long or multiple_questions or multiple_entities)):
        return _classification(
            "reasoning",
            0.90 if strong else 0.80,
            "Rule match: strong reasoning keyword"
            if strong
            else "Rule match: reasoning keyword on a complex question",
            keywords=strong + weak,
        )
    return None


class IntentRouter:
    def __init__(self, llm, model: str | None = None, timeout_ms: int | None = None) -> None:
        self._llm = llm
        self._model = model
        self._timeout_ms = timeout_ms

    @staticmethod
    def default() -> IntentClassification:
        """Classification used when routing is disabled."""
        return _classification("fast_rag", 0.7, "Routing disabled; standard RAG")

    @staticmethod
    def fallback(reason: str = "Classification failed; degraded to standard RAG") -> IntentClassification:
        return _classification("fast_rag", 0.5, reason)

    @staticmethod
    def forced(lane: int) -> IntentClassification:
        if lane not in LANE_TO_INTENT:
            raise ValueError(f"Invalid lane: {lane}")
        return _classification(LANE_TO_INTENT[lane], 1.0, f"Lane {lane} forced by request")

    async def classify(
        self, query: str, model: str | None = None, timeout_ms: int | None = None
    ) -> IntentClassification:
        """Rules first, then the model. Never raises; failures route to standard RAG."""
        start = time.monotonic()
        timeout_ms = self._timeout_ms if timeout_ms is None else timeout_ms
        quick = quick_intent_match(query)
        if quick is not None:
            logger.info(
                "intent_quick_match",
                intent=quick.intent,
                lane=quick.suggested_lane,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            return quick

        try:
            classification = await asyncio.wait_for(
                self._classify_with_model(query, model or self._model),
                timeout=timeout_ms / 1000 if timeout_ms is not None else None,
            )
        except asyncio.TimeoutError:
            logger.warning("intent_classification_timeout", timeout_ms=timeout_ms)
            return self.fallback("Classification timed out; degraded to standard RAG")
        except ClassificationError as e:
            logger.warning("intent_classification_failed", error=str(e))
            return self.fallback()

        logger.info(
            "intent_classified",
            intent=classification.intent,
            confidence=round(classification.confidence, 4),
            lane=classification.suggested_lane,
            duration_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return classification

    async def _classify_with_model(self, query: str, model: str | None) -> IntentClassification:
        prompt = INTENT_CLASSIFICATION_PROMPT.format(query=query)
        try:
            raw = await self._llm.complete(prompt, model=model, temperature=0.0, max_tokens=256)
        except Exception as e:
            raise ClassificationError(f"Router model call failed: {e}") from e

        data = extract_json(raw)
        if data is None:
            data = extract_json(repair_json(raw or ""))
        if data is None:
            raise ClassificationError("Router output contained no JSON object")

        try:
            parsed = ClassificationResponse.model_validate(data)
        except Exception as e:
            raise ClassificationError(f"Router output failed validation: {e}") from e

        # The lane is derived from the intent, never taken from the model
        return _classification(
            parsed.intent,
            parsed.confidence,
            parsed.reasoning,
            keywords=parsed.keywords,
            complexity=parsed.complexity,
            requires_retrieval=parsed.requires_retrieval,
            requires_reasoning=parsed.requires_reasoning,
        )
