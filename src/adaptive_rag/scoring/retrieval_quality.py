"""Heuristic retrieval quality scoring.

RQ = w1*relevance + w2*margin + w3*coverage + w4*consistency

The score is recorded in retrieval statistics for observability. It never
changes control flow; routing of the retry loop belongs to the grader.
"""

from __future__ import annotations

import math
from typing import Protocol

import numpy as np

from adaptive_rag.config.settings import Settings
from adaptive_rag.models.domain import RetrievedDocument


class RetrievalScorer(Protocol):
    def score(self, documents: list[RetrievedDocument]) -> float: ...


class RetrievalQualityScorer:
    def __init__(self, settings: Settings) -> None:
        self.w1 = settings.rq_w_relevance
        self.w2 = settings.rq_w_margin
        self.w3 = settings.rq_w_coverage
        self.w4 = settings.rq_w_consistency

    def score(self, documents: list[RetrievedDocument]) -> float:
        if not documents:
            return 0.0

        scores = [
            d.rerank_score if d.rerank_score is not None else d.score for d in documents
        ]

        rel = self._sigmoid_normalize(scores[0])

        if len(scores) > 1:
            margin = (scores[0] - scores[1]) / (abs(scores[0]) + 1e-8)
            margin = max(0.0, min(1.0, margin))
        else:
            margin = 1.0

        sources = {d.metadata.get("source", d.id) for d in documents}
        coverage = min(len(sources) / len(documents), 1.0)

        top_scores = scores[:5]
        if len(top_scores) > 1:
            mean_s = float(np.mean(top_scores))
            std_s = float(np.std(top_scores))
            consistency = max(0.0, min(1.0, 1.0 - (std_s / (abs(mean_s) + 1e-8))))
        else:
            consistency = 1.0

        rq = self.w1 * rel + self.w2 * margin + self.w3 * coverage + self.w4 * consistency
        return max(0.0, min(1.0, rq))

    @staticmethod
    def _sigmoid_normalize(x: float, midpoint: float = 0.5, steepness: float = 10.0) -> float:
        z = max(-60.0, min(60.0, -steepness * (x - midpoint)))
        return 1.0 / (1.0 + math.exp(z))
