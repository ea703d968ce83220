"""Hybrid retriever: concurrent dense + sparse search, RRF fusion, optional rerank."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from adaptive_rag.exceptions import RetrievalError
from adaptive_rag.models.domain import (
    HybridRetrievalResult,
    RetrievalStatistics,
    RetrievedDocument,
)
from adaptive_rag.observability.logger import get_logger
from adaptive_rag.protocols.llm import ModelProvider
from adaptive_rag.protocols.reranker import Reranker
from adaptive_rag.protocols.vector_index import VectorIndex
from adaptive_rag.retrieval.rrf import fuse_documents
from adaptive_rag.scoring.retrieval_quality import RetrievalScorer

logger = get_logger("hybrid_retriever")


@dataclass
class _BranchOutcome:
    name: str
    kind: str  # "dense" or "sparse"
    documents: list[RetrievedDocument] = field(default_factory=list)
    duration_ms: float = 0.0
    error: str | None = None


class HybridRetriever:
    def __init__(
        self,
        index: VectorIndex,
        llm: ModelProvider,
        reranker: Reranker | None = None,
        scorer: RetrievalScorer | None = None,
        rrf_k: int = 60,
        branch_timeout_s: float = 10.0,
    ) -> None:
        self._index = index
        self._llm = llm
        self._reranker = reranker
        self._scorer = scorer
        self._rrf_k = rrf_k
        self._branch_timeout_s = branch_timeout_s

    async def retrieve(
        self,
        query: str,
        top_k: int = 5,
        rerank_top_k: int = 3,
        *,
        enable_bm25: bool = True,
        enable_rerank: bool = True,
        similarity_threshold: float = 0.0,
        embedding_model: str | None = None,
        extra_queries: list[str] | tuple[str, ...] = (),
        collection: str | None = None,
    ) -> HybridRetrievalResult:
        start = time.monotonic()
        queries = [query] + [q for q in extra_queries if q and q != query]
        use_sparse = enable_bm25 and self._index.supports_sparse

        # 1. Fan out every branch, each under its own timeout
        branches = []
        for i, q in enumerate(queries):
            suffix = "" if i == 0 else f":{i}"
            branches.append(
                self._run_branch(
                    f"dense{suffix}",
                    "dense",
                    self._dense(q, top_k, similarity_threshold, embedding_model, collection),
                )
            )
            if use_sparse:
                branches.append(
                    self._run_branch(
                        f"sparse{suffix}", "sparse", self._index.sparse_search(q, top_k, collection)
                    )
                )
        outcomes: list[_BranchOutcome] = await asyncio.gather(*branches)

        failed = [o for o in outcomes if o.error is not None]
        if len(failed) == len(outcomes):
            raise RetrievalError(
                "All retrieval branches failed: "
                + "; ".join(f"{o.name}: {o.error}" for o in failed),
                failed_branches=[o.name for o in failed],
            )
        for o in failed:
            logger.warning("retrieval_branch_degraded", branch=o.name, error=o.error)

        dense_ok = [o for o in outcomes if o.kind == "dense" and o.error is None]
        sparse_ok = [o for o in outcomes if o.kind == "sparse" and o.error is None]
        dense_results = [d for o in dense_ok for d in o.documents]
        sparse_results = [d for o in sparse_ok for d in o.documents]

        # 2. RRF fusion; dense lists first so ties favour dense hits
        merged = fuse_documents(
            [o.documents for o in dense_ok] + [o.documents for o in sparse_ok],
            k=self._rrf_k,
            top_k=top_k,
        )

        # 3. Optional rerank
        degraded = [o.name for o in failed]
        rerank_start = time.monotonic()
        reranked = merged[:rerank_top_k]
        if enable_rerank and self._reranker is not None and merged:
            try:
                reranked = await self._reranker.rerank(query, merged, top_n=rerank_top_k)
            except Exception as e:
                logger.warning("rerank_failed_fallback", error=str(e))
                degraded.append("rerank")
                reranked = merged[:rerank_top_k]
        rerank_ms = (time.monotonic() - rerank_start) * 1000

        statistics = RetrievalStatistics(
            dense_count=len(dense_results),
            sparse_count=len(sparse_results),
            merged_count=len(merged),
            final_count=len(reranked),
            dense_ms=max((o.duration_ms for o in outcomes if o.kind == "dense"), default=0.0),
            sparse_ms=max((o.duration_ms for o in outcomes if o.kind == "sparse"), default=0.0),
            rerank_ms=rerank_ms,
            total_ms=(time.monotonic() - start) * 1000,
            degraded_branches=degraded,
            quality_score=self._scorer.score(reranked) if self._scorer else 0.0,
            queries_used=len(queries),
        )

        logger.info(
            "hybrid_retrieved",
            queries=len(queries),
            dense_count=statistics.dense_count,
            sparse_count=statistics.sparse_count,
            merged_count=statistics.merged_count,
            final_count=statistics.final_count,
            degraded=degraded,
            total_ms=round(statistics.total_ms, 2),
        )

        return HybridRetrievalResult(
            dense_results=dense_results,
            sparse_results=sparse_results,
            merged_results=merged,
            reranked_results=reranked,
            statistics=statistics,
        )

    async def _dense(
        self,
        query: str,
        top_k: int,
        similarity_threshold: float,
        embedding_model: str | None,
        collection: str | None,
    ) -> list[RetrievedDocument]:
        vector = await self._llm.embed(query, model=embedding_model)
        hits = await self._index.dense_search(vector, top_k, collection)
        return [d for d in hits if d.score >= similarity_threshold]

    async def _run_branch(self, name: str, kind: str, coro) -> _BranchOutcome:
        start = time.monotonic()
        outcome = _BranchOutcome(name=name, kind=kind)
        try:
            outcome.documents = await asyncio.wait_for(coro, timeout=self._branch_timeout_s)
        except asyncio.TimeoutError:
            outcome.error = f"timed out after {self._branch_timeout_s}s"
        except Exception as e:
            outcome.error = str(e) or type(e).__name__
        outcome.duration_ms = (time.monotonic() - start) * 1000
        return outcome
